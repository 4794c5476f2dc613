"""Concurrent fulfillment dispatcher.

The catalog is walked by a three level tree of asyncio tasks::

    Dispatcher ─┬─ StoreWorker ─┬─ CategoryWorker ── match_product (per ordered product)
                │               └─ CategoryWorker ── ...
                └─ StoreWorker ── ...

Data flows down (catalog slice, order items, threshold, sink handle). Results
only leave a unit through the shared sink; parents wait for their direct
children and fold the children's counters into their own status.
"""
from __future__ import annotations

import asyncio
from dataclasses import asdict, dataclass
from decimal import Decimal
from typing import Any, Callable, Coroutine, Sequence

from fulfillment.core.errors import ResourceCreationFailure, SinkError
from fulfillment.core.log import get_logger
from fulfillment.core.pricing import ProductMatcher, find_order_item
from fulfillment.core.schema import MatchRecord, OrderItem, OrderRequest
from fulfillment.domain import Catalog, Category, Product, Store
from fulfillment.infrastructure.sink import LogSink

logger = get_logger(__name__)

Spawner = Callable[[Coroutine[Any, Any, Any], str], "asyncio.Task[Any]"]


def spawn_unit(coro: Coroutine[Any, Any, Any], name: str) -> "asyncio.Task[Any]":
    """Schedule ``coro`` as a named task, closing it if the task cannot be created."""

    try:
        return asyncio.create_task(coro, name=name)
    except RuntimeError as exc:
        coro.close()
        raise ResourceCreationFailure(f"cannot spawn {name}: {exc}") from exc


class CancellationToken:
    """Cooperative stop signal shared by every unit of one dispatch."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


@dataclass
class CategoryResult:
    store_name: str
    category_name: str
    products_evaluated: int = 0
    matches_written: int = 0
    sink_failures: int = 0
    spawn_failures: int = 0
    cancelled: bool = False

    @property
    def failed(self) -> bool:
        return bool(self.sink_failures or self.spawn_failures)


@dataclass
class CompletionStatus:
    stores_attempted: int = 0
    stores_failed: int = 0
    categories_attempted: int = 0
    categories_failed: int = 0
    products_evaluated: int = 0
    matches_written: int = 0
    sink_failures: int = 0
    spawn_failures: int = 0
    cancelled: bool = False

    @property
    def ok(self) -> bool:
        return self.stores_failed == 0

    def absorb_category(self, result: CategoryResult) -> None:
        self.products_evaluated += result.products_evaluated
        self.matches_written += result.matches_written
        self.sink_failures += result.sink_failures
        self.spawn_failures += result.spawn_failures
        self.cancelled = self.cancelled or result.cancelled
        if result.failed:
            self.categories_failed += 1

    def absorb_store(self, status: "CompletionStatus") -> None:
        self.categories_attempted += status.categories_attempted
        self.categories_failed += status.categories_failed
        self.products_evaluated += status.products_evaluated
        self.matches_written += status.matches_written
        self.sink_failures += status.sink_failures
        self.spawn_failures += status.spawn_failures
        self.cancelled = self.cancelled or status.cancelled
        if status.categories_failed:
            self.stores_failed += 1

    def as_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["ok"] = self.ok
        return data


async def match_product(
    matcher: ProductMatcher,
    product: Product,
    quantity: int,
    threshold: Decimal,
    sink: LogSink,
) -> MatchRecord | None:
    """Evaluate one ordered product and append the record when it qualifies."""

    task = asyncio.current_task()
    worker_id = task.get_name() if task is not None else ""
    record = matcher.evaluate(product, quantity, threshold, worker_id=worker_id)
    if record is None:
        return None
    await sink.append(record)
    return record


class CategoryWorker:
    """Matches the products of one category against the order.

    ``mode="sequential"`` awaits each match before moving to the next product,
    so the category's records reach the sink in catalog order.
    ``mode="batch"`` spawns every match as its own task and joins them together.
    """

    def __init__(
        self,
        store_name: str,
        *,
        mode: str = "sequential",
        cancel: CancellationToken | None = None,
        spawn: Spawner = spawn_unit,
    ) -> None:
        if mode not in ("sequential", "batch"):
            raise ValueError(f"unknown match mode: {mode}")
        self.store_name = store_name
        self.mode = mode
        self.cancel = cancel
        self.spawn = spawn

    def _cancelled(self) -> bool:
        return self.cancel is not None and self.cancel.cancelled

    def _record_outcome(self, result: CategoryResult, outcome: object, product: Product) -> None:
        if isinstance(outcome, SinkError):
            result.sink_failures += 1
            logger.error(
                "Failed to append match record",
                extra={"store": result.store_name, "category": result.category_name, "product": product.name, "error": str(outcome)},
            )
        elif isinstance(outcome, BaseException):
            raise outcome
        elif outcome is not None:
            result.matches_written += 1

    async def run(
        self,
        category: Category,
        order_items: Sequence[OrderItem],
        threshold: Decimal,
        sink: LogSink,
    ) -> CategoryResult:
        result = CategoryResult(store_name=self.store_name, category_name=category.name)
        matcher = ProductMatcher(self.store_name, category.name)
        batch: list[tuple[Product, asyncio.Task[Any]]] = []

        for product in category.products:
            if self._cancelled():
                result.cancelled = True
                break
            item = find_order_item(product.name, order_items)
            if item is None:
                continue
            result.products_evaluated += 1

            unit = match_product(matcher, product, item.quantity, threshold, sink)
            if self.mode == "sequential":
                try:
                    outcome: object = await unit
                except SinkError as exc:
                    outcome = exc
                self._record_outcome(result, outcome, product)
                continue

            name = f"match:{self.store_name}/{category.name}/{product.name}"
            try:
                batch.append((product, self.spawn(unit, name)))
            except ResourceCreationFailure as exc:
                result.spawn_failures += 1
                logger.error("Could not spawn match unit", extra={"unit": name, "error": str(exc)})

        if batch:
            outcomes = await asyncio.gather(*(task for _, task in batch), return_exceptions=True)
            unexpected: BaseException | None = None
            for (product, _), outcome in zip(batch, outcomes):
                try:
                    self._record_outcome(result, outcome, product)
                except BaseException as exc:  # every sibling has been joined already
                    unexpected = unexpected or exc
            if unexpected is not None:
                raise unexpected

        logger.debug(
            "Category finished",
            extra={"store": self.store_name, "category": category.name, "evaluated": result.products_evaluated, "written": result.matches_written},
        )
        return result


class StoreWorker:
    """Fans out one CategoryWorker task per category and joins them all."""

    def __init__(
        self,
        *,
        mode: str = "sequential",
        cancel: CancellationToken | None = None,
        spawn: Spawner = spawn_unit,
    ) -> None:
        self.mode = mode
        self.cancel = cancel
        self.spawn = spawn

    async def run(
        self,
        store: Store,
        order_items: Sequence[OrderItem],
        threshold: Decimal,
        sink: LogSink,
    ) -> CompletionStatus:
        status = CompletionStatus(stores_attempted=1)
        if self.cancel is not None and self.cancel.cancelled:
            status.cancelled = True
            return status

        tasks: list[tuple[str, asyncio.Task[Any]]] = []
        for category in store.categories:
            status.categories_attempted += 1
            name = f"category:{store.name}/{category.name}"
            worker = CategoryWorker(store.name, mode=self.mode, cancel=self.cancel, spawn=self.spawn)
            try:
                tasks.append((name, self.spawn(worker.run(category, order_items, threshold, sink), name)))
            except ResourceCreationFailure as exc:
                status.categories_failed += 1
                logger.error("Could not spawn category worker", extra={"unit": name, "error": str(exc)})

        results = await asyncio.gather(*(task for _, task in tasks), return_exceptions=True)
        for (name, _), result in zip(tasks, results):
            if isinstance(result, BaseException):
                status.categories_failed += 1
                logger.error("Category worker failed", extra={"unit": name, "error": repr(result)})
            else:
                status.absorb_category(result)

        if status.categories_failed:
            status.stores_failed = 1
        return status


class Dispatcher:
    """Root of the worker tree.

    ``run`` never raises for branch failures: every failure is folded into the
    returned :class:`CompletionStatus`, and the caller decides what a non-zero
    ``stores_failed`` means.
    """

    def __init__(
        self,
        *,
        mode: str = "sequential",
        cancel: CancellationToken | None = None,
        spawn: Spawner = spawn_unit,
    ) -> None:
        if mode not in ("sequential", "batch"):
            raise ValueError(f"unknown match mode: {mode}")
        self.mode = mode
        self.cancel = cancel
        self.spawn = spawn

    async def run(self, catalog: Catalog, order: OrderRequest, sink: LogSink) -> CompletionStatus:
        status = CompletionStatus()
        tasks: list[tuple[str, asyncio.Task[Any]]] = []

        for store in catalog.stores:
            status.stores_attempted += 1
            if self.cancel is not None and self.cancel.cancelled:
                status.cancelled = True
                continue
            name = f"store:{store.name}"
            worker = StoreWorker(mode=self.mode, cancel=self.cancel, spawn=self.spawn)
            try:
                tasks.append((name, self.spawn(worker.run(store, order.items, order.price_threshold, sink), name)))
            except ResourceCreationFailure as exc:
                status.stores_failed += 1
                logger.error("Could not spawn store worker", extra={"unit": name, "error": str(exc)})
            else:
                logger.debug("Store worker spawned", extra={"unit": name})

        results = await asyncio.gather(*(task for _, task in tasks), return_exceptions=True)
        for (name, _), result in zip(tasks, results):
            if isinstance(result, BaseException):
                status.stores_failed += 1
                logger.error("Store worker failed", extra={"unit": name, "error": repr(result)})
            else:
                status.absorb_store(result)

        logger.info(
            "Dispatch finished",
            extra={
                "username": order.username,
                "stores_attempted": status.stores_attempted,
                "stores_failed": status.stores_failed,
                "matches_written": status.matches_written,
            },
        )
        return status
