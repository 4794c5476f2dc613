"""Application service layer for order fulfillment runs."""
from __future__ import annotations

from pathlib import Path
from typing import Any

from fulfillment.core.config import Settings, get_settings
from fulfillment.core.errors import SinkError
from fulfillment.core.log import get_logger
from fulfillment.core.schema import OrderRequest
from fulfillment.domain import Catalog
from fulfillment.infrastructure import (
    CatalogLimits,
    FileLogSink,
    InMemoryRunRepository,
    RunRepository,
    load_catalog,
    parse_line,
)
from fulfillment.workers.dispatcher import CancellationToken, CompletionStatus, Dispatcher

logger = get_logger(__name__)


class FulfillmentService:
    """Coordinates catalog loading, dispatch runs and run history."""

    def __init__(self, repository: RunRepository, settings: Settings | None = None) -> None:
        self._repository = repository
        self._settings = settings or get_settings()
        self._catalog: Catalog | None = None

    @property
    def settings(self) -> Settings:
        return self._settings

    # ------------------------------------------------------------------
    # catalog
    # ------------------------------------------------------------------
    def get_catalog(self) -> Catalog:
        if self._catalog is None:
            self._catalog = self.reload_catalog()
        return self._catalog

    def reload_catalog(self) -> Catalog:
        limits = CatalogLimits(
            max_stores=self._settings.max_stores,
            max_categories=self._settings.max_categories,
            max_products=self._settings.max_products,
        )
        self._catalog = load_catalog(self._settings.catalog_root, limits)
        return self._catalog

    # ------------------------------------------------------------------
    # runs
    # ------------------------------------------------------------------
    def build_sink(self, path: Path) -> FileLogSink:
        return FileLogSink(
            path,
            fmt=self._settings.sink_format,
            queue_size=self._settings.sink_queue_size,
            retry_attempts=self._settings.sink_retry_attempts,
        )

    async def execute(
        self,
        catalog: Catalog,
        order: OrderRequest,
        log_path: Path,
        *,
        cancel: CancellationToken | None = None,
    ) -> CompletionStatus:
        """Run one dispatch into a fresh log file at ``log_path``."""

        dispatcher = Dispatcher(mode=self._settings.match_mode, cancel=cancel)
        async with self.build_sink(log_path) as sink:
            return await dispatcher.run(catalog, order, sink)

    async def submit_order(self, order: OrderRequest) -> dict[str, Any]:
        catalog = self.get_catalog()
        run_id = self._repository.next_run_id()
        self._repository.register_run(run_id, order.username)

        suffix = "jsonl" if self._settings.sink_format == "jsonl" else "log"
        log_path = self._settings.output_dir / f"{run_id}.{suffix}"
        self._repository.update_run(run_id, "processing", log_path=str(log_path))

        try:
            status = await self.execute(catalog, order, log_path)
        except SinkError as exc:
            logger.error("Run log sink failed", extra={"run_id": run_id, "error": str(exc)})
            self._repository.update_run(run_id, "failed", error=str(exc))
            raise
        except Exception as exc:
            logger.exception("Run aborted", extra={"run_id": run_id})
            self._repository.update_run(run_id, "failed", error=str(exc) or type(exc).__name__)
            raise

        self._repository.update_run(
            run_id,
            "completed" if status.ok else "failed",
            completion=status.as_dict(),
            error=None if status.ok else f"{status.stores_failed} store(s) failed",
        )
        run = self._repository.get_run(run_id)
        assert run is not None
        return run

    def list_runs(self) -> list[dict[str, Any]]:
        return self._repository.list_runs()

    def get_run(self, run_id: str) -> dict[str, Any] | None:
        return self._repository.get_run(run_id)

    def read_matches(self, run_id: str) -> list[dict[str, Any]] | None:
        run = self._repository.get_run(run_id)
        if run is None:
            return None
        log_path = run.get("log_path")
        if not log_path or not Path(log_path).exists():
            return []
        with Path(log_path).open("r", encoding="utf-8") as fp:
            return [parsed for parsed in (parse_line(line) for line in fp) if parsed is not None]


_repository = InMemoryRunRepository()
_service: FulfillmentService | None = None


def get_fulfillment_service() -> FulfillmentService:
    global _service
    if _service is None:
        _service = FulfillmentService(_repository)
    return _service


def reset_fulfillment_state() -> None:
    """Clear run history and drop the cached service (used in tests)."""

    global _service
    _repository.reset()
    _service = None
