"""Append-only destinations for match records.

Every writer in the dispatch tree goes through ``LogSink.append``. The file
backed sink owns a single writer task fed over a bounded queue, and each record
is committed with one ``write`` call on an ``O_APPEND`` descriptor, so a line is
either fully present in the file or absent, even with other processes
appending to the same path.
"""
from __future__ import annotations

import asyncio
import json
import os
import re
from pathlib import Path
from typing import Any, BinaryIO, Protocol

from fulfillment.core.errors import SinkError
from fulfillment.core.log import get_logger
from fulfillment.core.pricing import quantize
from fulfillment.core.schema import MatchRecord

logger = get_logger(__name__)

_TEXT_LINE = re.compile(
    r"^store=(?P<store_name>.*?) category=(?P<category_name>.*?) product=(?P<product_name>.*)"
    r" quantity=(?P<quantity>\d+) total_price=(?P<total_price>\S+)$"
)


class LogSink(Protocol):
    """Contract shared by every match record destination."""

    async def append(self, record: MatchRecord) -> None: ...


def format_record(record: MatchRecord, fmt: str = "text") -> str:
    """Render one record as a single newline-terminated line."""

    total = quantize(record.total_price)
    if fmt == "jsonl":
        payload = {
            "store": record.store_name,
            "category": record.category_name,
            "product": record.product_name,
            "quantity": record.quantity,
            "total_price": str(total),
            "worker_id": record.worker_id,
        }
        return json.dumps(payload, ensure_ascii=False) + "\n"
    return (
        f"store={record.store_name} category={record.category_name} "
        f"product={record.product_name} quantity={record.quantity} total_price={total:.2f}\n"
    )


def parse_line(line: str) -> dict[str, Any] | None:
    """Inverse of :func:`format_record` for either format; ``None`` if unparsable."""

    raw = line.strip()
    if not raw:
        return None
    if raw.startswith("{"):
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            return None
        return {
            "store_name": data.get("store"),
            "category_name": data.get("category"),
            "product_name": data.get("product"),
            "quantity": data.get("quantity"),
            "total_price": data.get("total_price"),
            "worker_id": data.get("worker_id"),
        }
    match = _TEXT_LINE.match(raw)
    if match is None:
        return None
    parsed: dict[str, Any] = match.groupdict()
    parsed["quantity"] = int(parsed["quantity"])
    return parsed


class InMemoryLogSink:
    """List-backed sink used by tests and in-process previews."""

    def __init__(self, fmt: str = "text") -> None:
        self.fmt = fmt
        self._lock = asyncio.Lock()
        self._records: list[MatchRecord] = []
        self._lines: list[str] = []

    async def append(self, record: MatchRecord) -> None:
        async with self._lock:
            self._records.append(record)
            self._lines.append(format_record(record, self.fmt))

    @property
    def records(self) -> list[MatchRecord]:
        return list(self._records)

    @property
    def lines(self) -> list[str]:
        return list(self._lines)


class FileLogSink:
    """File sink served by one dedicated writer task.

    Producers enqueue ``(line, future)`` pairs and wait on the future, so a
    failed write surfaces as :class:`SinkError` in the producer that submitted
    it. ``retry_attempts`` adds that many extra write attempts per record; the
    default of zero keeps single-attempt semantics.
    """

    def __init__(
        self,
        path: Path,
        *,
        fmt: str = "text",
        queue_size: int = 256,
        retry_attempts: int = 0,
        truncate: bool = True,
    ) -> None:
        self.path = Path(path)
        self.fmt = fmt
        self.queue_size = max(1, queue_size)
        self.retry_attempts = max(0, retry_attempts)
        self.truncate = truncate
        self.records_written = 0

        self._fh: BinaryIO | None = None
        self._queue: asyncio.Queue[tuple[bytes, asyncio.Future[None]] | None] | None = None
        self._writer: asyncio.Task[None] | None = None
        self._inflight: asyncio.Future[None] | None = None
        self._closed = False

    # ------------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------------
    async def start(self) -> "FileLogSink":
        if self._closed:
            raise SinkError("log sink already closed")
        if self._writer is not None:
            return self
        try:
            self._fh = await asyncio.to_thread(self._open)
        except OSError as exc:
            raise SinkError(f"cannot open log file {self.path}: {exc}") from exc
        self._queue = asyncio.Queue(maxsize=self.queue_size)
        self._writer = asyncio.create_task(self._drain(), name=f"sink:{self.path.name}")
        self._writer.add_done_callback(self._writer_finished)
        logger.debug("Log sink opened", extra={"path": str(self.path), "format": self.fmt})
        return self

    async def close(self) -> None:
        """Drain queued records, join the writer and release the file."""

        if self._closed:
            return
        self._closed = True
        try:
            if self._writer is not None and self._queue is not None:
                if not self._writer.done():
                    await self._queue.put(None)
                try:
                    await self._writer
                except Exception as exc:
                    raise SinkError(f"log writer for {self.path} failed: {exc}") from exc
        finally:
            if self._fh is not None:
                try:
                    await asyncio.to_thread(self._close_file)
                except OSError as exc:
                    raise SinkError(f"cannot close log file {self.path}: {exc}") from exc
        logger.debug("Log sink closed", extra={"path": str(self.path), "written": self.records_written})

    async def __aenter__(self) -> "FileLogSink":
        return await self.start()

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # producer side
    # ------------------------------------------------------------------
    async def append(self, record: MatchRecord) -> None:
        if self._closed or self._queue is None or self._writer is None:
            raise SinkError("log sink is not open")
        if self._writer.done():
            raise SinkError("log writer has stopped")

        line = format_record(record, self.fmt).encode("utf-8")
        done: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        await self._queue.put((line, done))
        if self._writer.done():
            # Frees queue space for any producer still blocked on put().
            self._reject_pending()
        await done

    # ------------------------------------------------------------------
    # writer side
    # ------------------------------------------------------------------
    def _open(self) -> BinaryIO:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        # Unbuffered binary append: each write() is one O_APPEND system call.
        fh = open(self.path, "ab", buffering=0)
        if self.truncate:
            fh.truncate(0)
        return fh

    def _close_file(self) -> None:
        fh, self._fh = self._fh, None
        if fh is None:
            return
        try:
            os.fsync(fh.fileno())
        finally:
            fh.close()

    def _write_line(self, line: bytes) -> None:
        if self._fh is None:
            raise ValueError("log file is closed")
        written = self._fh.write(line)
        if written != len(line):
            raise OSError(f"short write ({written} of {len(line)} bytes)")

    async def _write_with_retry(self, line: bytes) -> None:
        attempts = self.retry_attempts + 1
        for attempt in range(1, attempts + 1):
            try:
                await asyncio.to_thread(self._write_line, line)
                return
            except (OSError, ValueError) as exc:
                if attempt >= attempts:
                    raise SinkError(f"append to {self.path} failed: {exc}") from exc
                logger.warning(
                    "Log sink write failed, retrying",
                    extra={"path": str(self.path), "attempt": attempt, "error": str(exc)},
                )

    async def _drain(self) -> None:
        assert self._queue is not None
        while True:
            item = await self._queue.get()
            if item is None:
                break
            line, done = item
            self._inflight = done
            try:
                await self._write_with_retry(line)
            except SinkError as exc:
                if not done.done():
                    done.set_exception(exc)
            else:
                self.records_written += 1
                if not done.done():
                    done.set_result(None)
            self._inflight = None
        self._reject_pending()

    def _writer_finished(self, task: "asyncio.Task[None]") -> None:
        if task.cancelled() or task.exception() is not None:
            logger.error("Log sink writer stopped unexpectedly", extra={"path": str(self.path)})
            inflight, self._inflight = self._inflight, None
            if inflight is not None and not inflight.done():
                inflight.set_exception(SinkError("log writer stopped before the record was written"))
        self._reject_pending()

    def _reject_pending(self) -> None:
        assert self._queue is not None
        while not self._queue.empty():
            item = self._queue.get_nowait()
            if item is None:
                continue
            _, done = item
            if not done.done():
                done.set_exception(SinkError("log sink closed before the record was written"))
