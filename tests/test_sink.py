from __future__ import annotations

import asyncio
import json
import sys
import threading
from decimal import Decimal
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from fulfillment.core.errors import SinkError
from fulfillment.core.schema import MatchRecord
from fulfillment.infrastructure import FileLogSink, format_record, parse_line


def _record(index: int, *, name: str | None = None) -> MatchRecord:
    return MatchRecord(
        store_name=f"Store{index % 3}",
        category_name=f"Category{index % 7}",
        product_name=name or f"Product {index} " + "x" * (index % 50),
        quantity=index + 1,
        total_price=Decimal("1.25") * (index + 1),
        worker_id=f"unit-{index}",
    )


def test_text_format_matches_log_contract():
    line = format_record(_record(0, name="Widget"))
    assert line == "store=Store0 category=Category0 product=Widget quantity=1 total_price=1.25\n"


def test_text_lines_parse_back_with_spaces_in_names():
    record = _record(4, name="Green Tea Large")
    parsed = parse_line(format_record(record))
    assert parsed == {
        "store_name": "Store1",
        "category_name": "Category4",
        "product_name": "Green Tea Large",
        "quantity": 5,
        "total_price": "6.25",
    }


def test_jsonl_format_carries_worker_id():
    payload = json.loads(format_record(_record(2), "jsonl"))
    assert payload["worker_id"] == "unit-2"
    assert payload["total_price"] == "3.75"
    assert parse_line(json.dumps(payload))["product_name"] == payload["product"]


def test_file_sink_appends_and_truncates_previous_run(tmp_path):
    path = tmp_path / "out" / "matches.log"
    path.parent.mkdir()
    path.write_text("stale line from an earlier run\n", encoding="utf-8")

    async def scenario():
        async with FileLogSink(path) as sink:
            await sink.append(_record(0, name="Widget"))
            await sink.append(_record(1, name="Gadget"))
        return sink

    sink = asyncio.run(scenario())
    lines = path.read_text(encoding="utf-8").splitlines()
    assert [parse_line(line)["product_name"] for line in lines] == ["Widget", "Gadget"]
    assert sink.records_written == 2


def test_concurrent_appends_are_complete_and_not_interleaved(tmp_path):
    path = tmp_path / "matches.log"
    total = 300

    async def scenario():
        async with FileLogSink(path, queue_size=8) as sink:
            await asyncio.gather(*(sink.append(_record(i)) for i in range(total)))

    asyncio.run(scenario())

    raw = path.read_text(encoding="utf-8")
    assert raw.endswith("\n")
    lines = raw.splitlines()
    assert len(lines) == total
    parsed = [parse_line(line) for line in lines]
    assert all(item is not None for item in parsed)
    assert sorted(item["quantity"] for item in parsed) == list(range(1, total + 1))


def test_independent_writers_on_one_file_keep_lines_whole(tmp_path):
    path = tmp_path / "shared.log"
    path.touch()
    per_writer = 150

    def writer(offset: int) -> None:
        async def scenario():
            async with FileLogSink(path, truncate=False, fmt="jsonl") as sink:
                await asyncio.gather(*(sink.append(_record(offset + i)) for i in range(per_writer)))

        asyncio.run(scenario())

    threads = [threading.Thread(target=writer, args=(n * per_writer,)) for n in range(3)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    lines = path.read_text(encoding="utf-8").splitlines()
    assert len(lines) == 3 * per_writer
    quantities = sorted(json.loads(line)["quantity"] for line in lines)
    assert quantities == list(range(1, 3 * per_writer + 1))


def test_append_before_start_or_after_close_raises(tmp_path):
    async def scenario():
        sink = FileLogSink(tmp_path / "matches.log")
        with pytest.raises(SinkError):
            await sink.append(_record(0))
        await sink.start()
        await sink.append(_record(1))
        await sink.close()
        with pytest.raises(SinkError):
            await sink.append(_record(2))
        await sink.close()

    asyncio.run(scenario())
    assert len((tmp_path / "matches.log").read_text(encoding="utf-8").splitlines()) == 1


def test_unopenable_path_raises_sink_error(tmp_path):
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("", encoding="utf-8")

    async def scenario():
        await FileLogSink(blocker / "matches.log").start()

    with pytest.raises(SinkError):
        asyncio.run(scenario())


def _flaky_writer(sink: FileLogSink, failures: int):
    original = sink._write_line
    state = {"left": failures}

    def write_line(line: bytes) -> None:
        if state["left"] > 0:
            state["left"] -= 1
            raise OSError("No space left on device")
        original(line)

    return write_line


def test_failed_write_surfaces_to_the_producer(tmp_path):
    async def scenario():
        async with FileLogSink(tmp_path / "matches.log") as sink:
            sink._write_line = _flaky_writer(sink, failures=1)
            with pytest.raises(SinkError):
                await sink.append(_record(0))
            await sink.append(_record(1))
        return sink

    sink = asyncio.run(scenario())
    assert sink.records_written == 1


def test_retry_attempts_recover_from_transient_failures(tmp_path):
    async def scenario():
        async with FileLogSink(tmp_path / "matches.log", retry_attempts=2) as sink:
            sink._write_line = _flaky_writer(sink, failures=2)
            await sink.append(_record(0, name="Widget"))

    asyncio.run(scenario())
    lines = (tmp_path / "matches.log").read_text(encoding="utf-8").splitlines()
    assert [parse_line(line)["product_name"] for line in lines] == ["Widget"]


def test_fsync_failure_on_close_raises_sink_error(tmp_path, monkeypatch):
    def no_space(fd):
        raise OSError(28, "No space left on device")

    monkeypatch.setattr("fulfillment.infrastructure.sink.os.fsync", no_space)

    async def scenario():
        async with FileLogSink(tmp_path / "matches.log") as sink:
            await sink.append(_record(0, name="Widget"))

    with pytest.raises(SinkError, match="cannot close log file"):
        asyncio.run(scenario())
    assert (tmp_path / "matches.log").read_text(encoding="utf-8").count("\n") == 1


def _broken_writer(line: bytes) -> None:
    raise RuntimeError("writer crashed")


def test_crashed_writer_fails_waiting_producers(tmp_path):
    async def scenario():
        sink = await FileLogSink(tmp_path / "matches.log", queue_size=1).start()
        sink._write_line = _broken_writer
        outcomes = await asyncio.wait_for(
            asyncio.gather(*(sink.append(_record(i)) for i in range(6)), return_exceptions=True),
            timeout=5,
        )
        with pytest.raises(SinkError, match="log writer"):
            await sink.close()
        return outcomes

    outcomes = asyncio.run(scenario())
    assert len(outcomes) == 6
    assert all(isinstance(outcome, SinkError) for outcome in outcomes)


def test_append_after_writer_crash_raises(tmp_path):
    async def scenario():
        sink = await FileLogSink(tmp_path / "matches.log").start()
        sink._write_line = _broken_writer
        with pytest.raises(SinkError):
            await asyncio.wait_for(sink.append(_record(0)), timeout=5)
        with pytest.raises(SinkError, match="stopped"):
            await sink.append(_record(1))
        with pytest.raises(SinkError):
            await sink.close()

    asyncio.run(scenario())
