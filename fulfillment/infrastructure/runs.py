"""Infrastructure layer for dispatch run history."""
from __future__ import annotations

from dataclasses import asdict
from typing import Any, Protocol

from fulfillment.domain import RunRecord


class RunRepository(Protocol):
    """Persistence contract for run records."""

    def next_run_id(self) -> str: ...

    def register_run(self, run_id: str, username: str) -> None: ...

    def update_run(
        self,
        run_id: str,
        status: str,
        *,
        log_path: str | None = None,
        completion: dict[str, Any] | None = None,
        error: str | None = None,
    ) -> None: ...

    def get_run(self, run_id: str) -> dict[str, Any] | None: ...

    def list_runs(self) -> list[dict[str, Any]]: ...

    def reset(self) -> None: ...


class InMemoryRunRepository:
    """Simple in-memory repository for fast iteration and tests."""

    def __init__(self) -> None:
        self._runs: dict[str, RunRecord] = {}
        self._run_counter = 0

    def next_run_id(self) -> str:
        self._run_counter += 1
        return f"run-{self._run_counter:05d}"

    def register_run(self, run_id: str, username: str) -> None:
        self._runs[run_id] = RunRecord(run_id=run_id, username=username, status="queued")

    def update_run(
        self,
        run_id: str,
        status: str,
        *,
        log_path: str | None = None,
        completion: dict[str, Any] | None = None,
        error: str | None = None,
    ) -> None:
        run = self._runs.get(run_id)
        if run is None:
            raise KeyError(run_id)
        run.status = status
        run.error = error
        if log_path is not None:
            run.log_path = log_path
        if completion is not None:
            run.completion = dict(completion)

    def get_run(self, run_id: str) -> dict[str, Any] | None:
        run = self._runs.get(run_id)
        return asdict(run) if run else None

    def list_runs(self) -> list[dict[str, Any]]:
        return [asdict(run) for run in sorted(self._runs.values(), key=lambda item: item.run_id, reverse=True)]

    def reset(self) -> None:
        self._runs.clear()
        self._run_counter = 0
