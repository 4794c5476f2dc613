"""Domain entities for dispatch runs."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(slots=True)
class RunRecord:
    """Represents one dispatch pass triggered for an order."""

    run_id: str
    username: str
    status: str = "pending"
    log_path: str | None = None
    error: str | None = None
    completion: dict[str, Any] = field(default_factory=dict)
