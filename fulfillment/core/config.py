from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

MATCH_MODES = ("sequential", "batch")
SINK_FORMATS = ("text", "jsonl")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_choice(name: str, default: str, choices: tuple[str, ...]) -> str:
    value = (os.getenv(name) or default).strip().lower()
    return value if value in choices else default


def _env_path(name: str, default: str) -> Path:
    return Path(os.getenv(name) or default).expanduser()


@dataclass(slots=True)
class Settings:
    catalog_root: Path = Path("Dataset")
    output_dir: Path = Path("Output")
    log_name: str = "matches.log"
    sink_format: str = "text"
    sink_queue_size: int = 256
    sink_retry_attempts: int = 0
    match_mode: str = "sequential"
    max_stores: int = 0
    max_categories: int = 0
    max_products: int = 0
    log_level: str = "INFO"
    cors_origins: list[str] = field(default_factory=list)

    @classmethod
    def from_env(cls) -> "Settings":
        origins_env = os.getenv("API_CORS_ORIGINS", "")
        origins = [origin.strip() for origin in origins_env.split(",") if origin.strip()]
        return cls(
            catalog_root=_env_path("CATALOG_ROOT", "Dataset"),
            output_dir=_env_path("FULFILLMENT_OUTPUT_DIR", "Output"),
            log_name=os.getenv("FULFILLMENT_LOG_NAME") or "matches.log",
            sink_format=_env_choice("SINK_FORMAT", "text", SINK_FORMATS),
            sink_queue_size=max(1, _env_int("SINK_QUEUE_SIZE", 256)),
            sink_retry_attempts=max(0, _env_int("SINK_RETRY_ATTEMPTS", 0)),
            match_mode=_env_choice("MATCH_MODE", "sequential", MATCH_MODES),
            max_stores=max(0, _env_int("CATALOG_MAX_STORES", 0)),
            max_categories=max(0, _env_int("CATALOG_MAX_CATEGORIES", 0)),
            max_products=max(0, _env_int("CATALOG_MAX_PRODUCTS", 0)),
            log_level=(os.getenv("LOG_LEVEL") or "INFO").upper(),
            cors_origins=origins or ["http://localhost:3000", "http://127.0.0.1:3000"],
        )

    @property
    def log_path(self) -> Path:
        return self.output_dir / self.log_name


def get_settings() -> Settings:
    """Read settings from the current environment."""

    return Settings.from_env()
