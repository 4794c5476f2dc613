"""Infrastructure layer exports."""

from .catalog_loader import CatalogLimits, load_catalog, parse_product
from .order_intake import read_order_request
from .runs import InMemoryRunRepository, RunRepository
from .sink import FileLogSink, InMemoryLogSink, LogSink, format_record, parse_line

__all__ = [
    "CatalogLimits",
    "FileLogSink",
    "InMemoryLogSink",
    "InMemoryRunRepository",
    "LogSink",
    "RunRepository",
    "format_record",
    "load_catalog",
    "parse_line",
    "parse_product",
    "read_order_request",
]
