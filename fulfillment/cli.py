#!/usr/bin/env python
"""Command line entry point: read an order from stdin and dispatch it."""
from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

from fulfillment.application import FulfillmentService
from fulfillment.core.config import MATCH_MODES, SINK_FORMATS, get_settings
from fulfillment.core.errors import CatalogLoadError, OrderIntakeError, SinkError
from fulfillment.core.log import configure_logging
from fulfillment.infrastructure import InMemoryRunRepository, read_order_request


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Match an order against the product catalog")
    parser.add_argument("--catalog", help="catalog root directory (default: $CATALOG_ROOT or Dataset)")
    parser.add_argument("--log", help="match log file (default: <output dir>/matches.log)")
    parser.add_argument("--format", choices=SINK_FORMATS, help="match log format")
    parser.add_argument("--mode", choices=MATCH_MODES, help="per-category match dispatch mode")
    parser.add_argument("--json-logs", action="store_true", help="emit diagnostics as JSON lines")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    settings = get_settings()
    if args.catalog:
        settings.catalog_root = Path(args.catalog)
    if args.format:
        settings.sink_format = args.format
    if args.mode:
        settings.match_mode = args.mode
    log_path = Path(args.log) if args.log else settings.log_path

    configure_logging(settings.log_level, json_output=args.json_logs)
    service = FulfillmentService(InMemoryRunRepository(), settings)

    try:
        catalog = service.reload_catalog()
    except CatalogLoadError as exc:
        print(f"Failed to load catalog: {exc}", file=sys.stderr)
        return 2

    try:
        order = read_order_request(sys.stdin, sys.stdout)
    except OrderIntakeError as exc:
        print(f"Failed to read order: {exc}", file=sys.stderr)
        return 2

    try:
        status = asyncio.run(service.execute(catalog, order, log_path))
    except SinkError as exc:
        print(f"Match log failed: {exc}", file=sys.stderr)
        return 1

    print(
        f"Matched {status.matches_written} product(s) across {status.stores_attempted} store(s); "
        f"failed stores: {status.stores_failed}. Log: {log_path}"
    )
    return 0 if status.ok else 1


if __name__ == "__main__":
    sys.exit(main())
