"""Interactive order intake from a text stream."""
from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import IO

from pydantic import ValidationError

from fulfillment.core.errors import OrderIntakeError
from fulfillment.core.log import get_logger
from fulfillment.core.schema import DEFAULT_PRICE_THRESHOLD, OrderItem, OrderRequest

logger = get_logger(__name__)

MAX_ORDER_ITEMS = 256
DONE_MARKER = "done"


def parse_threshold(raw: str | None) -> Decimal:
    """Empty, unparsable or non-positive input falls back to the default ceiling."""

    text = (raw or "").strip()
    if not text:
        return DEFAULT_PRICE_THRESHOLD
    try:
        value = Decimal(text.split()[0])
    except InvalidOperation:
        return DEFAULT_PRICE_THRESHOLD
    if not value.is_finite() or value <= 0:
        return DEFAULT_PRICE_THRESHOLD
    return value


def parse_item_line(line: str) -> OrderItem | None:
    """Parse ``<product name> <quantity>``; the name may contain spaces."""

    parts = line.strip().rsplit(None, 1)
    if len(parts) != 2:
        return None
    name, quantity = parts
    try:
        return OrderItem(product_name=name.strip(), quantity=int(quantity))
    except (ValueError, ValidationError):
        return None


def _prompt(out: IO[str] | None, text: str) -> None:
    if out is not None:
        out.write(text)
        out.flush()


def read_order_request(stream: IO[str], out: IO[str] | None = None) -> OrderRequest:
    """Read username, item lines terminated by ``done`` (or EOF), then a threshold."""

    _prompt(out, "Username: ")
    first = stream.readline()
    if not first:
        raise OrderIntakeError("input ended before a username was given")
    username = first.rstrip("\n")

    _prompt(out, "Enter your order list (product_name quantity), type 'done' when finished:\n")
    items: list[OrderItem] = []
    while True:
        line = stream.readline()
        if not line or line.strip() == DONE_MARKER:
            break
        if len(items) >= MAX_ORDER_ITEMS:
            logger.warning("Order item limit reached, ignoring line", extra={"limit": MAX_ORDER_ITEMS, "line": line.strip()})
            continue
        item = parse_item_line(line)
        if item is None:
            logger.warning("Skipping malformed order line", extra={"line": line.strip()})
            continue
        items.append(item)

    _prompt(out, f"Price threshold (default is {DEFAULT_PRICE_THRESHOLD:.2f}): ")
    raw_threshold = stream.readline()
    threshold = parse_threshold(raw_threshold)
    if not raw_threshold.strip():
        _prompt(out, f"No input provided. Setting price threshold to default value: {DEFAULT_PRICE_THRESHOLD:.2f}\n")

    return OrderRequest(username=username, items=tuple(items), price_threshold=threshold)
