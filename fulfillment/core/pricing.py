from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

from fulfillment.core.schema import MatchRecord, OrderItem
from fulfillment.domain import Product


def quantize(value: Decimal) -> Decimal:
    return value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def total_price(product: Product, quantity: int) -> Decimal:
    return product.unit_price * quantity


def within_threshold(total: Decimal, threshold: Decimal) -> bool:
    """Boundary is inclusive; any negative threshold accepts every total."""

    return threshold < 0 or total <= threshold


def find_order_item(product_name: str, items: Iterable[OrderItem]) -> OrderItem | None:
    """Return the first order item naming ``product_name`` exactly, if any."""

    for item in items:
        if item.product_name == product_name:
            return item
    return None


class ProductMatcher:
    """Prices one (product, quantity) pair against a threshold."""

    def __init__(self, store_name: str, category_name: str) -> None:
        self.store_name = store_name
        self.category_name = category_name

    def evaluate(
        self,
        product: Product,
        quantity: int,
        threshold: Decimal,
        *,
        worker_id: str = "",
    ) -> MatchRecord | None:
        total = total_price(product, quantity)
        if not within_threshold(total, threshold):
            return None
        return MatchRecord(
            store_name=self.store_name,
            category_name=self.category_name,
            product_name=product.name,
            quantity=quantity,
            total_price=total,
            worker_id=worker_id,
        )
