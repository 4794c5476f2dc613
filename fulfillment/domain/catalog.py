"""Domain entities for the store → category → product catalog."""
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal


@dataclass(frozen=True, slots=True)
class Product:
    """A single priced catalog entry."""

    name: str
    unit_price: Decimal
    score: float = 0.0
    entity_id: int = 0
    last_modified: str = ""


@dataclass(frozen=True, slots=True)
class Category:
    """Named group of products inside one store."""

    name: str
    products: tuple[Product, ...] = field(default_factory=tuple)


@dataclass(frozen=True, slots=True)
class Store:
    """Named group of categories."""

    name: str
    categories: tuple[Category, ...] = field(default_factory=tuple)


@dataclass(frozen=True, slots=True)
class Catalog:
    """Read-only snapshot of every store available for matching.

    Workers share one instance without locking, so every container is a tuple.
    """

    stores: tuple[Store, ...] = field(default_factory=tuple)

    def summary(self) -> dict[str, int]:
        categories = sum(len(store.categories) for store in self.stores)
        products = sum(
            len(category.products) for store in self.stores for category in store.categories
        )
        return {"stores": len(self.stores), "categories": categories, "products": products}
