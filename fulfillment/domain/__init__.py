"""Domain layer definitions."""

from .catalog import Catalog, Category, Product, Store
from .runs import RunRecord

__all__ = [
    "Catalog",
    "Category",
    "Product",
    "RunRecord",
    "Store",
]
