"""Load the on-disk catalog tree into immutable domain objects.

Layout::

    <root>/<store>/<category>/<product>.txt

Each product file carries ``Key: value`` lines (``Name``, ``Price``, ``Score``,
``Entity``, ``Last Modified``). Hidden entries are ignored and siblings are
read in name order so repeated loads produce the same catalog.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Iterable

from fulfillment.core.errors import CatalogLoadError
from fulfillment.core.log import get_logger
from fulfillment.domain import Catalog, Category, Product, Store

logger = get_logger(__name__)


@dataclass(slots=True)
class CatalogLimits:
    """Optional caps per level; ``0`` means unlimited."""

    max_stores: int = 0
    max_categories: int = 0
    max_products: int = 0


def _safe_decimal(value: str, default: str = "0") -> Decimal:
    try:
        result = Decimal(value.strip())
        if not result.is_finite():
            return Decimal(default)
        return result
    except (InvalidOperation, AttributeError):
        return Decimal(default)


def _safe_float(value: str) -> float:
    try:
        return float(value.strip())
    except ValueError:
        return 0.0


def _safe_int(value: str) -> int:
    try:
        return int(value.strip())
    except ValueError:
        return 0


def parse_product(text: str, fallback_name: str = "") -> Product:
    """Parse one product record; unknown lines are ignored."""

    fields: dict[str, str] = {}
    for line in text.splitlines():
        key, sep, value = line.partition(":")
        if not sep:
            continue
        fields[key.strip().lower()] = value.strip()

    return Product(
        name=fields.get("name") or fallback_name,
        unit_price=_safe_decimal(fields.get("price", "0")),
        score=_safe_float(fields.get("score", "0")),
        entity_id=_safe_int(fields.get("entity", "0")),
        last_modified=fields.get("last modified", ""),
    )


def _visible_children(path: Path, *, dirs: bool) -> list[Path]:
    children = []
    for child in sorted(path.iterdir(), key=lambda item: item.name):
        if child.name.startswith("."):
            continue
        if dirs and child.is_dir():
            children.append(child)
        elif not dirs and child.is_file() and child.suffix == ".txt":
            children.append(child)
    return children


def _truncate(items: list[Path], limit: int, what: str, scope: str) -> list[Path]:
    if limit and len(items) > limit:
        logger.warning(
            "Catalog limit reached, dropping entries",
            extra={"level_name": what, "scope": scope, "limit": limit, "dropped": len(items) - limit},
        )
        return items[:limit]
    return items


def _load_products(category_path: Path, limits: CatalogLimits, scope: str) -> Iterable[Product]:
    files = _truncate(_visible_children(category_path, dirs=False), limits.max_products, "products", scope)
    for product_path in files:
        try:
            text = product_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("Skipping unreadable product file", extra={"path": str(product_path), "error": str(exc)})
            continue
        yield parse_product(text, fallback_name=product_path.stem)


def _load_store(store_path: Path, limits: CatalogLimits) -> Store:
    categories: list[Category] = []
    category_dirs = _truncate(
        _visible_children(store_path, dirs=True), limits.max_categories, "categories", store_path.name
    )
    for category_path in category_dirs:
        scope = f"{store_path.name}/{category_path.name}"
        try:
            products = tuple(_load_products(category_path, limits, scope))
        except OSError as exc:
            logger.warning("Skipping unreadable category directory", extra={"path": str(category_path), "error": str(exc)})
            continue
        categories.append(Category(name=category_path.name, products=products))
    return Store(name=store_path.name, categories=tuple(categories))


def load_catalog(base_path: Path | str, limits: CatalogLimits | None = None) -> Catalog:
    """Read the whole catalog tree rooted at ``base_path``.

    Raises :class:`CatalogLoadError` when the root itself cannot be listed.
    Unreadable stores, categories or product files are skipped with a warning,
    so partial catalogs are possible.
    """

    root = Path(base_path)
    limits = limits or CatalogLimits()
    try:
        store_dirs = _visible_children(root, dirs=True)
    except OSError as exc:
        raise CatalogLoadError(f"cannot read catalog root {root}: {exc}") from exc

    stores: list[Store] = []
    for store_path in _truncate(store_dirs, limits.max_stores, "stores", str(root)):
        try:
            stores.append(_load_store(store_path, limits))
        except OSError as exc:
            logger.warning("Skipping unreadable store directory", extra={"path": str(store_path), "error": str(exc)})

    catalog = Catalog(stores=tuple(stores))
    logger.info("Catalog loaded", extra={"root": str(root), **catalog.summary()})
    return catalog
