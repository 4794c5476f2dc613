from __future__ import annotations

import logging
import sys
from decimal import Decimal
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from fulfillment.core.errors import CatalogLoadError
from fulfillment.infrastructure import CatalogLimits, load_catalog, parse_product


def _write_product(directory: Path, filename: str, name: str, price: str) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / filename
    path.write_text(
        f"Name: {name}\nPrice: {price}\nScore: 4.5\nEntity: 12\nLast Modified: 2024-03-01 08:15:00\n",
        encoding="utf-8",
    )
    return path


@pytest.fixture()
def dataset(tmp_path) -> Path:
    root = tmp_path / "Dataset"
    _write_product(root / "Store2" / "Food", "b.txt", "Milk", "1.10")
    _write_product(root / "Store1" / "Food", "b.txt", "Bread", "2.10")
    _write_product(root / "Store1" / "Food", "a.txt", "Milk", "1.25")
    _write_product(root / "Store1" / "Digital", "a.txt", "Laptop", "899.99")
    (root / "Store1" / "Food" / "notes.md").write_text("ignored", encoding="utf-8")
    (root / ".hidden" / "Cat").mkdir(parents=True)
    (root / "README.txt").write_text("not a store", encoding="utf-8")
    return root


def test_parse_product_reads_every_field():
    product = parse_product("Name: Green Tea\nPrice: 3.40\nScore: 4.7\nEntity: 203\nLast Modified: 2024-01-01 09:00:00\nColour: green\n")
    assert product.name == "Green Tea"
    assert product.unit_price == Decimal("3.40")
    assert product.score == pytest.approx(4.7)
    assert product.entity_id == 203
    assert product.last_modified == "2024-01-01 09:00:00"


def test_parse_product_defaults_missing_values():
    product = parse_product("Price: not-a-number\n", fallback_name="101")
    assert product.name == "101"
    assert product.unit_price == Decimal("0")
    assert product.entity_id == 0


def test_load_catalog_builds_sorted_hierarchy(dataset):
    catalog = load_catalog(dataset)

    assert [store.name for store in catalog.stores] == ["Store1", "Store2"]
    store1 = catalog.stores[0]
    assert [category.name for category in store1.categories] == ["Digital", "Food"]
    assert [product.name for product in store1.categories[1].products] == ["Milk", "Bread"]
    assert catalog.summary() == {"stores": 2, "categories": 3, "products": 4}


def test_missing_root_raises(tmp_path):
    with pytest.raises(CatalogLoadError):
        load_catalog(tmp_path / "missing")


def test_unreadable_product_is_skipped(dataset, caplog):
    (dataset / "Store2" / "Food" / "broken.txt").write_bytes(b"Name: \xff\xfe\n")
    with caplog.at_level(logging.WARNING, logger="fulfillment"):
        catalog = load_catalog(dataset)
    store2 = catalog.stores[1]
    assert [product.name for product in store2.categories[0].products] == ["Milk"]
    assert any("unreadable product" in record.getMessage() for record in caplog.records)


def test_limits_truncate_with_warning(dataset, caplog):
    limits = CatalogLimits(max_stores=1, max_categories=1, max_products=1)
    with caplog.at_level(logging.WARNING, logger="fulfillment"):
        catalog = load_catalog(dataset, limits)

    assert catalog.summary() == {"stores": 1, "categories": 1, "products": 1}
    warnings = [record for record in caplog.records if "limit reached" in record.getMessage()]
    assert {record.level_name for record in warnings} == {"stores", "categories"}
