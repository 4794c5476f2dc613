#!/usr/bin/env python
from __future__ import annotations

import argparse
from pathlib import Path


SAMPLE = {
    "Store1": {
        "Digital": [("Laptop", 899.99, 4.5, 101), ("Headphones", 59.5, 4.1, 102)],
        "Food": [("Milk", 1.25, 3.9, 201), ("Bread", 2.1, 4.0, 202), ("Green Tea", 3.4, 4.7, 203)],
    },
    "Store2": {
        "Food": [("Milk", 1.1, 3.5, 301), ("Apple", 0.4, 4.2, 302)],
        "Toys": [("Puzzle", 12.0, 4.8, 401)],
    },
}


def write_product(path: Path, name: str, price: float, score: float, entity: int) -> None:
    path.write_text(
        f"Name: {name}\n"
        f"Price: {price:.2f}\n"
        f"Score: {score:.1f}\n"
        f"Entity: {entity}\n"
        "Last Modified: 2024-01-01 09:00:00\n",
        encoding="utf-8",
    )


def main() -> None:
    parser = argparse.ArgumentParser(description="Generate a sample catalog directory tree")
    parser.add_argument("--output", default="Dataset", help="catalog root to create")
    args = parser.parse_args()

    root = Path(args.output)
    count = 0
    for store, categories in SAMPLE.items():
        for category, products in categories.items():
            category_dir = root / store / category
            category_dir.mkdir(parents=True, exist_ok=True)
            for name, price, score, entity in products:
                write_product(category_dir / f"{entity}.txt", name, price, score, entity)
                count += 1

    print(f"Sample catalog written to {root} ({count} products)")


if __name__ == "__main__":
    main()
