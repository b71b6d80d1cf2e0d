import os
import sys
from collections import Counter
from pathlib import Path
from statistics import mean
from typing import Dict, List, Optional

import pytest

# Tests never reach PostgreSQL; the module-level engine uses in-memory SQLite
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


class FakeOrderStore:
    """In-memory stand-in for StorageService with the same read methods."""

    def __init__(
        self,
        orders: Dict[int, List[int]],
        products: Optional[Dict[int, dict]] = None,
        sale_prices: Optional[Dict[int, List[float]]] = None,
        associations: Optional[List[dict]] = None,
    ):
        self.orders = orders
        self.products = products if products is not None else {
            pid: {"name": f"Product {pid}", "price": 10.0, "description": None,
                  "category": "misc", "image_url": None}
            for items in orders.values() for pid in items
        }
        self.sale_prices = sale_prices or {}
        self.associations = associations or []
        self.association_reads = 0
        self.cooccurrence_reads = 0

    async def get_cooccurrence_counts(self, product_id):
        self.cooccurrence_reads += 1
        anchors = [oid for oid, items in self.orders.items() if product_id in items]
        counts = Counter(
            pid for oid in anchors for pid in set(self.orders[oid]) if pid != product_id
        )
        return len(anchors), dict(counts)

    async def get_products_with_avg_price(self, product_ids):
        rows = []
        for pid in sorted(set(product_ids)):
            if pid not in self.products:
                continue
            prices = self.sale_prices.get(pid) or [self.products[pid]["price"]]
            rows.append({"id": pid, **self.products[pid], "avg_price": mean(prices)})
        return rows

    async def get_top_associations(self, limit=10):
        self.association_reads += 1
        ranked = sorted(self.associations, key=lambda r: r["frequency"], reverse=True)
        return [dict(r) for r in ranked[:limit]]


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


A, B, C = 1, 2, 3

# O1:[A,B], O2:[A,C], O3:[A,B]
BASKET_ORDERS = {101: [A, B], 102: [A, C], 103: [A, B]}
BASKET_PRODUCTS = {
    A: {"name": "Coffee", "price": 12.0, "description": "Beans", "category": "Grocery", "image_url": "a.png"},
    B: {"name": "Filter", "price": 4.0, "description": "Paper filters", "category": "Kitchen", "image_url": "b.png"},
    C: {"name": "Mug", "price": 9.0, "description": None, "category": "Kitchen", "image_url": None},
}


@pytest.fixture
def basket_store():
    return FakeOrderStore(
        BASKET_ORDERS,
        BASKET_PRODUCTS,
        sale_prices={B: [3.0, 5.0], C: [8.5]},
    )


@pytest.fixture
def clock():
    return FakeClock()
