"""
Storage queries against a throwaway in-memory SQLite database.
Each test builds, seeds and queries inside a single event loop.
"""
import asyncio
from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.exc import OperationalError

import database
from conftest import A, B, C
from database import Base, Order, OrderItem, Product, ProductAssociation, User, create_engine_for
from schemas.recommendation_schemas import parse_min_support
from services.cooccurrence_engine import CoOccurrenceEngine
from services.errors import StoreError
from services.storage import StorageService


def seed_basket(session):
    session.add(User(id=1, name="Dana"))
    session.add_all([
        Product(id=A, name="Coffee", description="Beans", category="Grocery", price=Decimal("12.00"), image_url="a.png"),
        Product(id=B, name="Filter", description="Paper filters", category="Kitchen", price=Decimal("4.00"), image_url="b.png"),
        Product(id=C, name="Mug", description=None, category="Kitchen", price=Decimal("9.00"), image_url=None),
        Product(id=4, name="Kettle", description=None, category="Kitchen", price=Decimal("30.00"), image_url=None),
    ])
    session.add_all([Order(id=oid, user_id=1) for oid in (101, 102, 103, 104)])
    session.add_all([
        OrderItem(order_id=101, product_id=A, quantity=1, price=Decimal("12.00")),
        OrderItem(order_id=101, product_id=B, quantity=5, price=Decimal("3.00")),
        OrderItem(order_id=102, product_id=A, quantity=1, price=Decimal("11.00")),
        OrderItem(order_id=102, product_id=C, quantity=1, price=Decimal("8.50")),
        OrderItem(order_id=103, product_id=A, quantity=2, price=Decimal("12.00")),
        OrderItem(order_id=103, product_id=B, quantity=1, price=Decimal("5.00")),
        # Kettle never shares an order with Coffee
        OrderItem(order_id=104, product_id=4, quantity=1, price=Decimal("30.00")),
    ])


def run_with_store(check, seed=seed_basket):
    async def go():
        engine = create_engine_for("sqlite+aiosqlite:///:memory:")
        session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
        try:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            async with session_factory() as session:
                seed(session)
                await session.commit()
            return await check(StorageService(session_factory))
        finally:
            await engine.dispose()
    return asyncio.run(go())


def test_cooccurrence_counts_basket():
    async def check(store):
        return await store.get_cooccurrence_counts(A)

    assert run_with_store(check) == (3, {B: 2, C: 1})


def test_cooccurrence_counts_unknown_product():
    async def check(store):
        return await store.get_cooccurrence_counts(999)

    assert run_with_store(check) == (0, {})


def test_duplicate_lines_count_one_order():
    def seed(session):
        seed_basket(session)
        session.add(OrderItem(order_id=101, product_id=B, quantity=1, price=Decimal("3.00")))
        session.add(OrderItem(order_id=101, product_id=A, quantity=1, price=Decimal("12.00")))

    async def check(store):
        return await store.get_cooccurrence_counts(A)

    assert run_with_store(check, seed) == (3, {B: 2, C: 1})


def test_avg_price_uses_sale_prices_not_catalogue():
    async def check(store):
        return await store.get_products_with_avg_price([B, C, 999])

    rows = {r["id"]: r for r in run_with_store(check)}

    assert set(rows) == {B, C}
    # one row per order item; quantity 5 on the 3.00 line does not weight it
    assert rows[B]["avg_price"] == pytest.approx(4.0)
    assert rows[B]["price"] == pytest.approx(4.0)
    assert rows[C]["avg_price"] == pytest.approx(8.5)
    assert rows[C]["price"] == pytest.approx(9.0)
    assert rows[B]["name"] == "Filter"
    assert rows[B]["category"] == "Kitchen"
    assert rows[C]["description"] is None


def test_avg_price_empty_input():
    async def check(store):
        return await store.get_products_with_avg_price([])

    assert run_with_store(check) == []


def test_top_associations_ordered_and_limited():
    def seed(session):
        session.add_all([
            Product(id=pid, name=f"P{pid}", category="x", price=Decimal("1.00"))
            for pid in range(1, 14)
        ])
        session.add_all([
            ProductAssociation(product1=pid, product2=pid + 1, frequency=pid * 3)
            for pid in range(1, 13)
        ])

    async def check(store):
        return await store.get_top_associations(10)

    rows = run_with_store(check, seed)

    assert len(rows) == 10
    assert rows[0] == {"product1": "P12", "product2": "P13", "frequency": 36}
    assert [r["frequency"] for r in rows] == [36, 33, 30, 27, 24, 21, 18, 15, 12, 9]


def test_top_associations_empty_table():
    async def check(store):
        return await store.get_top_associations()

    assert run_with_store(check) == []


def test_engine_against_real_store():
    async def check(store):
        engine = CoOccurrenceEngine(store=store)
        return await engine.suggestions(A, parse_min_support("0.1"))

    result = run_with_store(check)

    assert [s["id"] for s in result] == [B, C]
    assert result[0]["support"] == pytest.approx(2 / 3)
    assert result[0]["avg_price"] == pytest.approx(4.0)
    assert result[1]["support"] == pytest.approx(1 / 3)


def test_missing_tables_raise_store_error():
    async def go():
        engine = create_engine_for("sqlite+aiosqlite:///:memory:")
        try:
            store = StorageService(async_sessionmaker(engine, class_=AsyncSession))
            await store.get_top_associations()
        finally:
            await engine.dispose()

    with pytest.raises(StoreError) as exc_info:
        asyncio.run(go())

    assert exc_info.value.status_code == 500
    assert isinstance(exc_info.value.__cause__, OperationalError)


def test_health_reports_missing_schema_then_healthy():
    async def go():
        before = await database.check_db_health()
        async with database.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        try:
            after = await database.check_db_health()
        finally:
            async with database.engine.begin() as conn:
                await conn.run_sync(Base.metadata.drop_all)
            await database.engine.dispose()
        return before, after

    before, after = asyncio.run(go())

    assert before["status"] == "unhealthy"
    assert "product_associations" in before["error"]
    assert after["status"] == "healthy"
