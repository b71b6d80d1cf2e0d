# --- models + engine for the order history store ---

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy import (
    Text, Integer, Numeric, DateTime,
    ForeignKey, func, Index, CheckConstraint, text,
    inspect as sa_inspect,
)
from sqlalchemy.pool import StaticPool
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional
import logging
import time

import settings

logger = logging.getLogger(__name__)

# -------------------------------------------------------------------
# Engine / Session
# -------------------------------------------------------------------

def create_engine_for(url: str, echo: bool = False) -> AsyncEngine:
    """Build an async engine; SQLite gets a single shared connection so in-memory data survives."""
    if url.startswith("sqlite"):
        return create_async_engine(
            url,
            echo=echo,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    return create_async_engine(
        url,
        echo=echo,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_pre_ping=True,  # Verify connections before use
        pool_recycle=1800,  # Recycle connections after 30 minutes
        pool_timeout=settings.DB_POOL_TIMEOUT,  # Waiting here is the only backpressure we have
    )


DATABASE_URL = settings.DATABASE_URL
engine = create_engine_for(DATABASE_URL, echo=settings.NODE_ENV == "development")

AsyncSessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

def _redact_db_url(url: str) -> str:
    try:
        if "@" in url and "://" in url:
            head, tail = url.split("://", 1)
            creds, hostpart = tail.split("@", 1)
            if ":" in creds:
                user, _pwd = creds.split(":", 1)
                return f"{head}://{user}:******@{hostpart}"
            return url
        if "://" in url:
            return url
    except Exception:
        pass
    return "******"

logger.info(f"Creating SQL engine for { _redact_db_url(DATABASE_URL) }")

async def probe_db_connection() -> bool:
    try:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
        logger.info("DB connectivity probe: OK")
        return True
    except Exception as e:
        logger.exception(f"DB connectivity probe failed: {e}")
        return False

# -------------------------------------------------------------------
# Base
# -------------------------------------------------------------------
class Base(DeclarativeBase):
    pass

# -------------------------------------------------------------------
# MODELS
# -------------------------------------------------------------------

class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)

    orders = relationship("Order", back_populates="user")


class Product(Base):
    __tablename__ = "products"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    category: Mapped[str] = mapped_column(Text, nullable=False)
    # Live catalogue price; order_items.price keeps what was actually charged
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    image_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


class Order(Base):
    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("users.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=func.now(), nullable=False)

    # Relationships
    user = relationship("User", back_populates="orders")
    items = relationship("OrderItem", back_populates="order")


class OrderItem(Base):
    __tablename__ = "order_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[int] = mapped_column(Integer, ForeignKey("orders.id"), nullable=False)
    product_id: Mapped[int] = mapped_column(Integer, ForeignKey("products.id"), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    # Frozen at insertion time; never follows later products.price updates
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)

    order = relationship("Order", back_populates="items")
    product = relationship("Product")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
    )


class ProductAssociation(Base):
    """Precomputed pair frequencies; filled by an external batch job."""
    __tablename__ = "product_associations"

    product1: Mapped[int] = mapped_column(Integer, ForeignKey("products.id"), primary_key=True)
    product2: Mapped[int] = mapped_column(Integer, ForeignKey("products.id"), primary_key=True)
    frequency: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

# -------------------------------------------------------------------
# Indexes
# -------------------------------------------------------------------
Index('ix_order_items_product_order', OrderItem.product_id, OrderItem.order_id)
Index('ix_order_items_order', OrderItem.order_id)
Index('ix_product_associations_frequency', ProductAssociation.frequency)
# -------------------------------------------------------------------
# Init + health helpers
# -------------------------------------------------------------------
async def init_db():
    """Ensure tables exist."""
    await probe_db_connection()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("DB init complete (tables ensured).")

def _missing_tables(sync_conn) -> list:
    existing = set(sa_inspect(sync_conn).get_table_names())
    return sorted(set(Base.metadata.tables) - existing)

async def check_db_health() -> Dict[str, Any]:
    """Round-trip a trivial query, confirm the schema exists and report latency."""
    start = time.perf_counter()
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
            missing = await conn.run_sync(_missing_tables)
    except Exception as e:
        logger.warning(f"DB health check failed: {e}")
        return {"status": "unhealthy", "error": str(e)}
    if missing:
        logger.warning(f"DB health check: missing tables {missing}")
        return {"status": "unhealthy", "error": f"missing tables: {', '.join(missing)}"}
    return {
        "status": "healthy",
        "latency_ms": round((time.perf_counter() - start) * 1000, 2),
    }
