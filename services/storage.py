"""
Storage Service Layer
Read-only access to order history, catalogue and precomputed associations
"""
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy import select, func, desc, distinct
from sqlalchemy.orm import aliased
from sqlalchemy.exc import SQLAlchemyError
from typing import List, Optional, Dict, Any, Iterable, Tuple
import logging
import time

from database import AsyncSessionLocal, OrderItem, Product, ProductAssociation
from services.errors import StoreError

logger = logging.getLogger(__name__)

# Driver/network failures that are not wrapped by SQLAlchemy (e.g. refused connections)
STORE_FAILURES = (SQLAlchemyError, OSError)


def _as_float(v) -> Optional[float]:
    # NUMERIC comes back as Decimal on asyncpg, float/Decimal on sqlite
    return None if v is None else float(v)


class StorageService:
    """Storage service providing the reads the recommendation core needs"""

    def __init__(self, session_factory: Optional[async_sessionmaker] = None):
        self._session_factory = session_factory or AsyncSessionLocal

    def get_session(self) -> AsyncSession:
        """Get database session context manager"""
        return self._session_factory()

    # ---------- Co-occurrence reads ----------

    async def get_cooccurrence_counts(self, product_id: int) -> Tuple[int, Dict[int, int]]:
        """
        Return (anchor_order_count, {candidate_product_id: co_occurrence_count}).

        Anchor orders are the distinct orders containing product_id. Both numbers
        come from one session so they describe the same snapshot.
        """
        anchor_orders = (
            select(OrderItem.order_id)
            .where(OrderItem.product_id == product_id)
            .distinct()
            .cte("anchor_orders")
        )
        anchor_count_q = select(func.count()).select_from(anchor_orders)
        co_counts_q = (
            select(
                OrderItem.product_id,
                func.count(distinct(OrderItem.order_id)).label("co_occurrence_count"),
            )
            .join(anchor_orders, anchor_orders.c.order_id == OrderItem.order_id)
            .where(OrderItem.product_id != product_id)
            .group_by(OrderItem.product_id)
        )

        t0 = time.perf_counter()
        try:
            async with self.get_session() as session:
                anchor_count = int((await session.execute(anchor_count_q)).scalar() or 0)
                if anchor_count == 0:
                    return 0, {}
                rows = (await session.execute(co_counts_q)).all()
        except STORE_FAILURES as e:
            logger.exception(f"Co-occurrence query failed for product {product_id}: {e}")
            raise StoreError(str(e), e) from e

        counts = {int(pid): int(cnt) for pid, cnt in rows}
        logger.debug(
            "cooccurrence product_id=%s anchors=%s candidates=%s db_time=%.3fs",
            product_id, anchor_count, len(counts), time.perf_counter() - t0,
        )
        return anchor_count, counts

    async def get_products_with_avg_price(self, product_ids: Iterable[int]) -> List[Dict[str, Any]]:
        """
        Catalogue attributes plus the mean of every recorded sale price.

        avg_price averages order_items.price (price at transaction time), one
        row per order item regardless of quantity. Products without a catalogue
        row are simply absent from the result.
        """
        ids = sorted({int(pid) for pid in product_ids})
        if not ids:
            return []

        query = (
            select(
                Product.id,
                Product.name,
                Product.price,
                Product.description,
                Product.category,
                Product.image_url,
                func.avg(OrderItem.price).label("avg_price"),
            )
            .join(OrderItem, OrderItem.product_id == Product.id)
            .where(Product.id.in_(ids))
            .group_by(
                Product.id,
                Product.name,
                Product.price,
                Product.description,
                Product.category,
                Product.image_url,
            )
        )
        try:
            async with self.get_session() as session:
                rows = (await session.execute(query)).all()
        except STORE_FAILURES as e:
            logger.exception(f"Product hydration query failed for {len(ids)} products: {e}")
            raise StoreError(str(e), e) from e

        return [
            {
                "id": int(row.id),
                "name": row.name,
                "price": _as_float(row.price),
                "description": row.description,
                "category": row.category,
                "image_url": row.image_url,
                "avg_price": _as_float(row.avg_price),
            }
            for row in rows
        ]

    # ---------- Precomputed associations ----------

    async def get_top_associations(self, limit: int = 10) -> List[Dict[str, Any]]:
        """Most frequent precomputed pairs joined to both product names."""
        p1 = aliased(Product, name="p1")
        p2 = aliased(Product, name="p2")
        query = (
            select(
                p1.name.label("product1"),
                p2.name.label("product2"),
                ProductAssociation.frequency,
            )
            .join(p1, ProductAssociation.product1 == p1.id)
            .join(p2, ProductAssociation.product2 == p2.id)
            .order_by(desc(ProductAssociation.frequency))
            .limit(limit)
        )
        try:
            async with self.get_session() as session:
                rows = (await session.execute(query)).all()
        except STORE_FAILURES as e:
            logger.exception(f"Top associations query failed: {e}")
            raise StoreError(str(e), e) from e

        return [
            {"product1": row.product1, "product2": row.product2, "frequency": int(row.frequency)}
            for row in rows
        ]


# Global storage instance
storage = StorageService()
