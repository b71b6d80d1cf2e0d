"""
Co-occurrence Engine
Market basket suggestions: products bought in the same orders as a target product
"""
from typing import Dict, List, Optional, Any
from fractions import Fraction
import logging
import time

import settings
from schemas.recommendation_schemas import SupportThreshold, SuggestionDict, default_min_support
from services.storage import storage

logger = logging.getLogger(__name__)


class CoOccurrenceEngine:
    """Ranks products by support within the target product's anchor orders"""

    def __init__(self, store=None, limit: Optional[int] = None):
        self.store = store or storage
        self.limit = settings.SUGGESTIONS_LIMIT if limit is None else limit

    async def suggestions(
        self,
        product_id: int,
        min_support: Optional[SupportThreshold] = None,
    ) -> List[SuggestionDict]:
        """
        Return at most `limit` suggestions for product_id, best support first.

        An unknown product_id, or one that was never ordered, yields an empty
        list rather than a not-found error: with no anchor orders there is
        nothing to co-occur with.
        """
        threshold = min_support or default_min_support()
        t0 = time.perf_counter()

        anchor_count, counts = await self.store.get_cooccurrence_counts(product_id)
        if anchor_count == 0:
            logger.info(f"No anchor orders for product {product_id}; returning no suggestions")
            return []

        supports = self.compute_support(anchor_count, counts)
        survivors = self.filter_by_support(supports, threshold)
        if not survivors:
            logger.info(
                f"No candidates for product {product_id} at min_support={threshold.text} "
                f"({len(supports)} co-occurring products)"
            )
            return []

        products = await self.store.get_products_with_avg_price(survivors.keys())
        ranked = self.rank(products, survivors)

        logger.info(
            f"Suggestions for product {product_id}: anchors={anchor_count} "
            f"candidates={len(supports)} kept={len(survivors)} returned={len(ranked)} "
            f"min_support={threshold.text} time={time.perf_counter() - t0:.3f}s"
        )
        return ranked

    def compute_support(self, anchor_count: int, counts: Dict[int, int]) -> Dict[int, Fraction]:
        """support = co_occurrence_count / anchor_count, kept as an exact fraction"""
        if anchor_count <= 0:
            return {}
        return {
            candidate: Fraction(count, anchor_count)
            for candidate, count in counts.items()
            if count > 0
        }

    def filter_by_support(
        self,
        supports: Dict[int, Fraction],
        threshold: SupportThreshold,
    ) -> Dict[int, Fraction]:
        return {
            candidate: support
            for candidate, support in supports.items()
            if threshold.admits(support)
        }

    def rank(
        self,
        products: List[Dict[str, Any]],
        supports: Dict[int, Fraction],
    ) -> List[SuggestionDict]:
        """
        Order hydrated products by support descending and truncate.

        Ties fall back to product id so repeated calls agree; that secondary
        order is not part of the contract.
        """
        known = [p for p in products if p["id"] in supports]
        known.sort(key=lambda p: (-supports[p["id"]], p["id"]))

        return [
            {
                "id": p["id"],
                "name": p["name"],
                "price": p.get("price"),
                "description": p.get("description"),
                "category": p.get("category"),
                "image_url": p.get("image_url"),
                "support": float(supports[p["id"]]),
                "avg_price": p.get("avg_price"),
            }
            for p in known[: self.limit]
        ]
