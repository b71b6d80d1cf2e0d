"""
Recommendations Router
Per-product suggestions and globally frequent product pairs
"""
from fastapi import APIRouter, Depends, Query, Request
from typing import Any, Awaitable, List, Optional, TypeVar
import asyncio
import logging

import settings
from schemas.recommendation_schemas import (
    AssociationOut,
    ErrorOut,
    SuggestionOut,
    parse_min_support,
    parse_product_id,
)
from services.cooccurrence_engine import CoOccurrenceEngine
from services.errors import RecommendationError, StoreError, StoreTimeoutError
from services.frequent_pairs import FrequentPairAggregator

logger = logging.getLogger(__name__)
router = APIRouter()

T = TypeVar("T")

ERROR_RESPONSES = {
    400: {"model": ErrorOut},
    500: {"model": ErrorOut},
    503: {"model": ErrorOut},
}


def get_cooccurrence_engine() -> CoOccurrenceEngine:
    return CoOccurrenceEngine()


def get_frequent_pair_aggregator(request: Request) -> FrequentPairAggregator:
    """App-scoped so the cache (and the optional refresh lock) is shared by all requests."""
    return request.app.state.frequent_pairs


async def with_store_timeout(awaitable: Awaitable[T], operation: str) -> T:
    timeout = settings.STORE_TIMEOUT_SECONDS
    if not timeout or timeout <= 0:
        return await awaitable
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError:
        logger.error(f"{operation} exceeded store timeout of {timeout}s")
        raise StoreTimeoutError(operation, timeout)


@router.get(
    "/products/{product_id}/suggestions",
    response_model=List[SuggestionOut],
    responses=ERROR_RESPONSES,
)
async def get_product_suggestions(
    product_id: str,
    min_support: Optional[str] = Query(None, description="Minimum support in [0, 1]; defaults to 0.1"),
    engine: CoOccurrenceEngine = Depends(get_cooccurrence_engine),
) -> List[Any]:
    """Products most often bought in the same orders as product_id"""
    pid = parse_product_id(product_id)
    threshold = parse_min_support(min_support)
    if threshold.is_default and min_support not in (None, ""):
        logger.debug(f"Unparseable min_support={min_support[:64]!r}; using {threshold.text}")

    try:
        return await with_store_timeout(engine.suggestions(pid, threshold), "suggestions")
    except RecommendationError:
        raise
    except Exception as e:
        logger.error(f"Suggestions error for product {pid}: {e}", exc_info=True)
        raise StoreError(str(e), e) from e


@router.get(
    "/associations",
    response_model=List[AssociationOut],
    responses=ERROR_RESPONSES,
)
async def get_associations(
    aggregator: FrequentPairAggregator = Depends(get_frequent_pair_aggregator),
) -> List[Any]:
    """Most frequent product pairs, served from cache while fresh"""
    try:
        return await with_store_timeout(aggregator.top_associations(), "associations")
    except RecommendationError:
        raise
    except Exception as e:
        logger.error(f"Get associations error: {e}", exc_info=True)
        raise StoreError(str(e), e) from e
