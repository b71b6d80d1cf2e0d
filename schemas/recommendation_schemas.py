"""
Recommendation Schemas
======================

Request parsing and response shapes for the recommendation endpoints.

PARAMETER CONTRACT:
-------------------
- product_id   must be a non-negative 32-bit integer; anything else is a
               ValidationError (400).
- min_support  a fraction, default 0.1. Absent, blank, non-numeric, NaN or
               infinite values fall back to the default instead of failing, as do
               over-long text and exponents beyond 1e+/-20.
               "0" is a real zero. Values outside [0, 1] are not clamped:
               negatives keep every candidate, values above 1 keep none.

min_support is kept as an exact Fraction built from its decimal text, so the
support >= min_support comparison is exact (7/10 >= "0.7" holds).
"""

import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from fractions import Fraction
from typing import Any, Optional, TypedDict

from pydantic import BaseModel, Field

import settings
from services.errors import ValidationError

FALLBACK_MIN_SUPPORT = Decimal("0.1")

# Numeric query/path text is bounded before any arithmetic runs on it
MAX_NUMBER_TEXT = 64
MAX_SUPPORT_EXPONENT = 20
# products.id is a 32-bit INTEGER column
MAX_PRODUCT_ID = 2**31 - 1
PRODUCT_ID_RE = re.compile(r"^\s*(\d+)(?:\.0*)?\s*$")


# =============================================================================
# PARAMETERS
# =============================================================================

@dataclass(frozen=True)
class SupportThreshold:
    """Parsed min_support."""
    value: Fraction
    text: str
    is_default: bool = False

    def admits(self, support: Fraction) -> bool:
        return support >= self.value


def _to_decimal(raw: Any) -> Optional[Decimal]:
    if raw is None:
        return None
    text = str(raw).strip()
    if not text or len(text) > MAX_NUMBER_TEXT:
        return None
    try:
        value = Decimal(text)
    except (InvalidOperation, ValueError):
        return None
    if not value.is_finite():
        return None
    if not value:
        return Decimal(0)
    if abs(value.adjusted()) > MAX_SUPPORT_EXPONENT:
        return None
    return value


def default_min_support() -> SupportThreshold:
    value = _to_decimal(settings.DEFAULT_MIN_SUPPORT)
    if value is None:
        value = FALLBACK_MIN_SUPPORT
    return SupportThreshold(value=Fraction(value), text=str(value), is_default=True)


def parse_min_support(raw: Any) -> SupportThreshold:
    """Parse min_support; never raises."""
    value = _to_decimal(raw)
    if value is None:
        return default_min_support()
    return SupportThreshold(value=Fraction(value), text=str(value))


def parse_product_id(raw: Any) -> int:
    """
    Parse a path product id.

    Only plain digits (optionally followed by ".0") up to MAX_PRODUCT_ID are
    accepted; signs, exponents and over-long text are a ValidationError.
    """
    text = str(raw) if raw is not None else ""
    match = PRODUCT_ID_RE.match(text) if len(text) <= MAX_NUMBER_TEXT else None
    value = int(match.group(1)) if match else None
    if value is None or value > MAX_PRODUCT_ID:
        shown = text if len(text) <= MAX_NUMBER_TEXT else text[:MAX_NUMBER_TEXT] + "..."
        raise ValidationError(
            f"Invalid product id: {shown!r}",
            details={"product_id": shown},
        )
    return value


# =============================================================================
# RESULT SHAPES
# =============================================================================

class SuggestionDict(TypedDict):
    id: int
    name: str
    price: Optional[float]
    description: Optional[str]
    category: Optional[str]
    image_url: Optional[str]
    support: float
    avg_price: Optional[float]


class AssociationDict(TypedDict):
    product1: str
    product2: str
    frequency: int


class SuggestionOut(BaseModel):
    id: int
    name: str
    price: Optional[float] = None
    description: Optional[str] = None
    category: Optional[str] = None
    image_url: Optional[str] = None
    support: float = Field(..., gt=0, le=1, description="Share of anchor orders containing this product")
    avg_price: Optional[float] = Field(None, description="Mean historical sale price")


class AssociationOut(BaseModel):
    product1: str
    product2: str
    frequency: int


class ErrorOut(BaseModel):
    error: str
    message: str
