"""
Recommendation Schemas Package
Parameter parsing and response shapes for the recommendation endpoints.
"""

from .recommendation_schemas import (
    # Parameters
    SupportThreshold,
    default_min_support,
    parse_min_support,
    parse_product_id,

    # Result shapes
    SuggestionDict,
    AssociationDict,
    SuggestionOut,
    AssociationOut,
    ErrorOut,
)
