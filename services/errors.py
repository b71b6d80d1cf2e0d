"""
Recommendation error taxonomy.

Every error carries the HTTP status it maps to; main.py renders them all as
``{"error": ..., "message": ...}``.
"""
from typing import Any, Dict, Optional


class RecommendationError(Exception):
    """Base exception for recommendation failures."""

    status_code = 500
    error = "Internal server error"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.error, "message": self.message}


class ValidationError(RecommendationError):
    """Malformed request parameter (e.g. a non-numeric product id)."""

    status_code = 400
    error = "Invalid request"


class StoreError(RecommendationError):
    """Failure reaching or querying the order history store / catalogue."""

    status_code = 500
    error = "Internal server error"

    def __init__(self, message: str, error: Optional[BaseException] = None):
        details: Dict[str, Any] = {}
        if error is not None:
            details = {"error": str(error), "error_type": type(error).__name__}
        super().__init__(message, details)


class StoreTimeoutError(StoreError):
    """The request-scoped store timeout elapsed; safe for the caller to retry."""

    status_code = 503
    error = "Service temporarily unavailable"
    retry_after_seconds = 1

    def __init__(self, operation: str, timeout_seconds: float):
        super().__init__(f"{operation} timed out after {timeout_seconds:g}s")
        self.details = {"operation": operation, "timeout_seconds": timeout_seconds}
