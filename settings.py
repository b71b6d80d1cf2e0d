"""
Centralized configuration helpers for the recommendation backend.
"""
from __future__ import annotations

import os
from typing import Any, List, Optional

from dotenv import load_dotenv

load_dotenv()


def env_int(name: str, default: int) -> int:
    """Read an integer env var, falling back to default on blanks or junk."""
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(float(raw))
    except ValueError:
        return default


def env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def env_csv(name: str, default: str) -> List[str]:
    raw = os.getenv(name, default)
    return [item.strip() for item in raw.split(",") if item.strip()]


def build_database_url(
    database_url: Optional[str] = None,
    *,
    user: Optional[str] = None,
    password: Optional[str] = None,
    host: Optional[str] = None,
    port: Optional[Any] = None,
    name: Optional[str] = None,
) -> str:
    """
    Resolve the async SQLAlchemy URL for the order history store.

    An explicit DATABASE_URL wins (plain postgres schemes get the asyncpg driver;
    sqlite+aiosqlite URLs are passed through for local runs and tests).
    Otherwise a PostgreSQL URL is assembled from the DB_* parts, defaulting to
    localhost/store_db.
    """
    if database_url and database_url.strip():
        url = database_url.strip()
        for prefix in ("postgresql://", "postgres://"):
            if url.startswith(prefix):
                return "postgresql+asyncpg://" + url[len(prefix):]
        return url
    creds = user or "postgres"
    if password:
        creds = f"{creds}:{password}"
    return f"postgresql+asyncpg://{creds}@{host or 'localhost'}:{port or 5432}/{name or 'store_db'}"


# -------------------------------------------------------------------
# Store
# -------------------------------------------------------------------
DATABASE_URL: str = build_database_url(
    os.getenv("DATABASE_URL", ""),
    user=os.getenv("DB_USER", "postgres"),
    password=os.getenv("DB_PASS", "1234"),
    host=os.getenv("DB_HOST", "localhost"),
    port=os.getenv("DB_PORT", "5432"),
    name=os.getenv("DB_NAME", "store_db"),
)
DB_POOL_SIZE: int = env_int("DB_POOL_SIZE", 10)
DB_MAX_OVERFLOW: int = env_int("DB_MAX_OVERFLOW", 20)
DB_POOL_TIMEOUT: int = env_int("DB_POOL_TIMEOUT", 15)
INIT_DB_ON_STARTUP: bool = env_bool("INIT_DB_ON_STARTUP", False)

# Request-scoped timeout around store calls; 0 disables it.
STORE_TIMEOUT_SECONDS: float = env_float("STORE_TIMEOUT_SECONDS", 10.0)

# -------------------------------------------------------------------
# Recommendations
# -------------------------------------------------------------------
DEFAULT_MIN_SUPPORT: str = os.getenv("DEFAULT_MIN_SUPPORT") or "0.1"
SUGGESTIONS_LIMIT: int = env_int("SUGGESTIONS_LIMIT", 5)
ASSOCIATIONS_LIMIT: int = env_int("ASSOCIATIONS_LIMIT", 10)

ASSOCIATIONS_CACHE_KEY: str = os.getenv("ASSOCIATIONS_CACHE_KEY") or "associations"
ASSOCIATIONS_CACHE_TTL_SECONDS: int = env_int("ASSOCIATIONS_CACHE_TTL_SECONDS", 3600)
ASSOCIATIONS_SINGLE_FLIGHT: bool = env_bool("ASSOCIATIONS_SINGLE_FLIGHT", False)

# -------------------------------------------------------------------
# Server
# -------------------------------------------------------------------
NODE_ENV: str = os.getenv("NODE_ENV", "development")
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
HOST: str = os.getenv("HOST", "0.0.0.0")
PORT: int = env_int("PORT", 6000)
CORS_ORIGINS: List[str] = env_csv("CORS_ORIGINS", "http://localhost:3000") or ["http://localhost:3000"]
