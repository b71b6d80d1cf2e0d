"""
FastAPI Application Entry Point
Storefront recommendations - product associations backend
"""
from fastapi import FastAPI, Request, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from contextvars import ContextVar
import asyncio
import logging
import json
import sys
import time
import uuid as _uuid
from typing import Callable

import settings
from routers import recommendations
from database import init_db, check_db_health, probe_db_connection
from services.errors import RecommendationError, StoreError, StoreTimeoutError
from services.frequent_pairs import FrequentPairAggregator
from services.result_cache import ResultCache


# ---- Logging setup (JSON on stdout) ----
request_id_var: ContextVar[str] = ContextVar("request_id", default="-")


class JsonFormatter(logging.Formatter):
    """One JSON object per line, tagged with the current request id."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "severity": record.levelname,
            "time": self.formatTime(record, "%Y-%m-%dT%H:%M:%S%z"),
            "logger": record.name,
            "rid": request_id_var.get(),
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def configure_logging(level: str) -> None:
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())
    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


configure_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title="Storefront Recommendations API",
    description="Product co-occurrence suggestions and frequent product pairs",
    version="1.0.0",
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json"
)

# Shared, injected recommendation state
app.state.result_cache = ResultCache(ttl_seconds=settings.ASSOCIATIONS_CACHE_TTL_SECONDS)
app.state.frequent_pairs = FrequentPairAggregator(cache=app.state.result_cache)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "OPTIONS"],
    allow_headers=["*"],
)

# ---- Request/Response logging middleware ----
class RequestIDMiddleware(BaseHTTPMiddleware):
    """Tags every log line of a request with its id and echoes it as X-Request-Id."""

    async def dispatch(self, request: Request, call_next: Callable):
        request_id = request.headers.get("X-Request-Id") or _uuid.uuid4().hex
        token = request_id_var.set(request_id)
        start = time.perf_counter()
        logger.info(f"REQ {request.method} {request.url.path} qs={request.url.query[:200]}")
        try:
            response = await call_next(request)
        finally:
            request_id_var.reset(token)

        logger.info(
            f"RES {request.method} {request.url.path} status={response.status_code} "
            f"durMs={int((time.perf_counter() - start) * 1000)} rid={request_id}"
        )
        response.headers["X-Request-Id"] = request_id
        return response

app.add_middleware(RequestIDMiddleware)


@app.get("/")
async def root_index():
    return {"ok": True, "service": "storefront-recommendations"}

@app.get("/healthz")
async def healthz():
    """Basic health check for load balancers."""
    return {"ok": True}


@app.get("/api/health")
async def api_health():
    """Health check including database status."""
    db_health = await check_db_health()
    overall_status = "healthy" if db_health["status"] == "healthy" else "degraded"
    return {
        "status": overall_status,
        "database": db_health,
        "timestamp": time.time(),
    }


# --- Error handlers ---
@app.exception_handler(RecommendationError)
async def recommendation_exception_handler(request: Request, exc: RecommendationError):
    headers = None
    if isinstance(exc, StoreTimeoutError):
        headers = {"Retry-After": str(exc.retry_after_seconds)}
    if isinstance(exc, StoreError):
        # Always logged server-side, whatever the caller gets back
        logger.error(f"Store failure on {request.url.path}: {exc.message} {exc.details}")
    else:
        logger.warning(f"{type(exc).__name__} on {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.error(f"Validation error: {exc.errors()}")
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid request", "message": str(exc.errors())},
    )

@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": str(exc.detail), "message": str(exc.detail)},
    )

@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(status_code=500, content={"error": "Internal server error", "message": str(exc)})

# --- Routers ---
app.include_router(recommendations.router, prefix="/api", tags=["recommendations"])

# --- Startup/shutdown ---
@app.on_event("startup")
async def startup():
    logger.info("Starting Storefront Recommendations API...")
    if settings.INIT_DB_ON_STARTUP:
        try:
            logger.info("Initializing database tables...")
            await asyncio.wait_for(init_db(), timeout=120)
            logger.info("✅ Database initialized successfully")
        except asyncio.TimeoutError:
            logger.error("❌ DB init timed out after 120s, continuing without init")
        except Exception as e:
            logger.error(f"❌ DB init failed (continuing to serve): {e}", exc_info=True)
    else:
        # Connectivity is only reported; the API still starts if the store is down
        await probe_db_connection()

@app.on_event("shutdown")
async def shutdown():
    logger.info("Shutting down Storefront Recommendations API...")

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.NODE_ENV != "production"
    )
