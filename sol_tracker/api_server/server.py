"""
FastAPI server: read-mostly API over the tracker service.

GET endpoints serve the stored record set (stats refresh it when the cache
window has passed); POST endpoints trigger ingestion. Every response is
wrapped as {success, timestamp, data}; an unavailable tracker maps to 503.
No pipeline logic lives here.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any

from fastapi import Depends, FastAPI, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from sol_tracker import __version__
from sol_tracker.analytics.stats import DEFAULT_RECENT_LIMIT
from sol_tracker.config import get_settings
from sol_tracker.core.exceptions import ConfigError, TrackerUnavailableError
from sol_tracker.database.models import Direction
from sol_tracker.ingestion.service import TrackerService
from sol_tracker.tracker_logging import get_logger, short_id

logger = get_logger(__name__)

MAX_LIMIT = 1000


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# -----------------------------------------------------------------------------
# Dependency
# -----------------------------------------------------------------------------


@lru_cache(maxsize=1)
def get_service() -> TrackerService:
    """Dependency: one TrackerService per process, built from the environment."""
    return TrackerService(get_settings())


# -----------------------------------------------------------------------------
# Response models
# -----------------------------------------------------------------------------


class ApiResponse(BaseModel):
    """Envelope for every successful response."""

    success: bool = Field(True, description="Always true for 2xx responses")
    timestamp: str = Field(default_factory=_now_iso, description="Server time (ISO-8601, UTC)")
    data: Any = Field(None, description="Endpoint payload")


class ErrorResponse(BaseModel):
    success: bool = Field(False)
    timestamp: str = Field(default_factory=_now_iso)
    error: str = Field(..., description="Human-readable reason")


class HealthData(BaseModel):
    status: str = Field("ok")
    version: str = Field(__version__)
    wallet: str = Field(..., description="Tracked wallet (truncated)")
    profile: str = Field(..., description="Active tracker profile")
    recordCount: int = Field(..., ge=0)
    lastFetchTimestamp: str | None = Field(None)


def _ok(data: Any) -> ApiResponse:
    return ApiResponse(data=data)


# -----------------------------------------------------------------------------
# Lifespan
# -----------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Log the resolved configuration once; a bad configuration is reported per request."""
    try:
        settings = get_settings()
    except ConfigError as e:
        logger.error("api_config_invalid", error=str(e))
    else:
        logger.info(
            "api_started",
            wallet_id=settings.wallet_address,
            profile=settings.profile,
            rpc_url=settings.rpc_url,
            storage=settings.storage_backend,
        )
    yield
    logger.info("api_stopped")


# -----------------------------------------------------------------------------
# App and routes
# -----------------------------------------------------------------------------

app = FastAPI(
    title="SOL Distribution Tracker API",
    description="Incoming and outgoing SOL transfers of one tracked wallet.",
    version=__version__,
    lifespan=lifespan,
)


@app.exception_handler(TrackerUnavailableError)
async def _unavailable_handler(request: Request, exc: TrackerUnavailableError) -> JSONResponse:
    logger.warning("api_tracker_unavailable", path=request.url.path, error=str(exc))
    return JSONResponse(status_code=503, content=ErrorResponse(error=str(exc)).model_dump())


@app.exception_handler(ConfigError)
async def _config_handler(request: Request, exc: ConfigError) -> JSONResponse:
    logger.error("api_config_error", path=request.url.path, error=str(exc))
    return JSONResponse(status_code=503, content=ErrorResponse(error=str(exc)).model_dump())


@app.get("/api/health", response_model=ApiResponse)
def health(service: TrackerService = Depends(get_service)) -> ApiResponse:
    """Health check plus what the tracker currently holds."""
    store = service.store
    return _ok(
        HealthData(
            wallet=short_id(service.settings.wallet_address),
            profile=service.settings.profile,
            recordCount=len(store),
            lastFetchTimestamp=store.last_fetch_timestamp,
        ).model_dump()
    )


@app.get("/api/stats", response_model=ApiResponse)
async def stats(
    limit: int = Query(DEFAULT_RECENT_LIMIT, ge=0, le=MAX_LIMIT, description="Recent transactions to include"),
    service: TrackerService = Depends(get_service),
) -> ApiResponse:
    """Aggregate stats; triggers ingestion first when the cached data is older than the cache window."""
    return _ok(await service.get_stats(limit))


@app.get("/api/transactions", response_model=ApiResponse)
def transactions(
    limit: int = Query(DEFAULT_RECENT_LIMIT, ge=1, le=MAX_LIMIT),
    direction: Direction | None = Query(None, description="received | sent | unknown"),
    service: TrackerService = Depends(get_service),
) -> ApiResponse:
    records = service.get_transactions(limit, direction)
    return _ok([r.to_dict() for r in records])


@app.post("/api/refresh", response_model=ApiResponse)
async def refresh(service: TrackerService = Depends(get_service)) -> ApiResponse:
    """Run ingestion now; returns the merge result."""
    result = await service.refresh()
    return _ok(result.to_dict())


@app.post("/api/force-refresh", response_model=ApiResponse)
async def force_refresh(service: TrackerService = Depends(get_service)) -> ApiResponse:
    """Clear every stored record, then re-ingest from the newest signature."""
    logger.warning("api_force_refresh_requested")
    result = await service.force_refresh()
    return _ok(result.to_dict())
