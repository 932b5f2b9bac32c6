"""Health check endpoints."""

from fastapi import APIRouter
from pydantic import BaseModel

from app.config import settings
from app.core.redis_client import check_redis_connection
from app.dependencies import Store

router = APIRouter(tags=["Health"])

HEALTHY = "healthy"
UNHEALTHY = "unhealthy"


def _label(ok: bool) -> str:
    return HEALTHY if ok else UNHEALTHY


class HealthResponse(BaseModel):
    """Liveness answer."""

    status: str
    version: str
    environment: str


class DetailedHealthResponse(HealthResponse):
    """Liveness plus the state of each backing service."""

    document_store: str
    document_store_backend: str
    redis: str


@router.get("/health", response_model=HealthResponse, summary="Basic health check")
async def health_check() -> HealthResponse:
    """Report that the process is up."""
    return HealthResponse(
        status=HEALTHY,
        version=settings.app_version,
        environment=settings.environment,
    )


@router.get(
    "/health/detailed",
    response_model=DetailedHealthResponse,
    summary="Health of the document store and Redis",
)
async def detailed_health_check(store: Store) -> DetailedHealthResponse:
    """
    Check the document store and Redis.

    Redis only backs caches, so losing it reports ``degraded`` while tables
    keep working.
    """
    store_ok = await store.ping()
    redis_ok = await check_redis_connection()

    return DetailedHealthResponse(
        status=HEALTHY if store_ok and redis_ok else "degraded",
        version=settings.app_version,
        environment=settings.environment,
        document_store=_label(store_ok),
        document_store_backend=settings.document_store_backend,
        redis=_label(redis_ok),
    )


@router.get("/ping", summary="Simple ping")
async def ping() -> dict[str, str]:
    return {"message": "pong"}
