import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse, Response
from sqlalchemy import text

from speedcache.config import settings
from speedcache.core.metrics import get_metrics, get_metrics_content_type

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/health")
async def liveness():
    """Liveness probe: returns 200 if the process is running."""
    return {"status": "healthy"}


@router.get("/health/ready")
async def readiness():
    """Readiness probe: checks database and Redis connectivity."""
    checks = {}

    try:
        from speedcache.core.database import engine
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except Exception as e:
        logger.warning(f"Database readiness check failed: {e}")
        checks["database"] = f"error: {e}"

    from speedcache.core.redis import ping_redis
    checks["redis"] = "ok" if await ping_redis() else "error: no PING reply"

    all_ok = all(v == "ok" for v in checks.values())
    return JSONResponse(
        content={"status": "ready" if all_ok else "not ready", "checks": checks},
        status_code=200 if all_ok else 503,
    )


@router.get("/metrics")
async def metrics():
    """Prometheus metrics endpoint."""
    if not settings.METRICS_ENABLED:
        return Response(content="Metrics disabled", status_code=404)

    return Response(
        content=get_metrics(),
        media_type=get_metrics_content_type(),
    )
