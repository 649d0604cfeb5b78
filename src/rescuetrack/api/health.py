"""Health check endpoint.

Learn: Simple GET endpoint that verifies the server is running and its
dependencies are reachable. Redis is optional (rate limiting and the
cross-process relay degrade gracefully), so a missing Redis is reported
but does not make the service unhealthy.
"""

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from rescuetrack import __version__
from rescuetrack.db.engine import get_db
from rescuetrack.realtime.registry import registry

router = APIRouter()


@router.get("/health")
async def health_check(db: AsyncSession = Depends(get_db)):
    """Check server health and dependency connectivity."""
    checks = {"server": "ok", "version": __version__}

    try:
        await db.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except Exception as e:
        checks["database"] = f"error: {e}"

    try:
        from rescuetrack.realtime.pubsub import get_redis

        await get_redis().ping()
        checks["redis"] = "ok"
    except Exception as e:
        checks["redis"] = f"unavailable: {e}"

    status = "healthy" if checks["database"] == "ok" else "degraded"
    return {"status": status, "websocket_clients": registry.subscriber_count(), **checks}
