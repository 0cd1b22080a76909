"""
Health check endpoints
"""

from typing import Any

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from app.config import settings
from app.core.database import check_db
from app.core.metrics import HealthChecker
from app.core.redis import redis_manager

router = APIRouter()

health_checker = HealthChecker(redis_manager, check_db)


@router.get("/live")
async def liveness() -> Any:
    """
    Kubernetes liveness probe
    """
    return {"status": "alive", "service": "venuely-api"}


@router.get("/ready")
async def readiness() -> Any:
    """
    Kubernetes readiness probe - checks the database and, when used, Redis
    """
    health = await health_checker.get_system_health()
    body = {
        "status": "ready" if health["status"] == "healthy" else "not ready",
        "checks": {name: c["status"] == "healthy" for name, c in health["components"].items()},
        "version": settings.APP_VERSION,
    }
    return JSONResponse(status_code=200 if health["status"] == "healthy" else 503, content=body)


@router.get("/status")
async def system_status() -> Any:
    """Component-level health with response times"""
    health = await health_checker.get_system_health()
    return {
        **health,
        "environment": settings.APP_ENV,
        "version": settings.APP_VERSION,
    }
