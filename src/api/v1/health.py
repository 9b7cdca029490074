"""
Health check endpoints.
"""

from typing import Any

from fastapi import APIRouter

from src.api.deps import container
from src.core.clock import utcnow
from src.core.config import settings
from src.core.exceptions import IssueTrackerError
from src.core.logging import get_logger

logger = get_logger(__name__)

router = APIRouter()


async def check_store() -> bool:
    """Open and close an empty transaction."""
    try:
        async with container.store.transaction():
            pass
    except IssueTrackerError as e:
        logger.warning("Store readiness check failed", error=e.message)
        return False
    return True


@router.get("/health")
async def health_check() -> dict[str, Any]:
    """
    Basic health check endpoint.
    Returns application status.
    """
    return {
        "status": "healthy",
        "app": settings.app_name,
        "environment": settings.app_env,
        "timestamp": utcnow().isoformat(),
    }


@router.get("/health/ready")
async def readiness_check() -> dict[str, Any]:
    """
    Readiness check endpoint.
    Verifies the store accepts transactions.
    """
    checks = {
        "app": True,
        "store": await check_store(),
    }

    all_healthy = all(checks.values())

    return {
        "status": "ready" if all_healthy else "not_ready",
        "checks": checks,
        "team_cache": container.team_cache.get_stats(),
        "timestamp": utcnow().isoformat(),
    }


@router.get("/health/live")
async def liveness_check() -> dict[str, str]:
    """
    Liveness check endpoint.
    Simple check that the application is running.
    """
    return {"status": "alive"}
