"""
Health Check Endpoints

Endpoints:
- /health/live  - Basic liveness (app is running)
- /health/ready - Readiness check (database reachable, critical config set)
"""

from fastapi import APIRouter, HTTPException, status
from datetime import datetime, timezone
from typing import Dict, Any
import time

from sqlalchemy import text

from app.core.config import settings
from app.core.database import get_session_local
from app.core.logging_config import logger


router = APIRouter(prefix="/health", tags=["Health Checks"])


async def check_database() -> Dict[str, Any]:
    """Check database connectivity and that the sessions table is readable"""
    start = time.time()
    try:
        session_factory = get_session_local()
        async with session_factory() as session:
            await session.execute(text("SELECT 1"))
            await session.execute(text("SELECT COUNT(*) FROM academic_sessions"))

        latency = (time.time() - start) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(latency, 2),
            "message": "Database connection successful"
        }
    except Exception as e:
        latency = (time.time() - start) * 1000
        logger.error(f"[HealthCheck] Database check failed: {e}")
        return {
            "status": "unhealthy",
            "latency_ms": round(latency, 2),
            "error": str(e),
            "message": "Database unavailable - lifecycle commands will fail"
        }


def check_critical_env_vars() -> Dict[str, Any]:
    """Verify critical environment variables are set"""
    critical_vars = {
        "DATABASE_URL": settings.DATABASE_URL,
        "SECRET_KEY": settings.SECRET_KEY,
        "JWT_SECRET_KEY": settings.JWT_SECRET_KEY,
    }
    missing = [
        name for name, value in critical_vars.items()
        if not value or value in ["CHANGE_ME", "your-secret-key"]
    ]

    if missing:
        return {
            "status": "unhealthy",
            "missing_critical": missing,
            "message": f"Missing critical env vars: {', '.join(missing)}"
        }
    return {"status": "healthy", "missing_critical": [], "message": "Configuration OK"}


@router.get("/live")
async def liveness():
    """Liveness probe - the process is up"""
    return {"status": "alive", "timestamp": datetime.now(timezone.utc).isoformat()}


@router.get("/ready")
async def readiness():
    """Readiness probe - 503 until the database and config checks pass"""
    checks = {
        "database": await check_database(),
        "config": check_critical_env_vars(),
    }
    healthy = all(check["status"] == "healthy" for check in checks.values())

    if not healthy:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"status": "not_ready", "checks": checks}
        )
    return {"status": "ready", "checks": checks, "environment": settings.ENVIRONMENT}
