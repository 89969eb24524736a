from fastapi import APIRouter
from app.api.v1.endpoints import academic_sessions, health

api_router = APIRouter()

# Liveness/readiness probes
api_router.include_router(health.router)


@api_router.get("/health", tags=["Health"])
async def health_check():
    """Simple health check endpoint for load balancer"""
    return {"status": "healthy", "service": "session-lifecycle"}


api_router.include_router(academic_sessions.router)
