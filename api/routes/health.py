"""
Health check endpoints.

Used for monitoring and load balancer health checks.
"""
from fastapi import APIRouter
import platform

from shopflow_sdk.utils.datetime import utc_now


router = APIRouter()


@router.get("/health")
async def health_check():
    """
    Health check endpoint.

    Returns system health status.
    """
    return {
        "status": "healthy",
        "timestamp": utc_now().isoformat(),
        "service": "shopflow",
        "version": "1.0.0",
        "python_version": platform.python_version(),
    }
