"""
Health check endpoints.
"""
from fastapi import APIRouter

from pharmassist.core.cache import get_redis_client
from pharmassist.core.circuit_breaker import CircuitState, all_circuit_breakers
from pharmassist.core.config import get_settings
from pharmassist.core.logging import get_logger

logger = get_logger(__name__)
router = APIRouter()


@router.get("/")
async def health_check():
    """
    Basic health check endpoint.
    """
    return {
        "status": "ok",
        "message": "API is running"
    }


@router.get("/upstreams")
async def upstream_health():
    """
    Status of every external dependency as seen from this process.

    Returns:
        - circuit_breakers: state and recent failure rate per upstream
        - configured: which credentials are present (values never shown)
        - cache: whether Redis is connected
    """
    breakers = {breaker.name: breaker.get_metrics() for breaker in all_circuit_breakers()}
    settings = get_settings()
    degraded = any(m["state"] != CircuitState.CLOSED.value for m in breakers.values())

    return {
        "status": "degraded" if degraded else "ok",
        "circuit_breakers": breakers,
        "configured": {
            "workflow": bool(settings.workflow_base_url),
            "llm": bool(settings.llm_api_key),
            "vision": bool(settings.vision_api_key),
            "storage": bool(settings.supabase_url and settings.supabase_key),
        },
        "cache": get_redis_client() is not None,
    }
