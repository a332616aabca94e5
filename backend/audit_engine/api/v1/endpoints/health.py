"""
Health check endpoint.
"""

from fastapi import APIRouter

from audit_engine.config import settings
from audit_engine.services.circuit_breaker import breaker_statuses, get_circuit_breaker

router = APIRouter(tags=["Health"])


@router.get("/health")
async def health_check():
    """Basic health check."""
    return {"status": "ok"}


@router.get("/health/detailed")
async def detailed_health():
    """Circuit breaker state per collaborator and which collaborators are configured."""
    get_circuit_breaker("ai_scorer")
    get_circuit_breaker("pagespeed")

    return {
        "status": "ok",
        "circuit_breakers": breaker_statuses(),
        "ai_scorer_configured": bool(settings.ANTHROPIC_API_KEY),
        "pagespeed_enabled": settings.PAGESPEED_ENABLED,
    }
