"""
Service health endpoint reporting collaborator readiness.
"""

from datetime import datetime

import structlog
from fastapi import APIRouter, Depends

from readycheck.clients.email_client import ResendEmailClient, get_email_client
from readycheck.clients.supabase_client import DatabaseManager, get_database
from readycheck.config import DEV_SESSION_SECRET, settings
from readycheck.models.api_models import ServiceHealthResponse

logger = structlog.get_logger()
router = APIRouter(prefix="/api", tags=["health"])


@router.get("/health", response_model=ServiceHealthResponse)
async def service_health(
    db: DatabaseManager = Depends(get_database),
    email_client: ResendEmailClient = Depends(get_email_client)
) -> ServiceHealthResponse:
    """Report store connectivity and which integrations are configured."""
    store_ok = await db.health_check()
    if not store_ok:
        logger.warning("Service health degraded", store=False)

    return ServiceHealthResponse(
        ok=store_ok,
        environment=settings.environment,
        store=store_ok,
        emailConfigured=email_client.is_configured,
        sessionSecretConfigured=settings.session_secret != DEV_SESSION_SECRET,
        timestamp=datetime.utcnow()
    )
