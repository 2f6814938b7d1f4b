"""
Shared FastAPI dependencies.
"""

from fastapi import Depends, Request

from readycheck.models.internal_models import Identity
from readycheck.services.session_service import SessionManager, get_session_manager


async def get_current_identity(
    request: Request,
    session_manager: SessionManager = Depends(get_session_manager)
) -> Identity:
    """
    Resolve the signed-in identity from the request's Cookie header.

    Raises:
        Unauthenticated: If no valid session cookie is present; the app's
            service error handler turns it into a 401.
    """
    return session_manager.resolve(request.headers.get("cookie"))
