"""
Authentication API endpoints: sign-in codes, verification and sessions.
"""

import structlog
from fastapi import APIRouter, Depends, Request, Response

from readycheck.api.dependencies import get_current_identity
from readycheck.api.errors import error_response_for
from readycheck.exceptions import AuthError, EmailDeliveryError, ReadyCheckError, ValidationError
from readycheck.middleware import get_correlation_id
from readycheck.models.api_models import (
    CodeVerificationRequest,
    CredentialRequest,
    OkResponse,
    UserPayload,
    UserResponse,
)
from readycheck.models.internal_models import Identity
from readycheck.observability import (
    record_credential_request,
    record_credential_verification,
    trace_function,
)
from readycheck.services.credential_service import (
    CredentialIssuer,
    CredentialVerifier,
    get_credential_issuer,
    get_credential_verifier,
)
from readycheck.services.session_service import SessionManager, get_session_manager

logger = structlog.get_logger()
router = APIRouter(prefix="/api", tags=["authentication"])


def _is_secure(http_request: Request, session_manager: SessionManager) -> bool:
    return session_manager.cookie_secure(
        http_request.url.scheme,
        http_request.headers.get("X-Forwarded-Proto")
    )


@router.post("/auth/request", response_model=OkResponse)
@trace_function("credential_request_endpoint")
async def request_code(
    request: CredentialRequest,
    http_request: Request,
    issuer: CredentialIssuer = Depends(get_credential_issuer)
):
    """
    Email a one-time sign-in code.

    Always responds the same way for known and unknown emails; an account
    is only created once a code is verified.
    """
    correlation_id = get_correlation_id(http_request)
    logger.info("Sign-in code requested", correlation_id=correlation_id)

    try:
        await issuer.request_code(request.email)
        record_credential_request("sent")
        return OkResponse()

    except ValidationError as e:
        record_credential_request("invalid_email")
        return error_response_for(e, correlation_id)

    except EmailDeliveryError as e:
        record_credential_request("delivery_failed")
        logger.error("Sign-in code delivery failed", error=str(e), correlation_id=correlation_id)
        return error_response_for(e, correlation_id)

    except ReadyCheckError as e:
        record_credential_request("store_failed")
        logger.error(
            "Sign-in code request failed",
            error_type=type(e).__name__,
            correlation_id=correlation_id
        )
        return error_response_for(e, correlation_id)

    except Exception as e:
        logger.error(
            "Unexpected error during sign-in code request",
            error_type=type(e).__name__,
            correlation_id=correlation_id
        )
        return error_response_for(e, correlation_id)


@router.post("/auth/verify", response_model=UserResponse)
@trace_function("credential_verify_endpoint")
async def verify_code(
    request: CodeVerificationRequest,
    http_request: Request,
    response: Response,
    verifier: CredentialVerifier = Depends(get_credential_verifier),
    session_manager: SessionManager = Depends(get_session_manager)
):
    """
    Verify a sign-in code and start a session.

    On success the session cookie is set and the canonical user returned.
    """
    correlation_id = get_correlation_id(http_request)

    try:
        user = await verifier.verify_code(request.email, request.code)

    except AuthError as e:
        record_credential_verification(type(e).__name__)
        logger.info("Sign-in code rejected", outcome=type(e).__name__, correlation_id=correlation_id)
        return error_response_for(e, correlation_id)

    except ReadyCheckError as e:
        record_credential_verification(type(e).__name__)
        logger.error(
            "Sign-in code verification failed",
            error_type=type(e).__name__,
            correlation_id=correlation_id
        )
        return error_response_for(e, correlation_id)

    except Exception as e:
        logger.error(
            "Unexpected error during verification",
            error_type=type(e).__name__,
            correlation_id=correlation_id
        )
        return error_response_for(e, correlation_id)

    record_credential_verification("verified")
    token = session_manager.issue(user.id, user.email)
    session_manager.set_cookie(response, token, _is_secure(http_request, session_manager))

    logger.info("Session started", user_id=user.id, correlation_id=correlation_id)
    return UserResponse(user=UserPayload(id=user.id, email=user.email))


@router.post("/auth/logout", response_model=OkResponse)
async def logout(
    http_request: Request,
    response: Response,
    session_manager: SessionManager = Depends(get_session_manager)
) -> OkResponse:
    """Clear the session cookie. Tokens are stateless and stay valid until they expire."""
    session_manager.clear_cookie(response, _is_secure(http_request, session_manager))
    return OkResponse()


@router.get("/me", response_model=UserResponse)
async def me(identity: Identity = Depends(get_current_identity)) -> UserResponse:
    """Return the signed-in user."""
    return UserResponse(user=UserPayload(id=identity.user_id, email=identity.email))

