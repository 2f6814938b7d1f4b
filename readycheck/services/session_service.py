"""
Signed session tokens and the session cookie.

Sessions are HS256 JWTs over a server-held secret carrying the user id,
email, issue time and expiry. There is no server-side session state, so
logout only clears the cookie and a copied token stays valid until `exp`.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt as pyjwt
from starlette.responses import Response

from readycheck.config import SessionConfig, settings
from readycheck.exceptions import Unauthenticated
from readycheck.models.internal_models import Identity
from readycheck.utils.http_utils import is_secure_request, parse_cookie_header

logger = logging.getLogger(__name__)

REQUIRED_CLAIMS = ["sub", "email", "iat", "exp"]


class SessionManager:
    """Issues and validates session tokens bound to a user identity."""

    def __init__(self, config: SessionConfig):
        """
        Initialize the session manager.

        Args:
            config: Signing secret, validity window and cookie attributes
        """
        self.config = config

    def issue(self, user_id: str, email: str, now: Optional[datetime] = None) -> str:
        """
        Create a signed session token.

        Args:
            user_id: Canonical user ID
            email: Normalized email
            now: Issue time, defaults to the current time

        Returns:
            Encoded JWT string
        """
        now = now or datetime.now(timezone.utc)
        expires_at = now + timedelta(days=self.config.ttl_days)
        payload = {
            "sub": user_id,
            "email": email,
            "iat": int(now.timestamp()),
            "exp": int(expires_at.timestamp()),
        }
        return pyjwt.encode(payload, self.config.secret, algorithm=self.config.algorithm)

    def validate(self, token: Optional[str]) -> Identity:
        """
        Resolve the identity carried by a session token.

        Every failure (missing, malformed, bad signature, wrong algorithm,
        missing claims, expired) surfaces as Unauthenticated.

        Raises:
            Unauthenticated: If the token is not a valid, current session
        """
        if not token:
            raise Unauthenticated("Not signed in")

        try:
            payload = pyjwt.decode(
                token,
                self.config.secret,
                algorithms=[self.config.algorithm],
                options={"require": REQUIRED_CLAIMS},
            )
        except pyjwt.ExpiredSignatureError:
            raise Unauthenticated("Session expired") from None
        except pyjwt.PyJWTError as e:
            logger.debug(f"Rejected session token: {type(e).__name__}")
            raise Unauthenticated("Invalid session") from None

        user_id = payload.get("sub")
        email = payload.get("email")
        if not isinstance(user_id, str) or not user_id or not isinstance(email, str) or not email:
            raise Unauthenticated("Invalid session")

        try:
            issued_at = datetime.fromtimestamp(payload["iat"], tz=timezone.utc)
            expires_at = datetime.fromtimestamp(payload["exp"], tz=timezone.utc)
        except (TypeError, ValueError, OverflowError, OSError):
            raise Unauthenticated("Invalid session") from None

        return Identity(user_id=user_id, email=email, issued_at=issued_at, expires_at=expires_at)

    def resolve(self, cookie_header: Optional[str]) -> Identity:
        """Resolve the current identity from a raw Cookie header."""
        cookies = parse_cookie_header(cookie_header)
        return self.validate(cookies.get(self.config.cookie_name))

    def cookie_secure(self, scheme: str, forwarded_proto: Optional[str] = None) -> bool:
        if self.config.cookie_secure is not None:
            return self.config.cookie_secure
        return is_secure_request(scheme, forwarded_proto)

    def set_cookie(self, response: Response, token: str, secure: bool) -> None:
        """Attach the session cookie: HTTP-only, same-site, max-age = validity window."""
        response.set_cookie(
            key=self.config.cookie_name,
            value=token,
            max_age=self.config.max_age_seconds,
            path="/",
            httponly=True,
            secure=secure,
            samesite=self.config.cookie_samesite,
        )

    def clear_cookie(self, response: Response, secure: bool) -> None:
        response.delete_cookie(
            key=self.config.cookie_name,
            path="/",
            httponly=True,
            secure=secure,
            samesite=self.config.cookie_samesite,
        )


# Global session manager instance
_session_manager: Optional[SessionManager] = None


def get_session_manager() -> SessionManager:
    """
    Get the global session manager instance.

    Returns:
        SessionManager: The global session manager
    """
    global _session_manager
    if _session_manager is None:
        _session_manager = SessionManager(settings.session_config())
    return _session_manager
