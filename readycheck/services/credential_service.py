"""
One-time credential issuance and verification.

This module provides the core business logic for:
- Issuing numeric sign-in codes, storing only their digest, and emailing them
- Verifying a presented code exactly once, before expiry
- Resolving the canonical user for the verified email
"""

import html
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import uuid4

from readycheck.clients.email_client import ResendEmailClient, get_email_client
from readycheck.clients.supabase_client import DatabaseManager, get_database
from readycheck.config import CredentialConfig, settings
from readycheck.exceptions import (
    AlreadyUsed,
    EmailDeliveryError,
    Expired,
    InvalidCredential,
    StoreUnavailableError,
)
from readycheck.models.internal_models import PendingCredential, User
from readycheck.utils.crypto_utils import generate_numeric_code, hash_credential
from readycheck.utils.validation import normalize_email, validate_code

logger = logging.getLogger(__name__)


def render_sign_in_email(app_name: str, code: str, ttl_minutes: int) -> str:
    name = html.escape(app_name)
    return (
        '<div style="font-family:ui-sans-serif,system-ui,-apple-system,Segoe UI,Roboto;">'
        f"<h2>{name}</h2>"
        "<p>Your login code is:</p>"
        f'<p style="font-size:28px; letter-spacing:3px; font-weight:700;">{code}</p>'
        f"<p>This code expires in {ttl_minutes} minutes.</p>"
        '<p style="color:#666; font-size:12px;">Non-diagnostic readiness check.</p>'
        "</div>"
    )


class CredentialIssuer:
    """
    Issues one-time sign-in codes.

    Each call stores exactly one new pending credential (digest only) and
    hands the plain code to the email provider.
    """

    def __init__(
        self,
        db: DatabaseManager,
        email_client: ResendEmailClient,
        config: CredentialConfig
    ):
        """
        Initialize the issuer.

        Args:
            db: Database manager providing the credential repository
            email_client: Outbound email collaborator
            config: Code length, validity window and invalidation policy
        """
        self.db = db
        self.email_client = email_client
        self.config = config

    async def request_code(self, raw_email: str) -> PendingCredential:
        """
        Issue and deliver a sign-in code.

        Args:
            raw_email: Email as submitted by the client

        Returns:
            The stored pending credential (its digest, never the code)

        Raises:
            ValidationError: If the email is malformed; nothing is stored
            StoreUnavailableError: If the credential cannot be stored
            EmailDeliveryError: If the provider does not accept the email
        """
        email = normalize_email(raw_email)
        code = generate_numeric_code(self.config.code_length)
        now = datetime.now(timezone.utc)

        if self.config.invalidate_prior_credentials:
            expired = await self.db.credentials.expire_outstanding(email, now)
            if expired:
                logger.info(f"Expired {expired} outstanding codes for {email}")

        credential = PendingCredential(
            email=email,
            code_hash=hash_credential(email, code),
            created_at=now,
            expires_at=now + timedelta(minutes=self.config.ttl_minutes)
        )
        credential = await self.db.credentials.create(credential)
        logger.info(f"Stored pending credential {credential.id} for {email}")

        try:
            await self.email_client.send(
                to=email,
                subject=f"{self.config.app_name}: your login code",
                html=render_sign_in_email(self.config.app_name, code, self.config.ttl_minutes)
            )
        except EmailDeliveryError as e:
            logger.error(f"Sign-in code delivery failed for {email}: {e}")
            raise

        logger.info(f"Sign-in code sent to {email}")
        return credential


class CredentialVerifier:
    """
    Verifies presented sign-in codes.

    Checks run in a fixed order (unknown, consumed, expired) and the
    consuming write is a single conditional update, so one code can never
    sign in twice even under concurrent submissions.
    """

    def __init__(self, db: DatabaseManager, config: CredentialConfig):
        self.db = db
        self.config = config

    async def verify_code(self, raw_email: str, raw_code: str) -> User:
        """
        Verify a code and resolve the user it proves.

        Args:
            raw_email: Email the code was requested for
            raw_code: Code as typed by the user

        Returns:
            The canonical user for the email, created on first sign-in

        Raises:
            ValidationError: If the email or code is malformed
            InvalidCredential: If no credential matches
            AlreadyUsed: If the credential was consumed before (or by a concurrent request)
            Expired: If the credential is past its expiry
        """
        email = normalize_email(raw_email)
        code = validate_code(raw_code, self.config.code_length)

        credential = await self.db.credentials.find_latest(email, hash_credential(email, code))
        now = datetime.now(timezone.utc)

        if credential is None:
            logger.info(f"No matching sign-in code for {email}")
            raise InvalidCredential("Wrong code")
        if credential.is_consumed:
            logger.info(f"Sign-in code {credential.id} already used")
            raise AlreadyUsed("Code already used")
        if credential.is_expired(now):
            logger.info(f"Sign-in code {credential.id} expired")
            raise Expired("Code expired")

        if not await self.db.credentials.consume(credential.id, now):
            # Lost the race, or expired between the read and the write
            current = await self.db.credentials.get(credential.id)
            if current is None or current.is_consumed:
                logger.warning(f"Sign-in code {credential.id} consumed by a concurrent request")
                raise AlreadyUsed("Code already used")
            raise Expired("Code expired")

        user = await self._resolve_user(email, now)
        logger.info(f"Sign-in code {credential.id} verified for user {user.id}")
        return user

    async def _resolve_user(self, email: str, now: datetime) -> User:
        """Insert-or-ignore on the unique email, then read back the canonical row."""
        await self.db.users.insert_if_absent(User(id=str(uuid4()), email=email, created_at=now))

        user = await self.db.users.get_by_email(email)
        if user is None:
            raise StoreUnavailableError("User row missing after upsert")
        return user


# Global service instances
_credential_issuer: Optional[CredentialIssuer] = None
_credential_verifier: Optional[CredentialVerifier] = None


def get_credential_issuer() -> CredentialIssuer:
    """
    Get the global credential issuer instance.

    Returns:
        CredentialIssuer: The global credential issuer
    """
    global _credential_issuer
    if _credential_issuer is None:
        _credential_issuer = CredentialIssuer(
            db=get_database(),
            email_client=get_email_client(),
            config=settings.credential_config()
        )
    return _credential_issuer


def get_credential_verifier() -> CredentialVerifier:
    """
    Get the global credential verifier instance.

    Returns:
        CredentialVerifier: The global credential verifier
    """
    global _credential_verifier
    if _credential_verifier is None:
        _credential_verifier = CredentialVerifier(
            db=get_database(),
            config=settings.credential_config()
        )
    return _credential_verifier
