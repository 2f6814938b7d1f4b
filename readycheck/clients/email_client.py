"""
Email delivery through the Resend HTTP API.
"""

import logging
from typing import Optional

import httpx

from ..config import settings
from ..exceptions import EmailDeliveryError

logger = logging.getLogger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"


class ResendEmailClient:
    """Minimal async client for sending transactional email via Resend."""

    def __init__(
        self,
        api_key: Optional[str],
        sender: str,
        timeout: float = 10.0,
        api_url: str = RESEND_API_URL
    ):
        """
        Initialize the email client.

        Args:
            api_key: Resend API key. Sending fails fast when missing.
            sender: From address, e.g. "Cognition <login@example.com>"
            timeout: Request timeout in seconds
            api_url: Resend endpoint (overridable for tests)
        """
        self.api_key = api_key
        self.sender = sender.strip()
        self.timeout = timeout
        self.api_url = api_url

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key) and bool(self.sender)

    async def send(self, to: str, subject: str, html: str) -> None:
        """
        Send one HTML email.

        Args:
            to: Recipient address
            subject: Subject line
            html: HTML body

        Raises:
            EmailDeliveryError: If the provider is not configured, unreachable,
                slow beyond the timeout, or rejects the message
        """
        if not self.is_configured:
            raise EmailDeliveryError("Email delivery is not configured")

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    self.api_url,
                    headers={"Authorization": f"Bearer {self.api_key}"},
                    json={
                        "from": self.sender,
                        "to": [to],
                        "subject": subject,
                        "html": html
                    }
                )
                response.raise_for_status()

        except httpx.TimeoutException as e:
            logger.error(f"Timeout sending email via Resend: {e}")
            raise EmailDeliveryError("Timeout sending email") from e
        except httpx.HTTPStatusError as e:
            logger.error(f"Resend rejected email: HTTP {e.response.status_code}")
            raise EmailDeliveryError(f"Email provider returned HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            logger.error(f"Transport error sending email via Resend: {type(e).__name__}")
            raise EmailDeliveryError(f"Failed to reach email provider: {type(e).__name__}") from e

        logger.info("Email accepted by Resend")


# Global email client instance
_email_client: Optional[ResendEmailClient] = None


def get_email_client() -> ResendEmailClient:
    """
    Get the global email client, configured from application settings.

    Returns:
        ResendEmailClient: The global email client instance
    """
    global _email_client
    if _email_client is None:
        _email_client = ResendEmailClient(
            api_key=settings.resend_api_key,
            sender=settings.email_from,
            timeout=settings.email_timeout_seconds
        )
    return _email_client
