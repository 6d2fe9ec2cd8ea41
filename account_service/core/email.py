"""Email sending via the Resend API.

Simple HTTP POST to Resend for account verification and password recovery
emails. Unlike fire-and-forget notifications, these sends report failure to
the caller: signup must roll back when its verification email cannot go out.
"""

from dataclasses import dataclass
from typing import Protocol

import httpx
import structlog

from account_service.core.config import settings

logger = structlog.get_logger()

_RESEND_API_URL = "https://api.resend.com/emails"
_RESEND_TIMEOUT = 10.0


class EmailDeliveryError(Exception):
    """The email provider rejected the message or could not be reached."""


@dataclass(frozen=True)
class EmailMessage:
    """An outgoing HTML email.

    Attributes:
        subject: Subject line.
        to: Recipient address.
        sender: From address.
        html: HTML body.
    """

    subject: str
    to: str
    sender: str
    html: str


class EmailSender(Protocol):
    """Anything that can deliver an EmailMessage or raise EmailDeliveryError."""

    async def send(self, message: EmailMessage) -> None: ...


class ResendEmailSender:
    """Deliver email through the Resend HTTP API.

    Args:
        api_key: Resend API key.
        api_url: Endpoint override (tests, proxies).
        timeout: Per-request timeout in seconds.
    """

    def __init__(
        self,
        api_key: str,
        *,
        api_url: str = _RESEND_API_URL,
        timeout: float = _RESEND_TIMEOUT,
    ) -> None:
        self._api_key = api_key
        self._api_url = api_url
        self._timeout = timeout

    async def send(self, message: EmailMessage) -> None:
        """Send one message.

        Raises:
            EmailDeliveryError: On transport failure or a non-2xx response.
        """
        try:
            async with httpx.AsyncClient() as client:
                resp = await client.post(
                    self._api_url,
                    headers={"Authorization": f"Bearer {self._api_key}"},
                    json={
                        "from": message.sender,
                        "to": message.to,
                        "subject": message.subject,
                        "html": message.html,
                    },
                    timeout=self._timeout,
                )
                resp.raise_for_status()
        except httpx.HTTPError as exc:
            raise EmailDeliveryError(f"Resend request failed: {exc}") from exc


class LoggingEmailSender:
    """Log emails instead of sending them (local development without an API key)."""

    async def send(self, message: EmailMessage) -> None:
        logger.info(
            "Email not sent (no provider configured)",
            to=message.to,
            subject=message.subject,
        )


def build_email_sender() -> EmailSender:
    """Pick the email sender for the current settings."""
    api_key = settings.resend_api_key.get_secret_value()
    if not api_key:
        return LoggingEmailSender()
    return ResendEmailSender(api_key)
