"""
Email Delivery — outbound gateway used by the dispatch engine.

Backends:
  - sendgrid: SendGrid Web API (production)
  - console:  logs the message instead of sending (local/dev/test)

send() returns True only when the provider accepted the message. Callers
decide what a failed send means; the gateway never raises for delivery
problems.
"""

import asyncio
from typing import Protocol

import sendgrid
import structlog
from sendgrid.helpers.mail import Mail

from core.config import Settings

logger = structlog.get_logger()


class EmailGateway(Protocol):
    async def send(self, to_address: str, subject: str, html_body: str) -> bool: ...


class SendGridEmailGateway:
    def __init__(self, api_key: str, from_email: str):
        if not api_key.strip():
            raise ValueError("SendGrid API key is required for the sendgrid email backend")
        self.client = sendgrid.SendGridAPIClient(api_key=api_key)
        self.from_email = from_email

    async def send(self, to_address: str, subject: str, html_body: str) -> bool:
        try:
            email = Mail(
                from_email=self.from_email,
                to_emails=to_address,
                subject=subject,
                html_content=html_body,
            )
            # The SendGrid client is blocking; keep it off the event loop.
            response = await asyncio.to_thread(self.client.send, email)
            accepted = response.status_code in (200, 201, 202)
            if not accepted:
                logger.warning("email.rejected", to=to_address, status_code=response.status_code)
            return accepted
        except Exception as exc:  # noqa: BLE001
            logger.error("email.send_failed", to=to_address, subject=subject, error=str(exc))
            return False


class ConsoleEmailGateway:
    """Development sender: records every message and logs it."""

    def __init__(self):
        self.outbox: list[dict[str, str]] = []

    async def send(self, to_address: str, subject: str, html_body: str) -> bool:
        self.outbox.append({"to": to_address, "subject": subject, "html": html_body})
        logger.info("email.console", to=to_address, subject=subject, body_chars=len(html_body))
        return True


def build_email_gateway(settings: Settings) -> EmailGateway:
    """Gateway for the configured backend. Unknown backends fail fast."""
    backend = settings.email_backend.strip().lower()
    if backend == "sendgrid":
        return SendGridEmailGateway(settings.sendgrid_api_key, settings.email_from)
    if backend == "console":
        return ConsoleEmailGateway()
    raise ValueError(f"Unknown email backend '{settings.email_backend}'")
