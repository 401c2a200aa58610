"""Outbound email delivery (console for development, SendGrid in production)."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from email.utils import parseaddr

import httpx

from config import settings

logger = logging.getLogger(__name__)

SENDGRID_SEND_URL = "https://api.sendgrid.com/v3/mail/send"


class EmailDeliveryError(RuntimeError):
    pass


class EmailBackend(ABC):
    @abstractmethod
    async def send_email(self, to: str, subject: str, text_body: str, html_body: str) -> None:
        """Deliver one message or raise EmailDeliveryError."""


class ConsoleEmailBackend(EmailBackend):
    """Logs emails instead of sending them."""

    async def send_email(self, to: str, subject: str, text_body: str, html_body: str) -> None:
        logger.info("EMAIL to=%s from=%s subject=%s\n%s", to, settings.EMAIL_FROM, subject, text_body)


class SendGridEmailBackend(EmailBackend):
    def __init__(self, api_key: str, timeout_seconds: float = 10.0):
        self.api_key = api_key
        self.timeout_seconds = timeout_seconds

    async def send_email(self, to: str, subject: str, text_body: str, html_body: str) -> None:
        from_name, from_address = parseaddr(settings.EMAIL_FROM)
        payload = {
            "personalizations": [{"to": [{"email": to}]}],
            "from": {"email": from_address, "name": from_name or None},
            "subject": subject,
            "content": [
                {"type": "text/plain", "value": text_body},
                {"type": "text/html", "value": html_body},
            ],
        }
        async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
            response = await client.post(
                SENDGRID_SEND_URL,
                json=payload,
                headers={"Authorization": f"Bearer {self.api_key}"},
            )
        if response.status_code not in (200, 202):
            raise EmailDeliveryError(f"SendGrid returned status {response.status_code}")
        logger.info("Email sent via SendGrid to %s", to)


def get_email_backend() -> EmailBackend:
    backend = (settings.EMAIL_BACKEND or "console").strip().lower()
    if backend == "sendgrid":
        if not settings.SENDGRID_API_KEY:
            raise EmailDeliveryError("SENDGRID_API_KEY is not configured")
        return SendGridEmailBackend(settings.SENDGRID_API_KEY)
    return ConsoleEmailBackend()


async def send_login_code_email(to: str, code: str) -> None:
    minutes = settings.LOGIN_CODE_TTL_MINUTES
    text_body = (
        f"Your Asset Organizer sign-in code is {code}.\n\n"
        f"It expires in {minutes} minutes. If you did not request it, ignore this email."
    )
    html_body = (
        f"<p>Your Asset Organizer sign-in code is <strong>{code}</strong>.</p>"
        f"<p>It expires in {minutes} minutes. If you did not request it, ignore this email.</p>"
    )
    await get_email_backend().send_email(to, "Your sign-in code", text_body, html_body)
