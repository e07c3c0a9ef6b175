"""Email messages and the SendGrid v3 HTTP sender."""

from dataclasses import dataclass
from typing import Optional

import httpx
import structlog

from taskhub.config import settings

logger = structlog.get_logger()


@dataclass(frozen=True)
class EmailMessage:
    to: str
    subject: str
    text: str
    kind: str = "generic"


def welcome_email(email: str, name: str) -> EmailMessage:
    return EmailMessage(
        to=email,
        subject="Welcome to Taskhub!",
        text=f"Hi, {name}! Let us know how you get along with the app.",
        kind="welcome",
    )


def cancellation_email(email: str, name: str) -> EmailMessage:
    return EmailMessage(
        to=email,
        subject="Sorry to see you go",
        text=f"Bye, {name}! Is there anything we could have done to keep you on board?",
        kind="cancellation",
    )


class SendGridSender:
    """Deliver an EmailMessage through SendGrid's /v3/mail/send endpoint.

    Learn: With no API key configured (local dev, tests) messages are
    logged and skipped rather than treated as errors.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        api_url: Optional[str] = None,
        sender: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = settings.sendgrid_api_key if api_key is None else api_key
        self.api_url = api_url or settings.sendgrid_api_url
        self.sender = sender or settings.email_from
        self.timeout = timeout or settings.email_timeout_seconds
        self._transport = transport

    def _payload(self, message: EmailMessage) -> dict:
        return {
            "personalizations": [{"to": [{"email": message.to}]}],
            "from": {"email": self.sender},
            "subject": message.subject,
            "content": [{"type": "text/plain", "value": message.text}],
        }

    async def send(self, message: EmailMessage) -> bool:
        """Send one message. Returns False if delivery was skipped.

        Raises httpx.HTTPError on transport failures or non-2xx responses.
        """
        if not self.api_key:
            logger.info("taskhub.email_skipped", kind=message.kind, reason="no_api_key")
            return False

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as c:
            r = await c.post(
                self.api_url,
                json=self._payload(message),
                headers={"Authorization": f"Bearer {self.api_key}"},
            )
            r.raise_for_status()

        logger.info("taskhub.email_sent", kind=message.kind, status=r.status_code)
        return True
