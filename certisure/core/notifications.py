from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

import requests

from certisure.core.config import settings

logger = logging.getLogger(__name__)

DEFAULT_SUBJECT = "Your certificate from {{organization_name}}"
DEFAULT_BODY = (
    "<p>Dear {{recipient_name}},</p>"
    "<p>Congratulations! {{organization_name}} has issued your certificate for {{course_name}}.</p>"
    "<p>Certificate ID: {{certificate_id}}</p>"
    '<p><a href="{{verification_url}}">View and verify your certificate</a></p>'
)


@dataclass(slots=True)
class CertificateMessage:
    recipient_email: str
    subject: str
    html: str
    certificate_id: str
    verification_url: str | None = None


class NotificationDispatcher:
    def __init__(self, webhook_url: str | None = None) -> None:
        self.webhook_url = settings.notification_webhook_url if webhook_url is None else webhook_url

    @property
    def enabled(self) -> bool:
        return bool(self.webhook_url)

    async def dispatch(self, payload: dict[str, object]) -> None:
        if not self.webhook_url:
            raise ValueError("Notification webhook is not configured")

        def _post() -> None:
            response = requests.post(self.webhook_url, json=payload, timeout=10)
            response.raise_for_status()

        await asyncio.to_thread(_post)

    async def notify_certificate_issued(self, message: CertificateMessage) -> bool:
        if not self.enabled:
            return False
        try:
            await self.dispatch(
                {
                    "event": "certificate.issued",
                    "to": message.recipient_email,
                    "subject": message.subject,
                    "html": message.html,
                    "certificate_id": message.certificate_id,
                    "verification_url": message.verification_url,
                }
            )
        except Exception:
            logger.exception("Certificate notification failed certificate=%s", message.certificate_id)
            return False
        return True
