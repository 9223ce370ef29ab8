"""Notification transport: SendGrid e-mail with per-recipient fan-out."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections import defaultdict
from typing import Any

import httpx

from src.config import settings
from src.modules.notifications.constants import (
    BODIES,
    SENDGRID_MAIL_PATH,
    SENDGRID_TIMEOUT_SECONDS,
    SUBJECTS,
)
from src.modules.notifications.schemas import DeliveryResult, DispatchResult, Recipient

logger = logging.getLogger(__name__)


def render(template: str, context: dict[str, Any]) -> tuple[str, str]:
    """Return ``(subject, body)`` for a template; unknown keys render empty."""
    values = defaultdict(str, {k: "" if v is None else v for k, v in context.items()})
    subject = SUBJECTS.get(template, template).format_map(values)
    body = BODIES.get(template, "").format_map(values)
    return subject, body


class NotificationSender(ABC):
    @abstractmethod
    async def send(
        self,
        recipients: list[Recipient],
        subject: str | None,
        template: str,
        context: dict[str, Any],
    ) -> DispatchResult:
        """Deliver one notification to every recipient independently."""


class SendGridNotificationSender(NotificationSender):
    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        from_email: str | None = None,
        from_name: str | None = None,
        override_email: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = api_key if api_key is not None else settings.sendgrid_api_key
        self.base_url = base_url or settings.sendgrid_base_url
        self.from_email = from_email or settings.notification_from_email
        self.from_name = from_name or settings.notification_from_name
        self.override_email = (
            override_email if override_email is not None else settings.notification_override_email
        )
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=SENDGRID_TIMEOUT_SECONDS,
                transport=self._transport,
            )
        return self._client

    async def send(
        self,
        recipients: list[Recipient],
        subject: str | None,
        template: str,
        context: dict[str, Any],
    ) -> DispatchResult:
        rendered_subject, body = render(template, context)
        subject = subject or rendered_subject
        results = await asyncio.gather(
            *(self._send_one(recipient, subject, body) for recipient in recipients)
        )
        dispatch = DispatchResult(results=list(results))
        if dispatch.failed:
            logger.warning(
                "%s: %d of %d recipients failed",
                template, len(dispatch.failed), len(dispatch.results),
            )
        return dispatch

    async def _send_one(self, recipient: Recipient, subject: str, body: str) -> DeliveryResult:
        if not self.api_key:
            return DeliveryResult(
                recipient=recipient.email,
                success=False,
                error="SendGrid not configured",
                retryable=False,
            )

        to_email = self.override_email or recipient.email
        to: dict[str, str] = {"email": to_email}
        if recipient.name and not self.override_email:
            to["name"] = recipient.name
        payload = {
            "personalizations": [{"to": [to]}],
            "from": {"email": self.from_email, "name": self.from_name},
            "subject": subject,
            "content": [{"type": "text/plain", "value": body}],
        }

        client = await self._get_client()
        try:
            response = await client.post(
                SENDGRID_MAIL_PATH,
                headers={"Authorization": f"Bearer {self.api_key}"},
                json=payload,
            )
        except httpx.TimeoutException:
            logger.error("SendGrid timeout sending to %s", recipient.email)
            return DeliveryResult(recipient=recipient.email, success=False, error="timeout")
        except httpx.RequestError as exc:
            logger.error("SendGrid connection error sending to %s: %s", recipient.email, exc)
            return DeliveryResult(recipient=recipient.email, success=False, error=str(exc))

        if response.status_code == 202:
            return DeliveryResult(
                recipient=recipient.email,
                success=True,
                message_id=response.headers.get("x-message-id"),
            )

        retryable = response.status_code == 429 or response.status_code >= 500
        logger.error(
            "SendGrid returned %d sending to %s", response.status_code, recipient.email
        )
        return DeliveryResult(
            recipient=recipient.email,
            success=False,
            error=f"SendGrid HTTP {response.status_code}",
            retryable=retryable,
        )

    async def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None
