"""Celery tasks for the notification sweeps."""

from __future__ import annotations

import asyncio
import logging

from celery_app import celery
from src.config import settings
from src.database.engine import async_session
from src.modules.notifications.sender import SendGridNotificationSender
from src.modules.notifications.service import ConfirmationSweep, SurveySweep
from src.modules.order.repository import SqlOrderRepository
from src.modules.portal.repository import SqlPortalRepository

logger = logging.getLogger(__name__)


async def _confirmation_sweep_async(preserve_flags: bool) -> dict:
    """Async implementation: send due pickup/delivery confirmations."""
    sender = SendGridNotificationSender()
    try:
        async with async_session() as session:
            sweep = ConfirmationSweep(
                orders=SqlOrderRepository(session),
                portals=SqlPortalRepository(session),
                sender=sender,
            )
            # The sweep commits each order as it goes
            summary = await sweep.run(preserve_flags=preserve_flags)
            return summary.model_dump(mode="json")
    finally:
        await sender.close()


async def _survey_sweep_async() -> dict:
    """Async implementation: send due customer surveys."""
    sender = SendGridNotificationSender()
    try:
        async with async_session() as session:
            sweep = SurveySweep(orders=SqlOrderRepository(session), sender=sender)
            summary = await sweep.run()
            return summary.model_dump(mode="json")
    finally:
        await sender.close()


# ---------------------------------------------------------------------------
# Celery task definitions
# ---------------------------------------------------------------------------


@celery.task(name="src.modules.notifications.tasks.send_confirmation_notifications")
def send_confirmation_notifications(preserve_flags: bool | None = None):
    """Pickup/delivery confirmations; scheduled several times a day."""
    if preserve_flags is None:
        preserve_flags = settings.preserve_notification_flags
    stats = asyncio.run(_confirmation_sweep_async(preserve_flags))
    logger.info("send_confirmation_notifications complete: %s", stats)
    return stats


@celery.task(name="src.modules.notifications.tasks.send_survey_notifications")
def send_survey_notifications():
    """Customer surveys and MMI pre-surveys; scheduled once a day."""
    stats = asyncio.run(_survey_sweep_async())
    logger.info("send_survey_notifications complete: %s", stats)
    return stats
