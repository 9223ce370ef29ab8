"""Celery tasks for event outbox processing."""

import logging

from celery_app import celery
from src.modules.events.outbox_processor import OutboxProcessor

logger = logging.getLogger(__name__)


@celery.task(name="src.modules.events.tasks.process_outbox")
def process_outbox():
    """Deliver a batch of pending outbox events (e.g. order schedule changes)."""
    stats = OutboxProcessor().process_batch()
    if stats["processed"] or stats["failed"]:
        logger.info("process_outbox complete: %s", stats)
    return stats


@celery.task(name="src.modules.events.tasks.cleanup_processed_events")
def cleanup_processed_events():
    """Delete expired processed_events and old completed outbox entries."""
    return OutboxProcessor().cleanup_expired()
