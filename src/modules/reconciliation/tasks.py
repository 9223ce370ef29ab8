"""Celery tasks for order reconciliation: on-demand and periodic TMS pulls."""

from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import UTC, datetime

from celery_app import celery
from src.config import settings
from src.database.engine import async_session
from src.exceptions import AppException
from src.models.enums import ReconciliationOutcome
from src.modules.order.repository import SqlOrderRepository
from src.modules.reconciliation.schemas import ActiveOrderSyncSummary
from src.modules.tms.client import close_tms_client, get_tms_client

logger = logging.getLogger(__name__)


async def _reconcile_order_async(order_id_str: str, force: bool = False) -> dict:
    """Async implementation: pull and reconcile a single order."""
    from src.modules.reconciliation.router import build_reconciliation_service

    try:
        async with async_session() as session:
            service = build_reconciliation_service(session, get_tms_client())
            result = await service.reconcile(uuid.UUID(order_id_str), force=force)
            await session.commit()
            return result.model_dump(mode="json")
    finally:
        await close_tms_client()


async def _sync_active_orders_async(batch_size: int | None = None) -> dict:
    """Async implementation: re-pull every open order that the TMS knows about."""
    from src.modules.reconciliation.router import build_reconciliation_service

    summary = ActiveOrderSyncSummary(started_at=datetime.now(UTC))
    tms_client = get_tms_client()

    try:
        async with async_session() as session:
            candidates = await SqlOrderRepository(session).list_active_synced(
                batch_size or settings.active_order_sync_batch_size
            )

        for order in candidates:
            summary.checked += 1
            try:
                async with async_session() as session:
                    service = build_reconciliation_service(session, tms_client)
                    result = await service.reconcile(order.id)
                    await session.commit()
            except AppException as exc:
                logger.warning(
                    "Active sync skipped order %s: %s (%s)", order.ref_id, exc.message, exc.code
                )
                summary.failed += 1
                continue
            except Exception:
                logger.exception("Active sync failed for order %s", order.ref_id)
                summary.failed += 1
                continue

            if result.outcome == ReconciliationOutcome.RECONCILED:
                summary.reconciled += 1
            elif result.outcome == ReconciliationOutcome.DUPLICATE:
                summary.duplicates += 1
            else:
                summary.skipped += 1
    finally:
        await close_tms_client()

    summary.finished_at = datetime.now(UTC)
    return summary.model_dump(mode="json")


# ---------------------------------------------------------------------------
# Celery task definitions
# ---------------------------------------------------------------------------


@celery.task(name="src.modules.reconciliation.tasks.reconcile_order")
def reconcile_order(order_id: str, force: bool = False):
    """Pull the TMS snapshot for one order and reconcile it.

    No retry: a TMS outage is picked up by the next active-order sync.
    """
    result = asyncio.run(_reconcile_order_async(order_id, force))
    logger.info("reconcile_order complete for %s: %s", order_id, result["outcome"])
    return result


@celery.task(name="src.modules.reconciliation.tasks.sync_active_orders")
def sync_active_orders(batch_size: int | None = None):
    """Periodic pull + reconcile of non-terminal orders linked to the TMS."""
    stats = asyncio.run(_sync_active_orders_async(batch_size))
    logger.info("sync_active_orders complete: %s", stats)
    return stats
