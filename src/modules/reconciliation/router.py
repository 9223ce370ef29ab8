"""Reconciliation API router: TMS webhook and on-demand reconcile."""

from __future__ import annotations

import hmac
import logging
import uuid
from datetime import UTC, datetime

from fastapi import APIRouter, Depends, Query, Request
from slowapi import Limiter
from slowapi.util import get_remote_address
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import settings
from src.database.session import get_db
from src.exceptions import UnauthorizedException
from src.models.enums import TmsWebhookEvent
from src.modules.events.outbox_service import OutboxService
from src.modules.order.repository import SqlOrderRepository
from src.modules.portal.repository import SqlPortalRepository
from src.modules.reconciliation.constants import WEBHOOK_SECRET_HEADER
from src.modules.reconciliation.schemas import ReconciliationResult
from src.modules.reconciliation.service import OrderReconciliationService
from src.modules.tms.client import TmsClient, get_tms_client
from src.modules.tms.schemas import TmsWebhookPayload, WebhookAck
from src.schemas.responses import ERROR_RESPONSES

logger = logging.getLogger(__name__)

router = APIRouter(tags=["reconciliation"], responses=ERROR_RESPONSES)
limiter = Limiter(key_func=get_remote_address, storage_uri=settings.rate_limit_storage_uri)

_KNOWN_EVENTS = {event.value for event in TmsWebhookEvent}


def build_reconciliation_service(
    session: AsyncSession, tms_client: TmsClient
) -> OrderReconciliationService:
    return OrderReconciliationService(
        orders=SqlOrderRepository(session),
        portals=SqlPortalRepository(session),
        tms_client=tms_client,
        outbox=OutboxService(session),
    )


def verify_webhook_secret(request: Request) -> None:
    expected = settings.tms_webhook_secret
    if not expected:
        return
    supplied = request.headers.get(WEBHOOK_SECRET_HEADER, "")
    if not hmac.compare_digest(supplied.encode(), expected.encode()):
        raise UnauthorizedException("Invalid webhook secret")


@router.post("/webhooks/tms", response_model=WebhookAck)
@limiter.limit("200/15minutes")
async def receive_tms_webhook(
    request: Request,
    payload: TmsWebhookPayload,
    _: None = Depends(verify_webhook_secret),
    session: AsyncSession = Depends(get_db),
    tms_client: TmsClient = Depends(get_tms_client),
):
    """Reconcile the order behind a TMS order event.

    Events without an embedded order object trigger a pull from the TMS.
    """
    if payload.event not in _KNOWN_EVENTS:
        logger.info("Ignoring TMS event %s for %s", payload.event, payload.order_guid)
        return WebhookAck(
            success=False,
            message=f"Event {payload.event} ignored",
            processed_at=datetime.now(UTC),
        )

    service = build_reconciliation_service(session, tms_client)
    if payload.event == TmsWebhookEvent.ORDER_REMOVED.value:
        result = await service.archive_external(payload.order_guid, payload.changed_at)
    else:
        result = await service.reconcile_external(payload.order_guid, snapshot=payload.snapshot)

    return WebhookAck(
        success=True,
        message=result.reason or f"Order {result.ref_id} {result.outcome.value.lower()}",
        order_id=str(result.order_id),
        outcome=result.outcome.value,
        processed_at=datetime.now(UTC),
    )


@router.post("/orders/{order_id}/reconcile", response_model=ReconciliationResult)
@limiter.limit("30/minute")
async def reconcile_order(
    request: Request,
    order_id: uuid.UUID,
    force: bool = Query(False),
    session: AsyncSession = Depends(get_db),
    tms_client: TmsClient = Depends(get_tms_client),
):
    service = build_reconciliation_service(session, tms_client)
    return await service.reconcile(order_id, force=force)
