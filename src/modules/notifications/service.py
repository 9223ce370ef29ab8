"""Notification sweeps: awaiting-confirmation and time-windowed surveys.

Both sweeps load their candidates up front and then handle each order in
its own transaction, committed as soon as the order is done. One order
failing is rolled back, logged and counted, never fatal to the run.
Awaiting-confirmation flags are only ever cleared here.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from datetime import UTC, datetime, timedelta
from typing import Any

from src.config import settings
from src.models.enums import NotificationChannel, NotificationStatus
from src.modules.notifications.constants import (
    CUSTOMER_SURVEY_TEMPLATE,
    DELIVERY_CONFIRMATION_TEMPLATE,
    MMI_PRE_SURVEY_TEMPLATE,
    PICKUP_CONFIRMATION_TEMPLATE,
)
from src.modules.notifications.eligibility import (
    ConfirmationDecision,
    delivery_confirmation_decision,
    is_mmi_pre_survey_due,
    is_standard_survey_due,
    pickup_confirmation_decision,
)
from src.modules.notifications.recipients import resolve_recipients
from src.modules.notifications.schemas import (
    ConfirmationSweepSummary,
    DispatchResult,
    Recipient,
    SurveySweepSummary,
)
from src.modules.notifications.sender import NotificationSender
from src.modules.order.repository import OrderRepository
from src.modules.order.schemas import Location, NotificationRecord, OrderDocument
from src.modules.portal.repository import PortalRepository
from src.modules.reconciliation.dates import format_display_date

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _place(location: Location) -> str:
    parts = [location.address.city, location.address.state]
    return ", ".join(p for p in parts if p)


def order_context(order: OrderDocument) -> dict[str, Any]:
    pickup = order.schedule.pickup_reference
    delivery = order.schedule.delivery_reference
    return {
        "order_id": str(order.id),
        "ref_id": order.ref_id,
        "vehicles": ", ".join(
            " ".join(p for p in (v.year, v.make, v.model) if p) for v in order.vehicles
        ),
        "origin": _place(order.origin),
        "destination": _place(order.destination),
        "pickup_date": format_display_date(pickup),
        "delivery_date": format_display_date(delivery),
        "customer_name": order.customer.name,
    }


def _record(dispatch: DispatchResult, now: datetime, previous: NotificationRecord) -> NotificationRecord:
    if dispatch.success:
        return NotificationRecord(
            status=NotificationStatus.SENT,
            sent_at=now,
            recipient_email=", ".join(r.recipient for r in dispatch.succeeded),
        )
    return previous.model_copy(
        update={"status": NotificationStatus.FAILED, "failed_at": now}
    )


class ConfirmationSweep:
    """Pickup and delivery confirmations for orders awaiting them."""

    def __init__(
        self,
        orders: OrderRepository,
        portals: PortalRepository,
        sender: NotificationSender,
        clock: Callable[[], datetime] = _utcnow,
        mmi_portal_ids: Iterable[str] | None = None,
        cutoff_days: int | None = None,
        recent_hours: int | None = None,
    ) -> None:
        self.orders = orders
        self.portals = portals
        self.sender = sender
        self.clock = clock
        self.mmi_portal_ids = mmi_portal_ids
        self.cutoff_days = settings.notification_cutoff_days if cutoff_days is None else cutoff_days
        self.recent_hours = (
            settings.confirmation_recent_hours if recent_hours is None else recent_hours
        )

    async def run(self, preserve_flags: bool = False) -> ConfirmationSweepSummary:
        """Process every awaiting order once.

        ``preserve_flags`` is the catch-up mode: status gates are relaxed and
        no awaiting flag is cleared.
        """
        now = self.clock()
        summary = ConfirmationSweepSummary(preserve_flags=preserve_flags, started_at=now)
        updated_since = now - timedelta(days=self.cutoff_days)
        recent_since = now - timedelta(hours=self.recent_hours)

        pickups = await self.orders.list_awaiting_pickup(updated_since, recent_since)
        summary.pickup_candidates = len(pickups)
        for order in pickups:
            await self._contained(order, NotificationChannel.PICKUP, preserve_flags, now, summary)

        deliveries = await self.orders.list_awaiting_delivery(updated_since, recent_since)
        summary.delivery_candidates = len(deliveries)
        for order in deliveries:
            await self._contained(order, NotificationChannel.DELIVERY, preserve_flags, now, summary)

        summary.finished_at = self.clock()
        logger.info("Confirmation sweep finished: %s", summary.model_dump(exclude={"started_at", "finished_at"}))
        return summary

    async def _contained(
        self,
        order: OrderDocument,
        channel: NotificationChannel,
        preserve_flags: bool,
        now: datetime,
        summary: ConfirmationSweepSummary,
    ) -> None:
        try:
            outcome = await self.process(order, channel, preserve_flags, now)
            await self.orders.commit()
        except Exception:
            logger.exception("%s confirmation failed for order %s", channel.value, order.ref_id)
            await self.orders.rollback()
            summary.errors += 1
            return

        if outcome == "sent":
            summary.sent += 1
        elif outcome == "cleared":
            summary.flags_cleared += 1
        elif outcome == "no_recipients":
            summary.no_recipients += 1
        elif outcome == "failed":
            summary.failed += 1
        else:
            summary.skipped += 1

    async def process(
        self,
        order: OrderDocument,
        channel: NotificationChannel,
        preserve_flags: bool,
        now: datetime,
    ) -> str:
        is_pickup = channel == NotificationChannel.PICKUP
        decide = pickup_confirmation_decision if is_pickup else delivery_confirmation_decision
        decision = decide(order, preserve_flags, now, self.recent_hours)

        if decision == ConfirmationDecision.CLEAR:
            logger.info("Order %s invoiced before pickup confirmation, clearing flag", order.ref_id)
            await self.orders.save(self._clear_flag(order, channel))
            return "cleared"
        if decision == ConfirmationDecision.SKIP:
            return "skipped"

        portal = await self.portals.get(order.portal_id or "")
        if portal is None:
            logger.warning(
                "%s confirmation skipped for order %s: portal %s not found",
                channel.value, order.ref_id, order.portal_id,
            )
            return "skipped"

        recipients = resolve_recipients(order, portal, channel, self.mmi_portal_ids)
        if not recipients:
            logger.info("No %s confirmation recipients for order %s", channel.value, order.ref_id)
            return "no_recipients"

        template = PICKUP_CONFIRMATION_TEMPLATE if is_pickup else DELIVERY_CONFIRMATION_TEMPLATE
        dispatch = await self.sender.send(recipients, None, template, order_context(order))

        record_field = "pickup_confirmation" if is_pickup else "delivery_confirmation"
        notifications = order.notifications.model_copy(
            update={record_field: _record(dispatch, now, getattr(order.notifications, record_field))}
        )
        updated = order.model_copy(update={"notifications": notifications})
        if dispatch.success and not preserve_flags:
            updated = self._clear_flag(updated, channel)
        await self.orders.save(updated)

        if not dispatch.success:
            logger.warning("%s confirmation for order %s reached no recipient", channel.value, order.ref_id)
            return "failed"
        logger.info(
            "Sent %s confirmation for order %s to %d recipient(s)",
            channel.value, order.ref_id, len(dispatch.succeeded),
        )
        return "sent"

    @staticmethod
    def _clear_flag(order: OrderDocument, channel: NotificationChannel) -> OrderDocument:
        flag = (
            "awaiting_pickup_confirmation"
            if channel == NotificationChannel.PICKUP
            else "awaiting_delivery_confirmation"
        )
        notifications = order.notifications.model_copy(update={flag: False})
        return order.model_copy(update={"notifications": notifications})


class SurveySweep:
    """Customer surveys, plus the same-day pre-survey for MMI portals."""

    def __init__(
        self,
        orders: OrderRepository,
        sender: NotificationSender,
        clock: Callable[[], datetime] = _utcnow,
        mmi_portal_ids: Iterable[str] | None = None,
    ) -> None:
        self.orders = orders
        self.sender = sender
        self.clock = clock
        self.mmi_portal_ids = mmi_portal_ids

    async def run(self) -> SurveySweepSummary:
        now = self.clock()
        summary = SurveySweepSummary(started_at=now)
        widest = max(settings.survey_window_end_hours, settings.mmi_pre_survey_window_end_hours)
        earliest = min(
            settings.survey_window_start_hours, settings.mmi_pre_survey_window_start_hours
        )
        candidates = await self.orders.list_survey_candidates(
            now - timedelta(hours=widest), now - timedelta(hours=earliest)
        )
        summary.candidates = len(candidates)

        for order in candidates:
            try:
                sent, pre_sent, failed = await self.process(order, now)
                await self.orders.commit()
            except Exception:
                logger.exception("Survey processing failed for order %s", order.ref_id)
                await self.orders.rollback()
                summary.errors += 1
                continue
            summary.surveys_sent += sent
            summary.pre_surveys_sent += pre_sent
            summary.failed += failed
            if not (sent or pre_sent or failed):
                summary.skipped += 1

        summary.finished_at = self.clock()
        logger.info("Survey sweep finished: %s", summary.model_dump(exclude={"started_at", "finished_at"}))
        return summary

    async def process(self, order: OrderDocument, now: datetime) -> tuple[int, int, int]:
        """Send whichever survey notifications are due; returns (sent, pre_sent, failed)."""
        due = []
        if is_standard_survey_due(order, now):
            due.append(("survey", CUSTOMER_SURVEY_TEMPLATE))
        if is_mmi_pre_survey_due(order, now, self.mmi_portal_ids):
            due.append(("survey_reminder", MMI_PRE_SURVEY_TEMPLATE))
        if not due:
            return 0, 0, 0

        recipient = Recipient(email=order.customer.email.strip(), name=order.customer.name)
        context = order_context(order)
        context["survey_url"] = settings.survey_url_template.format(
            order_id=order.id, ref_id=order.ref_id
        )

        sent = pre_sent = failed = 0
        notifications = order.notifications
        for record_field, template in due:
            dispatch = await self.sender.send([recipient], None, template, context)
            record = _record(dispatch, now, getattr(notifications, record_field))
            notifications = notifications.model_copy(update={record_field: record})
            if not dispatch.success:
                logger.warning("%s for order %s failed, will retry next sweep", template, order.ref_id)
                failed += 1
            elif record_field == "survey":
                sent += 1
            else:
                pre_sent += 1

        await self.orders.save(order.model_copy(update={"notifications": notifications}))
        return sent, pre_sent, failed
