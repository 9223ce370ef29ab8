"""OrderReconciliationService: merge a TMS snapshot into the local order."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from datetime import UTC, datetime

from src.config import settings
from src.exceptions import (
    ExternalIdConflictException,
    NotFoundException,
    PortalNotFoundException,
)
from src.models.enums import DateType, OrderStatus, ReconciliationOutcome
from src.modules.events.outbox_service import OutboxService
from src.modules.order.constants import ORDER_EVENT_TYPES, TMS_REMOVED_STATUS
from src.modules.order.repository import OrderRepository
from src.modules.order.schemas import OrderDocument, Schedule, TmsMirror
from src.modules.portal.repository import PortalRepository
from src.modules.reconciliation.audit import audit_customer_contact
from src.modules.reconciliation.dates import (
    StopDates,
    derive_delivery_dates,
    derive_pickup_dates,
)
from src.modules.reconciliation.pricing import reconcile_vehicles
from src.modules.reconciliation.schemas import ReconciliationResult
from src.modules.reconciliation.status import normalize_status
from src.modules.reconciliation.visibility import resolve_location
from src.modules.tms.client import TmsClient
from src.modules.tms.schemas import TmsOrderSnapshot

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


def build_sync_key(order_id: uuid.UUID, snapshot: TmsOrderSnapshot) -> str | None:
    """Idempotency key for applying ``snapshot``; None when it has no change stamp."""
    if snapshot.changed_at is None:
        return None
    return f"{order_id}:{snapshot.changed_at.isoformat()}"


def _date_type(raw: str | None) -> DateType:
    try:
        return DateType((raw or "").strip().lower())
    except ValueError:
        return DateType.ESTIMATED


def _isoformat(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


class OrderReconciliationService:
    def __init__(
        self,
        orders: OrderRepository,
        portals: PortalRepository,
        tms_client: TmsClient,
        outbox: OutboxService | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.orders = orders
        self.portals = portals
        self.tms_client = tms_client
        self.outbox = outbox
        self.clock = clock

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def reconcile(
        self,
        order_id: uuid.UUID,
        snapshot: TmsOrderSnapshot | None = None,
        force: bool = False,
    ) -> ReconciliationResult:
        """Apply the current TMS view of an order to the local record.

        When ``snapshot`` is not supplied it is pulled from the TMS. A
        snapshot already applied (same ``changed_at``) is a no-op unless
        ``force`` is set. Nothing is written when the portal cannot be
        resolved or the snapshot belongs to a different TMS order.
        """
        order = await self.orders.get(order_id)
        if order is None:
            raise NotFoundException(f"Order {order_id} not found")

        external_id = order.tms.external_id
        if not external_id:
            return self._result(order, ReconciliationOutcome.SKIPPED, reason="Order has no TMS id")

        if snapshot is None:
            snapshot = await self.tms_client.get_order(external_id)
            if snapshot is None:
                return self._result(
                    order, ReconciliationOutcome.SKIPPED, reason="TMS returned no order data"
                )

        if snapshot.guid != external_id:
            raise ExternalIdConflictException(
                f"Order {order.ref_id} is linked to TMS order {external_id}, "
                f"snapshot is for {snapshot.guid}",
                details=[{"order_id": str(order.id), "external_id": external_id,
                          "snapshot_guid": snapshot.guid}],
            )

        sync_key = build_sync_key(order.id, snapshot)
        if not force and sync_key is not None and order.sync_key == sync_key:
            logger.info("Order %s already reconciled at %s", order.ref_id, sync_key)
            return self._result(order, ReconciliationOutcome.DUPLICATE, reason="Snapshot already applied")

        portal = await self.portals.get(order.portal_id or "")
        if portal is None:
            logger.error(
                "Portal %s not found, order %s not reconciled", order.portal_id, order.ref_id
            )
            raise PortalNotFoundException(
                f"Portal {order.portal_id} not found for order {order.ref_id}",
                details=[{"order_id": str(order.id), "portal_id": order.portal_id}],
            )

        mismatches = audit_customer_contact(snapshot.customer, portal, ref_id=order.ref_id)

        merged, ambiguities = self.merge(order, snapshot, self.clock(), sync_key)
        await self.orders.save(merged)

        schedule_changed = self._estimates_changed(order.schedule, merged.schedule)
        if schedule_changed:
            await self._publish_schedule_updated(order, merged)

        logger.info(
            "Reconciled order %s (TMS %s, status %s)",
            merged.ref_id, snapshot.status, merged.status,
        )
        return ReconciliationResult(
            order_id=merged.id,
            ref_id=merged.ref_id,
            outcome=ReconciliationOutcome.RECONCILED,
            status=merged.status,
            sync_key=merged.sync_key,
            schedule_changed=schedule_changed,
            contact_mismatches=mismatches,
            vehicle_ambiguities=ambiguities,
        )

    async def reconcile_external(
        self,
        external_id: str,
        snapshot: TmsOrderSnapshot | None = None,
        force: bool = False,
    ) -> ReconciliationResult:
        order = await self.orders.get_by_external_id(external_id)
        if order is None:
            raise NotFoundException(f"No order linked to TMS order {external_id}")
        return await self.reconcile(order.id, snapshot=snapshot, force=force)

    async def archive_external(
        self, external_id: str, changed_at: datetime | None = None
    ) -> ReconciliationResult:
        """Archive the order behind a TMS order that was removed upstream."""
        order = await self.orders.get_by_external_id(external_id)
        if order is None:
            raise NotFoundException(f"No order linked to TMS order {external_id}")
        if order.status == OrderStatus.ARCHIVED.value:
            return self._result(order, ReconciliationOutcome.DUPLICATE, reason="Order already archived")

        archived = order.model_copy(
            deep=True,
            update={
                "status": OrderStatus.ARCHIVED.value,
                "tms": order.tms.model_copy(
                    update={
                        "external_status": TMS_REMOVED_STATUS,
                        "updated_at": changed_at or order.tms.updated_at,
                    }
                ),
            },
        )
        await self.orders.save(archived)
        logger.info("Archived order %s after TMS removal of %s", order.ref_id, external_id)
        return self._result(archived, ReconciliationOutcome.RECONCILED)

    # ------------------------------------------------------------------
    # Merge
    # ------------------------------------------------------------------

    def merge(
        self,
        order: OrderDocument,
        snapshot: TmsOrderSnapshot,
        now: datetime,
        sync_key: str | None = None,
    ) -> tuple[OrderDocument, list[str]]:
        """Return the reconciled copy of ``order`` and any vehicle ambiguities.

        Pure: depends only on its arguments and leaves ``order`` untouched.
        """
        pickup = derive_pickup_dates(snapshot, now)
        delivery = derive_delivery_dates(snapshot, now)

        status = normalize_status(snapshot.status) or order.status
        if order.status == OrderStatus.ARCHIVED.value:
            status = order.status

        sentinel = settings.withheld_address_sentinel
        origin = resolve_location(order.origin, snapshot.pickup, order.is_partial_order, sentinel)
        destination = resolve_location(
            order.destination, snapshot.delivery, order.is_partial_order, sentinel
        )

        vehicles = reconcile_vehicles(snapshot.vehicles, order.vehicles, order.total_pricing)

        if order.transport_type == settings.white_glove_transport_type:
            transport_type = order.transport_type
        elif snapshot.transport_type:
            transport_type = snapshot.transport_type.upper()
        else:
            transport_type = order.transport_type

        pickup_date_type = (
            DateType.EXACT
            if status == OrderStatus.PICKED_UP.value
            else _date_type(snapshot.pickup.date_type)
        )
        delivery_date_type = (
            DateType.EXACT
            if status == OrderStatus.DELIVERED.value
            else _date_type(snapshot.delivery.date_type)
        )

        customer = order.customer.model_copy(
            update={"notes": (snapshot.customer.notes if snapshot.customer else None) or order.customer.notes}
        )

        merged = order.model_copy(
            deep=True,
            update={
                "status": status,
                "reg": snapshot.purchase_order_number or order.reg,
                "transport_type": transport_type,
                "pickup_date_type": pickup_date_type,
                "delivery_date_type": delivery_date_type,
                "tms": TmsMirror(
                    external_id=order.tms.external_id,
                    external_status=snapshot.normalized_status or order.tms.external_status,
                    created_at=snapshot.created_at or order.tms.created_at,
                    updated_at=snapshot.changed_at or order.tms.updated_at,
                ),
                "schedule": self._merge_schedule(order.schedule, pickup, delivery),
                "origin": origin,
                "destination": destination,
                "customer": customer,
                "vehicles": vehicles.vehicles,
                "total_pricing": vehicles.total_pricing,
                # Awaiting-confirmation flags are owned by the sweeps
                "notifications": order.notifications.model_copy(deep=True),
                "sync_key": sync_key if sync_key is not None else order.sync_key,
            },
        )
        return merged, vehicles.ambiguities

    @staticmethod
    def _merge_schedule(current: Schedule, pickup: StopDates, delivery: StopDates) -> Schedule:
        if delivery.actual_is_capture_stamp and current.delivery_completed is not None:
            delivery_completed = current.delivery_completed
        else:
            delivery_completed = delivery.actual or current.delivery_completed

        return current.model_copy(
            update={
                "pickup_estimated": (
                    [pickup.estimated] if pickup.estimated else list(current.pickup_estimated)
                ),
                "pickup_estimated_end": pickup.estimated_end or current.pickup_estimated_end,
                "delivery_estimated": (
                    [delivery.estimated] if delivery.estimated else list(current.delivery_estimated)
                ),
                "delivery_estimated_end": delivery.estimated_end or current.delivery_estimated_end,
                "pickup_completed": pickup.actual or current.pickup_completed,
                "delivery_completed": delivery_completed,
            }
        )

    # ------------------------------------------------------------------
    # Side effects
    # ------------------------------------------------------------------

    @staticmethod
    def _estimates_changed(before: Schedule, after: Schedule) -> bool:
        return (
            before.pickup_estimated != after.pickup_estimated
            or before.delivery_estimated != after.delivery_estimated
        )

    async def _publish_schedule_updated(self, before: OrderDocument, after: OrderDocument) -> None:
        if self.outbox is None:
            logger.info("Schedule changed for order %s (no outbox configured)", after.ref_id)
            return

        def first(values: list[datetime]) -> str | None:
            return _isoformat(values[0]) if values else None

        await self.outbox.publish_event(
            event_type=ORDER_EVENT_TYPES["schedule_updated"],
            aggregate_type="order",
            aggregate_id=str(after.id),
            payload={
                "order_id": str(after.id),
                "ref_id": after.ref_id,
                "external_id": after.tms.external_id,
                "portal_id": after.portal_id,
                "previous_pickup_estimated": first(before.schedule.pickup_estimated),
                "pickup_estimated": first(after.schedule.pickup_estimated),
                "previous_delivery_estimated": first(before.schedule.delivery_estimated),
                "delivery_estimated": first(after.schedule.delivery_estimated),
            },
        )

    @staticmethod
    def _result(
        order: OrderDocument, outcome: ReconciliationOutcome, reason: str | None = None
    ) -> ReconciliationResult:
        return ReconciliationResult(
            order_id=order.id,
            ref_id=order.ref_id,
            outcome=outcome,
            status=order.status,
            sync_key=order.sync_key,
            reason=reason,
        )
