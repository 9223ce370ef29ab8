"""Tests for OrderReconciliationService: merge rules, idempotence, side effects."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from src.exceptions import (
    ExternalIdConflictException,
    NotFoundException,
    PortalNotFoundException,
)
from src.models.enums import AddressVisibility, DateType, ReconciliationOutcome
from src.modules.order.repository import OrderRepository
from src.modules.order.schemas import Address, OrderNotifications, Schedule, TmsMirror
from src.modules.portal.repository import PortalRepository
from src.modules.reconciliation.service import OrderReconciliationService, build_sync_key
from src.modules.tms.client import TmsClient
from tests.factories import (
    EXTERNAL_ID,
    NOW,
    make_location,
    make_order,
    make_portal,
    make_snapshot,
    make_vehicle,
)

PICKUP_ESTIMATE = datetime(2026, 3, 12, 14, 0, tzinfo=UTC)
DELIVERY_ESTIMATE = datetime(2026, 3, 16, 14, 0, tzinfo=UTC)


@pytest.fixture
def orders():
    repo = AsyncMock(spec=OrderRepository)
    repo.save.side_effect = lambda doc: doc
    return repo


@pytest.fixture
def portals():
    repo = AsyncMock(spec=PortalRepository)
    repo.get.return_value = make_portal()
    return repo


@pytest.fixture
def tms_client():
    return AsyncMock(spec=TmsClient)


@pytest.fixture
def outbox():
    return AsyncMock()


@pytest.fixture
def service(orders, portals, tms_client, outbox):
    return OrderReconciliationService(
        orders=orders,
        portals=portals,
        tms_client=tms_client,
        outbox=outbox,
        clock=lambda: NOW,
    )


def _saved(orders):
    orders.save.assert_awaited_once()
    return orders.save.await_args.args[0]


class TestBuildSyncKey:
    def test_key_from_change_stamp(self):
        order = make_order()
        assert build_sync_key(order.id, make_snapshot()) == f"{order.id}:2026-03-09T18:30:00+00:00"

    def test_no_change_stamp(self):
        assert build_sync_key(make_order().id, make_snapshot(changed_at=None)) is None


class TestReconcile:
    @pytest.mark.asyncio
    async def test_applies_snapshot(self, service, orders, outbox):
        order = make_order()
        orders.get.return_value = order

        result = await service.reconcile(order.id, snapshot=make_snapshot())

        saved = _saved(orders)
        assert result.outcome == ReconciliationOutcome.RECONCILED
        assert saved.status == "New"
        assert saved.schedule.pickup_estimated == [PICKUP_ESTIMATE]
        assert saved.schedule.delivery_estimated == [DELIVERY_ESTIMATE]
        assert saved.tms.external_status == "accepted"
        assert saved.tms.updated_at == datetime(2026, 3, 9, 18, 30, tzinfo=UTC)
        assert saved.sync_key == build_sync_key(order.id, make_snapshot())
        assert result.sync_key == saved.sync_key

    @pytest.mark.asyncio
    async def test_schedule_change_publishes_event(self, service, orders, outbox):
        order = make_order()
        orders.get.return_value = order

        result = await service.reconcile(order.id, snapshot=make_snapshot())

        assert result.schedule_changed is True
        outbox.publish_event.assert_awaited_once()
        kwargs = outbox.publish_event.await_args.kwargs
        assert kwargs["event_type"] == "order.schedule.updated"
        assert kwargs["aggregate_id"] == str(order.id)
        assert kwargs["payload"]["previous_pickup_estimated"] is None
        assert kwargs["payload"]["pickup_estimated"] == PICKUP_ESTIMATE.isoformat()

    @pytest.mark.asyncio
    async def test_unchanged_schedule_publishes_nothing(self, service, orders, outbox):
        order = make_order(
            schedule=Schedule(
                pickup_estimated=[PICKUP_ESTIMATE], delivery_estimated=[DELIVERY_ESTIMATE]
            )
        )
        orders.get.return_value = order

        result = await service.reconcile(order.id, snapshot=make_snapshot())

        assert result.schedule_changed is False
        outbox.publish_event.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_duplicate_snapshot_is_noop(self, service, orders):
        order = make_order()
        order = order.model_copy(update={"sync_key": build_sync_key(order.id, make_snapshot())})
        orders.get.return_value = order

        result = await service.reconcile(order.id, snapshot=make_snapshot())

        assert result.outcome == ReconciliationOutcome.DUPLICATE
        orders.save.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_force_reapplies_duplicate(self, service, orders):
        order = make_order()
        order = order.model_copy(update={"sync_key": build_sync_key(order.id, make_snapshot())})
        orders.get.return_value = order

        result = await service.reconcile(order.id, snapshot=make_snapshot(), force=True)

        assert result.outcome == ReconciliationOutcome.RECONCILED
        orders.save.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_order_without_tms_id_is_skipped(self, service, orders, tms_client):
        order = make_order(tms=TmsMirror())
        orders.get.return_value = order

        result = await service.reconcile(order.id)

        assert result.outcome == ReconciliationOutcome.SKIPPED
        tms_client.get_order.assert_not_awaited()
        orders.save.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_pulls_snapshot_when_not_supplied(self, service, orders, tms_client):
        order = make_order()
        orders.get.return_value = order
        tms_client.get_order.return_value = make_snapshot(status="picked_up")

        result = await service.reconcile(order.id)

        tms_client.get_order.assert_awaited_once_with(EXTERNAL_ID)
        assert result.outcome == ReconciliationOutcome.RECONCILED
        assert _saved(orders).status == "Picked Up"

    @pytest.mark.asyncio
    async def test_empty_pull_is_skipped(self, service, orders, tms_client):
        order = make_order()
        orders.get.return_value = order
        tms_client.get_order.return_value = None

        result = await service.reconcile(order.id)

        assert result.outcome == ReconciliationOutcome.SKIPPED
        orders.save.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_snapshot_for_other_tms_order_rejected(self, service, orders):
        order = make_order()
        orders.get.return_value = order

        with pytest.raises(ExternalIdConflictException):
            await service.reconcile(order.id, snapshot=make_snapshot(guid="tms-9999"))

        orders.save.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_missing_portal_writes_nothing(self, service, orders, portals, outbox):
        order = make_order()
        orders.get.return_value = order
        portals.get.return_value = None

        with pytest.raises(PortalNotFoundException):
            await service.reconcile(order.id, snapshot=make_snapshot())

        orders.save.assert_not_awaited()
        outbox.publish_event.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_missing_order(self, service, orders):
        orders.get.return_value = None

        with pytest.raises(NotFoundException):
            await service.reconcile(make_order().id, snapshot=make_snapshot())

    @pytest.mark.asyncio
    async def test_contact_mismatches_reported(self, service, orders):
        order = make_order()
        orders.get.return_value = order
        snapshot = make_snapshot(customer={"name": "Someone Else", "contact_email": "x@y.example"})

        result = await service.reconcile(order.id, snapshot=snapshot)

        assert result.contact_mismatches == ["company name", "contact email"]
        assert result.outcome == ReconciliationOutcome.RECONCILED

    @pytest.mark.asyncio
    async def test_vehicle_ambiguity_reported(self, service, orders):
        order = make_order(vehicles=[make_vehicle(year="2019"), make_vehicle(year="2021")])
        orders.get.return_value = order

        result = await service.reconcile(order.id, snapshot=make_snapshot())

        assert len(result.vehicle_ambiguities) == 1


class TestReconcileExternal:
    @pytest.mark.asyncio
    async def test_resolves_order_by_tms_id(self, service, orders):
        order = make_order()
        orders.get_by_external_id.return_value = order
        orders.get.return_value = order

        result = await service.reconcile_external(EXTERNAL_ID, snapshot=make_snapshot())

        orders.get_by_external_id.assert_awaited_once_with(EXTERNAL_ID)
        assert result.order_id == order.id

    @pytest.mark.asyncio
    async def test_unknown_tms_id(self, service, orders):
        orders.get_by_external_id.return_value = None

        with pytest.raises(NotFoundException):
            await service.reconcile_external("tms-unknown", snapshot=make_snapshot())


class TestArchiveExternal:
    @pytest.mark.asyncio
    async def test_archives_removed_order(self, service, orders):
        order = make_order()
        orders.get_by_external_id.return_value = order
        removed_at = datetime(2026, 3, 10, 9, 0, tzinfo=UTC)

        result = await service.archive_external(EXTERNAL_ID, removed_at)

        saved = _saved(orders)
        assert result.outcome == ReconciliationOutcome.RECONCILED
        assert saved.status == "Archived"
        assert saved.tms.external_status == "removed"
        assert saved.tms.updated_at == removed_at

    @pytest.mark.asyncio
    async def test_already_archived(self, service, orders):
        orders.get_by_external_id.return_value = make_order(status="Archived")

        result = await service.archive_external(EXTERNAL_ID)

        assert result.outcome == ReconciliationOutcome.DUPLICATE
        orders.save.assert_not_awaited()


class TestMerge:
    def test_reapplying_snapshot_is_idempotent(self, service):
        order = make_order()
        snapshot = make_snapshot()
        key = build_sync_key(order.id, snapshot)

        first, _ = service.merge(order, snapshot, NOW, key)
        second, _ = service.merge(first, snapshot, NOW, key)

        assert second == first

    def test_capture_stamp_not_refreshed_on_reapply(self, service):
        order = make_order()
        snapshot = make_snapshot(status="delivered", delivery={})

        first, _ = service.merge(order, snapshot, NOW)
        second, _ = service.merge(first, snapshot, NOW + timedelta(hours=3))

        assert first.schedule.delivery_completed == NOW
        assert second.schedule.delivery_completed == NOW
        assert second == first

    def test_input_is_not_mutated(self, service):
        order = make_order()
        before = order.model_copy(deep=True)

        service.merge(order, make_snapshot(status="picked_up"), NOW)

        assert order == before

    def test_archived_status_preserved(self, service):
        merged, _ = service.merge(make_order(status="Archived"), make_snapshot(status="delivered"), NOW)

        assert merged.status == "Archived"

    def test_invoiced_maps_to_delivered(self, service):
        merged, _ = service.merge(make_order(), make_snapshot(status="invoiced"), NOW)

        assert merged.status == "Delivered"
        assert merged.tms.external_status == "invoiced"
        assert merged.delivery_date_type == DateType.EXACT

    def test_picked_up_pins_pickup_date_type(self, service):
        snapshot = make_snapshot(
            status="picked_up",
            delivery={"scheduled_at": "2026-03-16T14:00:00+00:00", "date_type": "not_later_than"},
        )

        merged, _ = service.merge(make_order(), snapshot, NOW)

        assert merged.pickup_date_type == DateType.EXACT
        assert merged.delivery_date_type == DateType.NOT_LATER_THAN
        assert merged.schedule.pickup_completed == PICKUP_ESTIMATE

    def test_unknown_date_type_falls_back_to_estimated(self, service):
        snapshot = make_snapshot(pickup={"scheduled_at": "2026-03-12T14:00:00+00:00", "date_type": "asap"})

        merged, _ = service.merge(make_order(), snapshot, NOW)

        assert merged.pickup_date_type == DateType.ESTIMATED

    def test_white_glove_transport_type_kept(self, service):
        merged, _ = service.merge(make_order(transport_type="WHITEGLOVE"), make_snapshot(), NOW)

        assert merged.transport_type == "WHITEGLOVE"

    def test_transport_type_upper_cased(self, service):
        merged, _ = service.merge(make_order(transport_type=None), make_snapshot(), NOW)

        assert merged.transport_type == "OPEN"

    def test_withheld_destination_survives(self, service):
        destination = make_location(
            visibility=AddressVisibility.WITHHELD,
            address=Address(line1="Private", city="Boulder", state="CO", zip="80301"),
        )
        order = make_order(destination=destination)

        merged, _ = service.merge(order, make_snapshot(), NOW)

        assert merged.destination.address == destination.address
        assert merged.destination.visibility == AddressVisibility.WITHHELD
        assert merged.destination.contact.name == "Sam Dest"

    def test_absent_estimates_keep_persisted(self, service):
        order = make_order(schedule=Schedule(pickup_estimated=[PICKUP_ESTIMATE]))
        snapshot = make_snapshot(pickup={"scheduled_at": None})

        merged, _ = service.merge(order, snapshot, NOW)

        assert merged.schedule.pickup_estimated == [PICKUP_ESTIMATE]

    def test_repricing_updates_totals(self, service):
        snapshot = make_snapshot(vehicles=[{"make": "Toyota", "model": "Camry", "tariff": 1200}])

        merged, _ = service.merge(make_order(), snapshot, NOW)

        assert merged.total_pricing.total == Decimal("1200")
        assert merged.vehicles[0].pricing.base == Decimal("1000")


class TestConfirmationFlags:
    @pytest.mark.parametrize("status", ["picked_up", "delivered", "invoiced"])
    def test_cleared_flags_are_not_raised(self, service, status):
        order = make_order(notifications=OrderNotifications())

        merged, _ = service.merge(order, make_snapshot(status=status), NOW)

        assert merged.notifications.awaiting_pickup_confirmation is False
        assert merged.notifications.awaiting_delivery_confirmation is False

    @pytest.mark.parametrize("status", ["accepted", "picked_up", "delivered"])
    def test_pending_flags_are_left_alone(self, service, status):
        order = make_order(
            notifications=OrderNotifications(
                awaiting_pickup_confirmation=True, awaiting_delivery_confirmation=True
            )
        )

        merged, _ = service.merge(order, make_snapshot(status=status), NOW)

        assert merged.notifications.awaiting_pickup_confirmation is True
        assert merged.notifications.awaiting_delivery_confirmation is True

    @pytest.mark.asyncio
    async def test_reconcile_keeps_flags(self, service, orders):
        order = make_order(
            notifications=OrderNotifications(awaiting_delivery_confirmation=True)
        )
        orders.get.return_value = order

        await service.reconcile(order.id, snapshot=make_snapshot(status="delivered"))

        saved = _saved(orders)
        assert saved.notifications.awaiting_pickup_confirmation is False
        assert saved.notifications.awaiting_delivery_confirmation is True
