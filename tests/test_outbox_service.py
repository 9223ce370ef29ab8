"""Tests for OutboxService: events written in the caller's transaction."""

import uuid

import pytest

from src.models.enums import EventStatus
from src.modules.events.outbox_service import OutboxService


class TestOutboxServicePublish:
    """Tests for OutboxService.publish_event."""

    @pytest.mark.asyncio
    async def test_publish_event_creates_pending_event(self, async_test_session):
        service = OutboxService(async_test_session)
        order_id = str(uuid.uuid4())

        event = await service.publish_event(
            event_type="order.schedule.updated",
            aggregate_type="order",
            aggregate_id=order_id,
            payload={"ref_id": 1001, "pickup_estimated": "2026-03-12T14:00:00+00:00"},
        )

        assert event.id is not None
        assert event.event_type == "order.schedule.updated"
        assert event.aggregate_type == "order"
        assert event.status == EventStatus.PENDING
        assert event.retry_count == 0
        assert event.schema_version == 1
        assert event.payload["ref_id"] == 1001

    @pytest.mark.asyncio
    async def test_publish_event_with_custom_schema_version(self, async_test_session):
        service = OutboxService(async_test_session)

        event = await service.publish_event(
            event_type="order.schedule.updated",
            aggregate_type="order",
            aggregate_id=str(uuid.uuid4()),
            payload={},
            schema_version=2,
        )

        assert event.schema_version == 2

    @pytest.mark.asyncio
    async def test_rolled_back_transaction_publishes_nothing(self, async_test_session):
        service = OutboxService(async_test_session)
        order_id = str(uuid.uuid4())

        await service.publish_event(
            event_type="order.schedule.updated",
            aggregate_type="order",
            aggregate_id=order_id,
            payload={},
        )
        await async_test_session.rollback()

        assert await service.list_events("order", order_id) == []


class TestOutboxServiceListEvents:
    """Tests for OutboxService.list_events."""

    @pytest.mark.asyncio
    async def test_lists_events_for_one_aggregate(self, async_test_session):
        service = OutboxService(async_test_session)
        order_id = str(uuid.uuid4())

        await service.publish_event(
            event_type="order.schedule.updated",
            aggregate_type="order",
            aggregate_id=order_id,
            payload={"n": 1},
        )
        await service.publish_event(
            event_type="order.schedule.updated",
            aggregate_type="order",
            aggregate_id=str(uuid.uuid4()),
            payload={"n": 2},
        )

        events = await service.list_events("order", order_id)
        assert [e.payload["n"] for e in events] == [1]

    @pytest.mark.asyncio
    async def test_filters_by_status(self, async_test_session):
        service = OutboxService(async_test_session)
        order_id = str(uuid.uuid4())

        event = await service.publish_event(
            event_type="order.schedule.updated",
            aggregate_type="order",
            aggregate_id=order_id,
            payload={},
        )
        event.status = EventStatus.COMPLETED
        await async_test_session.flush()

        assert await service.list_events("order", order_id, EventStatus.PENDING) == []
        completed = await service.list_events("order", order_id, EventStatus.COMPLETED)
        assert [e.id for e in completed] == [event.id]
