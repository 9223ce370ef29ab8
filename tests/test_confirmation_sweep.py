"""Tests for pickup/delivery confirmation eligibility and the confirmation sweep."""

from __future__ import annotations

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import select, text

from src.models.enums import NotificationChannel, NotificationStatus
from src.models.order import Order
from src.modules.notifications.eligibility import (
    ConfirmationDecision,
    delivery_confirmation_decision,
    is_recent,
    pickup_confirmation_decision,
)
from src.modules.notifications.schemas import DeliveryResult, DispatchResult
from src.modules.notifications.sender import NotificationSender
from src.modules.notifications.service import ConfirmationSweep
from src.modules.order.repository import OrderRepository, SqlOrderRepository, apply_document
from src.modules.order.schemas import OrderNotifications, Schedule, TmsMirror
from src.modules.portal.repository import PortalRepository
from tests.factories import EXTERNAL_ID, NOW, make_order, make_portal


def _awaiting(external_status: str, pickup: bool = True, **overrides):
    notifications = OrderNotifications(
        awaiting_pickup_confirmation=pickup,
        awaiting_delivery_confirmation=not pickup,
    )
    overrides.setdefault(
        "schedule",
        Schedule(
            pickup_completed=NOW - timedelta(hours=30),
            delivery_completed=NOW - timedelta(hours=2),
        ),
    )
    return make_order(
        tms=TmsMirror(external_id=EXTERNAL_ID, external_status=external_status),
        notifications=notifications,
        **overrides,
    )


def _dispatch(*outcomes: bool) -> DispatchResult:
    return DispatchResult(
        results=[
            DeliveryResult(recipient=f"r{i}@example.com", success=ok, error=None if ok else "boom")
            for i, ok in enumerate(outcomes)
        ]
    )


@pytest.fixture
def orders():
    repo = AsyncMock(spec=OrderRepository)
    repo.save.side_effect = lambda doc: doc
    repo.list_awaiting_pickup.return_value = []
    repo.list_awaiting_delivery.return_value = []
    return repo


@pytest.fixture
def portals():
    repo = AsyncMock(spec=PortalRepository)
    repo.get.return_value = make_portal()
    return repo


@pytest.fixture
def sender():
    mock = AsyncMock(spec=NotificationSender)
    mock.send.return_value = _dispatch(True)
    return mock


@pytest.fixture
def sweep(orders, portals, sender):
    return ConfirmationSweep(
        orders=orders,
        portals=portals,
        sender=sender,
        clock=lambda: NOW,
        mmi_portal_ids=[],
        cutoff_days=60,
        recent_hours=48,
    )


class TestConfirmationDecisions:
    def test_pickup_sent_once_picked_up(self):
        assert pickup_confirmation_decision(_awaiting("picked_up"), False, NOW) == ConfirmationDecision.SEND

    def test_pickup_waits_for_pickup(self):
        assert pickup_confirmation_decision(_awaiting("accepted"), False, NOW) == ConfirmationDecision.SKIP

    def test_pickup_invoiced_clears_flag(self):
        assert pickup_confirmation_decision(_awaiting("invoiced"), False, NOW) == ConfirmationDecision.CLEAR

    def test_preserve_mode_relaxes_status_gate(self):
        assert pickup_confirmation_decision(_awaiting("accepted"), True, NOW) == ConfirmationDecision.SEND
        assert pickup_confirmation_decision(_awaiting("invoiced"), True, NOW) == ConfirmationDecision.SKIP

    def test_not_awaiting_is_skipped(self):
        order = _awaiting("picked_up", pickup=False)
        assert pickup_confirmation_decision(order, False, NOW) == ConfirmationDecision.SKIP

    def test_delivery_needs_delivered_or_invoiced(self):
        assert delivery_confirmation_decision(
            _awaiting("delivered", pickup=False), False, NOW
        ) == ConfirmationDecision.SEND
        assert delivery_confirmation_decision(
            _awaiting("invoiced", pickup=False), False, NOW
        ) == ConfirmationDecision.SEND
        assert delivery_confirmation_decision(
            _awaiting("picked_up", pickup=False), False, NOW
        ) == ConfirmationDecision.SKIP

    def test_gate_uses_raw_tms_status(self):
        # canonical "Delivered" is not enough without the raw TMS status
        order = _awaiting("picked_up", pickup=False, status="Delivered")
        assert delivery_confirmation_decision(order, False, NOW) == ConfirmationDecision.SKIP


class TestRecentWindow:
    @pytest.mark.parametrize(
        ("hours_ago", "recent"), [(0, True), (48, True), (48.5, False), (-1, False)]
    )
    def test_window_bounds(self, hours_ago, recent):
        assert is_recent(NOW - timedelta(hours=hours_ago), NOW, 48) is recent

    def test_missing_date_is_not_recent(self):
        assert is_recent(None, NOW, 48) is False

    @pytest.mark.parametrize(
        ("hours_ago", "decision"),
        [(47, ConfirmationDecision.SEND), (49, ConfirmationDecision.SKIP)],
    )
    def test_stale_pickup_is_not_confirmed(self, hours_ago, decision):
        order = _awaiting(
            "picked_up", schedule=Schedule(pickup_completed=NOW - timedelta(hours=hours_ago))
        )
        assert pickup_confirmation_decision(order, False, NOW, 48) == decision

    def test_pickup_falls_back_to_estimate_then_selected(self):
        estimated = _awaiting(
            "picked_up", schedule=Schedule(pickup_estimated=[NOW - timedelta(hours=5)])
        )
        selected = _awaiting(
            "picked_up", schedule=Schedule(pickup_selected=NOW - timedelta(hours=5))
        )
        stale_estimate = _awaiting(
            "picked_up",
            schedule=Schedule(
                pickup_estimated=[NOW - timedelta(days=10)],
                pickup_selected=NOW - timedelta(hours=5),
            ),
        )

        assert pickup_confirmation_decision(estimated, False, NOW, 48) == ConfirmationDecision.SEND
        assert pickup_confirmation_decision(selected, False, NOW, 48) == ConfirmationDecision.SEND
        assert pickup_confirmation_decision(stale_estimate, False, NOW, 48) == ConfirmationDecision.SKIP

    @pytest.mark.parametrize(
        ("hours_ago", "decision"),
        [(47, ConfirmationDecision.SEND), (49, ConfirmationDecision.SKIP)],
    )
    def test_stale_delivery_is_not_confirmed(self, hours_ago, decision):
        order = _awaiting(
            "delivered",
            pickup=False,
            schedule=Schedule(delivery_estimated=[NOW - timedelta(hours=hours_ago)]),
        )
        assert delivery_confirmation_decision(order, False, NOW, 48) == decision

    def test_window_applies_in_preserve_mode(self):
        order = _awaiting(
            "accepted", schedule=Schedule(pickup_completed=NOW - timedelta(days=5))
        )
        assert pickup_confirmation_decision(order, True, NOW, 48) == ConfirmationDecision.SKIP

    def test_invoiced_pickup_cleared_whatever_the_date(self):
        order = _awaiting("invoiced", schedule=Schedule(pickup_completed=NOW - timedelta(days=5)))
        assert pickup_confirmation_decision(order, False, NOW, 48) == ConfirmationDecision.CLEAR


class TestConfirmationSweepProcess:
    @pytest.mark.asyncio
    async def test_successful_send_clears_flag(self, sweep, orders, sender):
        order = _awaiting("picked_up")

        outcome = await sweep.process(order, NotificationChannel.PICKUP, False, NOW)

        assert outcome == "sent"
        sender.send.assert_awaited_once()
        saved = orders.save.await_args.args[0]
        assert saved.notifications.awaiting_pickup_confirmation is False
        assert saved.notifications.pickup_confirmation.status == NotificationStatus.SENT
        assert saved.notifications.pickup_confirmation.sent_at == NOW
        assert saved.notifications.pickup_confirmation.recipient_email == "r0@example.com"

    @pytest.mark.asyncio
    async def test_partial_failure_counts_as_sent(self, sweep, orders, sender):
        sender.send.return_value = _dispatch(False, True)

        outcome = await sweep.process(_awaiting("picked_up"), NotificationChannel.PICKUP, False, NOW)

        assert outcome == "sent"
        saved = orders.save.await_args.args[0]
        assert saved.notifications.pickup_confirmation.recipient_email == "r1@example.com"

    @pytest.mark.asyncio
    async def test_total_failure_keeps_flag(self, sweep, orders, sender):
        sender.send.return_value = _dispatch(False, False)

        outcome = await sweep.process(_awaiting("picked_up"), NotificationChannel.PICKUP, False, NOW)

        assert outcome == "failed"
        saved = orders.save.await_args.args[0]
        assert saved.notifications.awaiting_pickup_confirmation is True
        assert saved.notifications.pickup_confirmation.status == NotificationStatus.FAILED
        assert saved.notifications.pickup_confirmation.failed_at == NOW

    @pytest.mark.asyncio
    async def test_preserve_mode_never_clears_flag(self, sweep, orders):
        outcome = await sweep.process(_awaiting("accepted"), NotificationChannel.PICKUP, True, NOW)

        assert outcome == "sent"
        saved = orders.save.await_args.args[0]
        assert saved.notifications.awaiting_pickup_confirmation is True

    @pytest.mark.asyncio
    async def test_invoiced_before_pickup_confirmation_clears_without_sending(
        self, sweep, orders, sender
    ):
        outcome = await sweep.process(_awaiting("invoiced"), NotificationChannel.PICKUP, False, NOW)

        assert outcome == "cleared"
        sender.send.assert_not_awaited()
        saved = orders.save.await_args.args[0]
        assert saved.notifications.awaiting_pickup_confirmation is False
        assert saved.notifications.pickup_confirmation.status == NotificationStatus.UNSENT

    @pytest.mark.asyncio
    async def test_no_recipients_leaves_order_untouched(self, sweep, orders, portals, sender):
        portals.get.return_value = make_portal(notification_emails=[])

        outcome = await sweep.process(_awaiting("picked_up"), NotificationChannel.PICKUP, False, NOW)

        assert outcome == "no_recipients"
        sender.send.assert_not_awaited()
        orders.save.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_missing_portal_is_skipped(self, sweep, orders, portals, sender):
        portals.get.return_value = None

        outcome = await sweep.process(_awaiting("picked_up"), NotificationChannel.PICKUP, False, NOW)

        assert outcome == "skipped"
        sender.send.assert_not_awaited()
        orders.save.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_delivery_confirmation(self, sweep, orders, sender):
        order = _awaiting("delivered", pickup=False)

        outcome = await sweep.process(order, NotificationChannel.DELIVERY, False, NOW)

        assert outcome == "sent"
        recipients = sender.send.await_args.args[0]
        assert [r.email for r in recipients] == ["delivery@acme.example"]
        saved = orders.save.await_args.args[0]
        assert saved.notifications.awaiting_delivery_confirmation is False
        assert saved.notifications.delivery_confirmation.status == NotificationStatus.SENT


class TestConfirmationSweepRun:
    @pytest.mark.asyncio
    async def test_run_counts_outcomes(self, sweep, orders):
        orders.list_awaiting_pickup.return_value = [
            _awaiting("picked_up", ref_id=1),
            _awaiting("accepted", ref_id=2),
            _awaiting("invoiced", ref_id=3),
        ]
        orders.list_awaiting_delivery.return_value = [_awaiting("delivered", pickup=False, ref_id=4)]

        summary = await sweep.run()

        orders.list_awaiting_pickup.assert_awaited_once_with(
            NOW - timedelta(days=60), NOW - timedelta(hours=48)
        )
        assert summary.pickup_candidates == 3
        assert summary.delivery_candidates == 1
        assert summary.sent == 2
        assert summary.skipped == 1
        assert summary.flags_cleared == 1
        assert summary.errors == 0

    @pytest.mark.asyncio
    async def test_one_failing_order_does_not_stop_the_sweep(self, sweep, orders, sender):
        orders.list_awaiting_pickup.return_value = [
            _awaiting("picked_up", ref_id=1),
            _awaiting("picked_up", ref_id=2),
        ]
        sender.send.side_effect = [RuntimeError("smtp down"), _dispatch(True)]

        summary = await sweep.run()

        assert summary.errors == 1
        assert summary.sent == 1
        orders.save.assert_awaited_once()
        orders.rollback.assert_awaited_once()
        orders.commit.assert_awaited_once()


class TestConfirmationSweepTransactions:
    async def _insert(self, session, ref_id: int, external_id: str):
        document = _awaiting(
            "picked_up",
            ref_id=ref_id,
            tms=TmsMirror(external_id=external_id, external_status="picked_up"),
        )
        row = Order(id=document.id)
        apply_document(row, document)
        session.add(row)
        return document

    @pytest.mark.asyncio
    async def test_conflicting_order_does_not_lose_other_writes(
        self, async_test_session, portals, sender
    ):
        await self._insert(async_test_session, 1, "tms-1")
        await self._insert(async_test_session, 2, "tms-2")
        await self._insert(async_test_session, 3, "tms-3")
        await async_test_session.commit()
        # Another writer touches order 2 after the sweep has loaded it
        await async_test_session.execute(
            text("UPDATE orders SET version_id = version_id + 1 WHERE ref_id = 2")
        )
        await async_test_session.commit()

        sweep = ConfirmationSweep(
            orders=SqlOrderRepository(async_test_session),
            portals=portals,
            sender=sender,
            clock=lambda: NOW,
            mmi_portal_ids=[],
            cutoff_days=60,
            recent_hours=48,
        )
        summary = await sweep.run()

        assert summary.pickup_candidates == 3
        assert summary.sent == 2
        assert summary.errors == 1
        assert sender.send.await_count == 3

        await async_test_session.rollback()
        rows = await async_test_session.execute(
            select(Order.ref_id, Order.awaiting_pickup_confirmation).order_by(Order.ref_id)
        )
        assert rows.all() == [(1, False), (2, True), (3, False)]

    @pytest.mark.asyncio
    async def test_stale_pickups_are_not_candidates(self, async_test_session):
        recent = _awaiting("picked_up", ref_id=1, tms=TmsMirror(external_id="tms-1"))
        stale = _awaiting(
            "picked_up",
            ref_id=2,
            tms=TmsMirror(external_id="tms-2"),
            schedule=Schedule(pickup_completed=NOW - timedelta(hours=49)),
        )
        for document in (recent, stale):
            row = Order(id=document.id)
            apply_document(row, document)
            async_test_session.add(row)
        await async_test_session.flush()
        repo = SqlOrderRepository(async_test_session)

        candidates = await repo.list_awaiting_pickup(
            NOW - timedelta(days=60), NOW - timedelta(hours=48)
        )

        assert [o.id for o in candidates] == [recent.id]
