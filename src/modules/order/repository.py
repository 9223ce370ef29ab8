"""Order persistence: read by id and atomic whole-document writes."""

from __future__ import annotations

import uuid
from abc import ABC, abstractmethod
from datetime import UTC, datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from src.exceptions import ConflictException, NotFoundException
from src.models.enums import TERMINAL_ORDER_STATUSES
from src.models.order import Order
from src.modules.order.constants import DELIVERED_EXTERNAL_STATUSES
from src.modules.order.schemas import (
    Agent,
    Customer,
    Location,
    OrderDocument,
    OrderNotifications,
    Schedule,
    TmsMirror,
    TotalPricing,
    Vehicle,
)


class OrderRepository(ABC):
    @abstractmethod
    async def get(self, order_id: uuid.UUID) -> OrderDocument | None:
        """Return the order document, or None when it does not exist."""

    @abstractmethod
    async def get_by_external_id(self, external_id: str) -> OrderDocument | None:
        """Return the order mirrored by the given TMS id."""

    @abstractmethod
    async def save(self, order: OrderDocument) -> OrderDocument:
        """Replace the persisted document for ``order.id`` in one write."""

    @abstractmethod
    async def list_awaiting_pickup(
        self, updated_since: datetime, recent_since: datetime
    ) -> list[OrderDocument]:
        """Orders still waiting for a pickup confirmation whose pickup is recent."""

    @abstractmethod
    async def list_awaiting_delivery(
        self, updated_since: datetime, recent_since: datetime
    ) -> list[OrderDocument]:
        """Orders still waiting for a delivery confirmation whose delivery is recent."""

    @abstractmethod
    async def list_survey_candidates(
        self, tms_updated_from: datetime, tms_updated_to: datetime
    ) -> list[OrderDocument]:
        """Delivered orders whose TMS snapshot changed inside the window."""

    @abstractmethod
    async def list_active_synced(self, limit: int) -> list[OrderDocument]:
        """Non-terminal orders that have been handed to the TMS."""

    @abstractmethod
    async def commit(self) -> None:
        """Make every write since the last commit durable."""

    @abstractmethod
    async def rollback(self) -> None:
        """Discard writes since the last commit."""


def _utc(value: datetime | None) -> datetime | None:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def _on_or_after(value: datetime | None, since: datetime) -> bool:
    value = _utc(value)
    return value is not None and value >= since


def to_document(row: Order) -> OrderDocument:
    notifications = dict(row.notifications or {})
    notifications["awaiting_pickup_confirmation"] = row.awaiting_pickup_confirmation
    notifications["awaiting_delivery_confirmation"] = row.awaiting_delivery_confirmation

    return OrderDocument(
        id=row.id,
        ref_id=row.ref_id,
        status=row.status,
        portal_id=row.portal_id,
        reg=row.reg,
        transport_type=row.transport_type,
        pickup_date_type=row.pickup_date_type,
        delivery_date_type=row.delivery_date_type,
        tms=TmsMirror(
            external_id=row.external_id,
            external_status=row.external_status,
            created_at=_utc(row.tms_created_at),
            updated_at=_utc(row.tms_updated_at),
        ),
        schedule=Schedule.model_validate(row.schedule or {}),
        origin=Location.model_validate(row.origin or {}),
        destination=Location.model_validate(row.destination or {}),
        customer=Customer.model_validate(row.customer or {}),
        vehicles=[Vehicle.model_validate(v) for v in row.vehicles or []],
        total_pricing=TotalPricing.model_validate(row.total_pricing or {}),
        is_partial_order=row.is_partial_order,
        has_claim=row.has_claim,
        sirva_non_domestic=row.sirva_non_domestic,
        notifications=OrderNotifications.model_validate(notifications),
        agents=[Agent.model_validate(a) for a in row.agents or []],
        agent_email=row.agent_email,
        sync_key=row.sync_key,
    )


def apply_document(row: Order, order: OrderDocument) -> None:
    row.ref_id = order.ref_id
    row.status = order.status
    row.portal_id = order.portal_id
    row.reg = order.reg
    row.transport_type = order.transport_type
    row.pickup_date_type = order.pickup_date_type.value if order.pickup_date_type else None
    row.delivery_date_type = order.delivery_date_type.value if order.delivery_date_type else None
    row.external_id = order.tms.external_id
    row.external_status = order.tms.external_status
    row.tms_created_at = order.tms.created_at
    row.tms_updated_at = order.tms.updated_at
    row.sync_key = order.sync_key
    row.is_partial_order = order.is_partial_order
    row.has_claim = order.has_claim
    row.sirva_non_domestic = order.sirva_non_domestic
    row.awaiting_pickup_confirmation = order.notifications.awaiting_pickup_confirmation
    row.awaiting_delivery_confirmation = order.notifications.awaiting_delivery_confirmation
    row.agent_email = order.agent_email
    row.customer = order.customer.model_dump(mode="json")
    row.schedule = order.schedule.model_dump(mode="json")
    row.origin = order.origin.model_dump(mode="json")
    row.destination = order.destination.model_dump(mode="json")
    row.vehicles = [v.model_dump(mode="json") for v in order.vehicles]
    row.total_pricing = order.total_pricing.model_dump(mode="json")
    row.agents = [a.model_dump(mode="json") for a in order.agents]
    row.notifications = order.notifications.model_dump(
        mode="json",
        exclude={"awaiting_pickup_confirmation", "awaiting_delivery_confirmation"},
    )


class SqlOrderRepository(OrderRepository):
    """SQLAlchemy-backed repository; the caller owns the transaction."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, order_id: uuid.UUID) -> OrderDocument | None:
        row = await self.session.get(Order, order_id)
        return to_document(row) if row is not None else None

    async def get_by_external_id(self, external_id: str) -> OrderDocument | None:
        result = await self.session.execute(
            select(Order).where(Order.external_id == external_id)
        )
        row = result.scalar_one_or_none()
        return to_document(row) if row is not None else None

    async def save(self, order: OrderDocument) -> OrderDocument:
        row = await self.session.get(Order, order.id)
        if row is None:
            raise NotFoundException(f"Order {order.id} not found")
        apply_document(row, order)
        try:
            await self.session.flush()
        except StaleDataError as exc:
            raise ConflictException(
                f"Order {order.ref_id} was modified concurrently",
                details=[{"order_id": str(order.id)}],
            ) from exc
        return order

    async def list_awaiting_pickup(
        self, updated_since: datetime, recent_since: datetime
    ) -> list[OrderDocument]:
        result = await self.session.execute(
            select(Order)
            .where(
                Order.awaiting_pickup_confirmation.is_(True),
                Order.updated_at > updated_since,
            )
            .order_by(Order.ref_id)
        )
        # Schedule dates live in the JSON document, so the recency cut runs here
        documents = (to_document(row) for row in result.scalars().all())
        return [
            doc for doc in documents
            if _on_or_after(doc.schedule.pickup_reference, recent_since)
        ]

    async def list_awaiting_delivery(
        self, updated_since: datetime, recent_since: datetime
    ) -> list[OrderDocument]:
        result = await self.session.execute(
            select(Order)
            .where(
                Order.awaiting_delivery_confirmation.is_(True),
                Order.updated_at > updated_since,
            )
            .order_by(Order.ref_id)
        )
        documents = (to_document(row) for row in result.scalars().all())
        return [
            doc for doc in documents
            if _on_or_after(doc.schedule.delivery_reference, recent_since)
        ]

    async def list_survey_candidates(
        self, tms_updated_from: datetime, tms_updated_to: datetime
    ) -> list[OrderDocument]:
        result = await self.session.execute(
            select(Order)
            .where(
                Order.external_status.in_(DELIVERED_EXTERNAL_STATUSES),
                Order.external_id.isnot(None),
                Order.external_id != "",
                Order.tms_updated_at >= tms_updated_from,
                Order.tms_updated_at <= tms_updated_to,
            )
            .order_by(Order.ref_id)
        )
        return [to_document(row) for row in result.scalars().all()]

    async def list_active_synced(self, limit: int) -> list[OrderDocument]:
        result = await self.session.execute(
            select(Order)
            .where(
                Order.external_id.isnot(None),
                Order.status.notin_(TERMINAL_ORDER_STATUSES),
            )
            .order_by(Order.tms_updated_at.asc())
            .limit(limit)
        )
        return [to_document(row) for row in result.scalars().all()]

    async def commit(self) -> None:
        await self.session.commit()

    async def rollback(self) -> None:
        await self.session.rollback()
