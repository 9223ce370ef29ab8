"""OutboxService: write domain events in the caller's transaction."""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.models.enums import EventStatus
from src.models.event_outbox import EventOutbox


class OutboxService:
    """Events are added to the session and flushed, never committed here.

    They become visible to the outbox processor only when the surrounding
    order write commits, so a rolled-back reconciliation publishes nothing.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def publish_event(
        self,
        event_type: str,
        aggregate_type: str,
        aggregate_id: str,
        payload: dict,
        schema_version: int = 1,
    ) -> EventOutbox:
        event = EventOutbox(
            event_type=event_type,
            aggregate_type=aggregate_type,
            aggregate_id=aggregate_id,
            payload=payload,
            status=EventStatus.PENDING,
            schema_version=schema_version,
        )
        self.session.add(event)
        await self.session.flush()
        return event

    async def list_events(
        self,
        aggregate_type: str,
        aggregate_id: str,
        status: EventStatus | None = None,
    ) -> list[EventOutbox]:
        """Events recorded for one aggregate, oldest first."""
        statement = select(EventOutbox).where(
            EventOutbox.aggregate_type == aggregate_type,
            EventOutbox.aggregate_id == aggregate_id,
        )
        if status is not None:
            statement = statement.where(EventOutbox.status == status)
        result = await self.session.execute(statement.order_by(EventOutbox.created_at.asc()))
        return list(result.scalars().all())
