# Import all models so SQLAlchemy metadata is populated for Alembic autogenerate
from src.models.enums import (
    AddressVisibility,
    DateType,
    EventStatus,
    NotificationChannel,
    NotificationStatus,
    OrderStatus,
    ReconciliationOutcome,
    TmsWebhookEvent,
)
from src.models.event_outbox import EventOutbox
from src.models.order import Order
from src.models.portal import Portal
from src.models.processed_event import ProcessedEvent

__all__ = [
    "AddressVisibility",
    "DateType",
    "EventOutbox",
    "EventStatus",
    "NotificationChannel",
    "NotificationStatus",
    "Order",
    "OrderStatus",
    "Portal",
    "ProcessedEvent",
    "ReconciliationOutcome",
    "TmsWebhookEvent",
]
