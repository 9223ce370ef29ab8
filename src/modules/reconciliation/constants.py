"""Reconciliation constants."""

from datetime import UTC, datetime

from src.modules.order.constants import (
    DELIVERED_EXTERNAL_STATUSES as _DELIVERED,
    PRE_PICKUP_EXTERNAL_STATUSES as _PRE_PICKUP,
)

# Status normalisation
STATUS_SYNONYMS = {
    "Invoiced": "Delivered",
    "Picked up": "Picked Up",
    "Order canceled": "Canceled",
}
NEW_STATUS_ALIASES = frozenset({"Accepted", "New", "Pending"})

# Date validity window: [MIN_VALID_DATE, now + VALID_DATE_HORIZON_YEARS]
MIN_VALID_DATE = datetime(2000, 1, 1, tzinfo=UTC)
VALID_DATE_HORIZON_YEARS = 5

# Before these statuses are left behind the scheduled pickup is only an estimate
PICKUP_NOT_STARTED_STATUSES = frozenset(_PRE_PICKUP)
DELIVERED_EXTERNAL_STATUSES = frozenset(_DELIVERED)

WEBHOOK_SECRET_HEADER = "X-Webhook-Secret"
