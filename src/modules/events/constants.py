"""Event outbox constants."""

PROCESSED_EVENT_TTL_DAYS = 7
COMPLETED_EVENT_RETENTION_DAYS = 30
NO_HANDLERS = "no_handlers"
