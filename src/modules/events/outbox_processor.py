"""OutboxProcessor: synchronous batch processor for Celery workers."""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta

from sqlalchemy import Engine, text
from sqlalchemy.orm import Session

from src.config import settings
from src.database.engine import sync_engine
from src.modules.events.constants import (
    COMPLETED_EVENT_RETENTION_DAYS,
    NO_HANDLERS,
    PROCESSED_EVENT_TTL_DAYS,
)
from src.modules.events.handlers import EventHandlerRegistry, registry

logger = logging.getLogger(__name__)


class HandlerFailure(RuntimeError):
    pass


class OutboxProcessor:
    """Delivers pending outbox events to the registered handlers.

    Rows are claimed with ``FOR UPDATE SKIP LOCKED`` so several workers can
    drain the outbox at once; ``processed_events`` keeps redelivery of an
    already handled event a no-op.
    """

    def __init__(
        self,
        engine: Engine | None = None,
        handlers: EventHandlerRegistry | None = None,
    ) -> None:
        self.engine = engine or sync_engine
        self.handlers = handlers or registry

    def process_batch(self, batch_size: int | None = None) -> dict:
        processed = failed = 0

        with Session(self.engine) as session:
            rows = session.execute(
                text("""
                    SELECT id, event_type, payload, retry_count, max_retries
                    FROM event_outbox
                    WHERE status = 'PENDING'
                    ORDER BY created_at ASC
                    LIMIT :batch_size
                    FOR UPDATE SKIP LOCKED
                """),
                {"batch_size": batch_size or settings.event_outbox_batch_size},
            ).fetchall()

            for row in rows:
                try:
                    if not self._already_processed(session, row.id):
                        handler_names = self._dispatch(row.event_type, row.payload)
                        self._record_processed(session, row.id, row.event_type, handler_names)
                    self._mark_completed(session, row.id)
                    session.commit()
                    processed += 1
                except Exception as exc:
                    session.rollback()
                    logger.exception("Failed to process event %s (type=%s)", row.id, row.event_type)
                    self._mark_failed(session, row, str(exc))
                    session.commit()
                    failed += 1

        return {"processed": processed, "failed": failed}

    def _dispatch(self, event_type: str, payload: dict) -> str:
        results = self.handlers.dispatch(event_type, payload)
        errors = [r for r in results if r["status"] == "error"]
        if errors:
            raise HandlerFailure(
                "Handler errors: " + "; ".join(f"{r['handler']}: {r['error']}" for r in errors)
            )
        return ",".join(r["handler"] for r in results) or NO_HANDLERS

    @staticmethod
    def _already_processed(session: Session, event_id) -> bool:
        found = session.execute(
            text("SELECT 1 FROM processed_events WHERE event_id = :event_id LIMIT 1"),
            {"event_id": event_id},
        ).fetchone()
        return found is not None

    @staticmethod
    def _record_processed(session: Session, event_id, event_type: str, handler_names: str) -> None:
        session.execute(
            text("""
                INSERT INTO processed_events
                    (id, event_id, event_type, handler_name, processed_at, expires_at)
                VALUES
                    (gen_random_uuid(), :event_id, :event_type, :handler_name, now(), :expires_at)
            """),
            {
                "event_id": event_id,
                "event_type": event_type,
                "handler_name": handler_names,
                "expires_at": datetime.now(UTC) + timedelta(days=PROCESSED_EVENT_TTL_DAYS),
            },
        )

    @staticmethod
    def _mark_completed(session: Session, event_id) -> None:
        session.execute(
            text("""
                UPDATE event_outbox
                SET status = 'COMPLETED', processed_at = now()
                WHERE id = :event_id
            """),
            {"event_id": event_id},
        )

    @staticmethod
    def _mark_failed(session: Session, row, error: str) -> None:
        retry_count = row.retry_count + 1
        session.execute(
            text("""
                UPDATE event_outbox
                SET status = :status, retry_count = :retry_count, last_error = :error
                WHERE id = :event_id
            """),
            {
                "status": "FAILED" if retry_count >= row.max_retries else "PENDING",
                "retry_count": retry_count,
                "error": error,
                "event_id": row.id,
            },
        )

    def cleanup_expired(self) -> int:
        """Delete expired idempotency rows and old completed events."""
        with Session(self.engine) as session:
            deleted = session.execute(
                text("DELETE FROM processed_events WHERE expires_at < now()")
            ).rowcount
            deleted += session.execute(
                text("""
                    DELETE FROM event_outbox
                    WHERE status = 'COMPLETED'
                      AND processed_at < now() - make_interval(days => :days)
                """),
                {"days": COMPLETED_EVENT_RETENTION_DAYS},
            ).rowcount
            session.commit()

        logger.info("Cleaned up %d expired event records", deleted)
        return deleted
