"""Celery application configuration for AutoHaul background tasks."""

from celery import Celery
from celery.schedules import crontab

from src.config import settings

celery = Celery("autohaul")

celery.conf.update(
    broker_url=settings.celery_broker_url,
    result_backend=settings.celery_result_backend,
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    # Sweep crontabs are wall-clock times in the business timezone
    timezone=settings.schedule_timezone,
    enable_utc=True,
    # --- Queue routing per job type ---
    task_routes={
        "src.modules.reconciliation.tasks.reconcile_order": {"queue": "reconciliation"},
        "src.modules.reconciliation.tasks.sync_active_orders": {"queue": "reconciliation"},
        "src.modules.notifications.*": {"queue": "notifications"},
        "src.modules.events.tasks.process_outbox": {"queue": "event-outbox"},
        "src.modules.events.tasks.cleanup_processed_events": {"queue": "event-outbox"},
    },
    # --- Reliability settings ---
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    result_expires=86400,  # 24 hours
    # --- Broker transport options (Redis reliability) ---
    broker_transport_options={
        "max_retries": 10,
        "interval_start": 0.2,
        "interval_step": 0.5,
        "interval_max": 5.0,
        "retry_on_timeout": True,
        "visibility_timeout": 3600,
    },
    # --- Beat schedule ---
    beat_schedule={
        "send-confirmation-notifications": {
            "task": "src.modules.notifications.tasks.send_confirmation_notifications",
            "schedule": crontab(
                hour=",".join(str(h) for h in settings.confirmation_sweep_hours_list),
                minute=0,
            ),
        },
        "send-survey-notifications-daily": {
            "task": "src.modules.notifications.tasks.send_survey_notifications",
            "schedule": crontab(hour=settings.survey_sweep_hour, minute=0),
        },
        "sync-active-orders": {
            "task": "src.modules.reconciliation.tasks.sync_active_orders",
            "schedule": settings.active_order_sync_seconds,
        },
        "process-event-outbox": {
            "task": "src.modules.events.tasks.process_outbox",
            "schedule": settings.event_outbox_poll_seconds,
        },
        "cleanup-processed-events-daily": {
            "task": "src.modules.events.tasks.cleanup_processed_events",
            "schedule": crontab(hour=3, minute=30),
        },
    },
)

celery.autodiscover_tasks([
    "src.modules.reconciliation",
    "src.modules.notifications",
    "src.modules.events",
])
