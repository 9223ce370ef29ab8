"""Derive estimated and actual stop instants from a TMS snapshot."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from zoneinfo import ZoneInfo

from src.config import settings
from src.modules.reconciliation.constants import (
    DELIVERED_EXTERNAL_STATUSES,
    MIN_VALID_DATE,
    PICKUP_NOT_STARTED_STATUSES,
    VALID_DATE_HORIZON_YEARS,
)
from src.modules.tms.schemas import TmsOrderSnapshot, parse_timestamp


@dataclass(frozen=True)
class StopDates:
    """Instants derived for one stop. ``None`` means "not supplied"."""

    estimated: datetime | None = None
    estimated_end: datetime | None = None
    actual: datetime | None = None
    # True when ``actual`` is the capture time, not a TMS-reported instant
    actual_is_capture_stamp: bool = False


def _add_years(value: datetime, years: int) -> datetime:
    try:
        return value.replace(year=value.year + years)
    except ValueError:
        # Feb 29 -> Feb 28
        return value.replace(year=value.year + years, day=28)


def parse_valid_date(value: str | None, now: datetime) -> datetime | None:
    """Parse ``value`` and return it only if it lies in [2000-01-01, now + 5y]."""
    parsed = parse_timestamp(value)
    if parsed is None:
        return None
    if parsed < MIN_VALID_DATE or parsed > _add_years(now, VALID_DATE_HORIZON_YEARS):
        return None
    return parsed


def derive_pickup_dates(snapshot: TmsOrderSnapshot, now: datetime) -> StopDates:
    stop = snapshot.pickup
    scheduled = parse_valid_date(stop.scheduled_at, now)
    actual = parse_valid_date(stop.adjusted_date, now)
    if actual is None and snapshot.normalized_status not in PICKUP_NOT_STARTED_STATUSES:
        actual = scheduled
    return StopDates(
        estimated=scheduled,
        estimated_end=parse_valid_date(stop.scheduled_ends_at, now),
        actual=actual,
    )


def derive_delivery_dates(snapshot: TmsOrderSnapshot, now: datetime) -> StopDates:
    stop = snapshot.delivery
    actual = parse_valid_date(stop.adjusted_date, now)
    if actual is None:
        actual = parse_valid_date(stop.completed_at, now)
    capture_stamp = False
    if actual is None and snapshot.normalized_status in DELIVERED_EXTERNAL_STATUSES:
        actual = now
        capture_stamp = True
    return StopDates(
        estimated=parse_valid_date(stop.scheduled_at, now),
        estimated_end=parse_valid_date(stop.scheduled_ends_at, now),
        actual=actual,
        actual_is_capture_stamp=capture_stamp,
    )


def format_display_date(value: datetime | None, tz_name: str | None = None) -> str | None:
    """Render ``M/D/YYYY`` in the reference timezone."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    local = value.astimezone(ZoneInfo(tz_name or settings.reference_timezone))
    return f"{local.month}/{local.day}/{local.year}"
