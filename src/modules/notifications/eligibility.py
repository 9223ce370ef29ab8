"""Pure eligibility rules for confirmation and survey notifications.

Confirmations and surveys are gated on the raw TMS status mirrored on the
order (``tms.external_status``), since the canonical status folds
``invoiced`` into ``Delivered``.
"""

from __future__ import annotations

import enum
from collections.abc import Iterable
from datetime import datetime, timedelta

from src.config import settings
from src.modules.notifications.recipients import is_mmi_portal
from src.modules.order.constants import (
    DELIVERED_EXTERNAL_STATUSES,
    EXTERNAL_STATUS_INVOICED,
    EXTERNAL_STATUS_PICKED_UP,
)
from src.modules.order.schemas import OrderDocument


class ConfirmationDecision(str, enum.Enum):
    SEND = "send"
    SKIP = "skip"
    CLEAR = "clear"  # skip and drop the awaiting flag


def _external_status(order: OrderDocument) -> str:
    return (order.tms.external_status or "").strip().lower()


def is_recent(value: datetime | None, now: datetime, hours: int | None = None) -> bool:
    """True when ``value`` lies in the past ``hours``; future dates never qualify."""
    if value is None:
        return False
    window = timedelta(hours=settings.confirmation_recent_hours if hours is None else hours)
    return timedelta(0) <= now - value <= window


def pickup_confirmation_decision(
    order: OrderDocument,
    preserve_flags: bool,
    now: datetime,
    recent_hours: int | None = None,
) -> ConfirmationDecision:
    if not order.notifications.awaiting_pickup_confirmation:
        return ConfirmationDecision.SKIP
    status = _external_status(order)
    if status == EXTERNAL_STATUS_INVOICED:
        return ConfirmationDecision.SKIP if preserve_flags else ConfirmationDecision.CLEAR
    if not preserve_flags and status != EXTERNAL_STATUS_PICKED_UP:
        return ConfirmationDecision.SKIP
    if not is_recent(order.schedule.pickup_reference, now, recent_hours):
        return ConfirmationDecision.SKIP
    return ConfirmationDecision.SEND


def delivery_confirmation_decision(
    order: OrderDocument,
    preserve_flags: bool,
    now: datetime,
    recent_hours: int | None = None,
) -> ConfirmationDecision:
    if not order.notifications.awaiting_delivery_confirmation:
        return ConfirmationDecision.SKIP
    if not preserve_flags and _external_status(order) not in DELIVERED_EXTERNAL_STATUSES:
        return ConfirmationDecision.SKIP
    if not is_recent(order.schedule.delivery_reference, now, recent_hours):
        return ConfirmationDecision.SKIP
    return ConfirmationDecision.SEND


# ---------------------------------------------------------------------------
# Surveys
# ---------------------------------------------------------------------------


def survey_age(order: OrderDocument, now: datetime) -> timedelta | None:
    """Time since the TMS last changed the order."""
    if order.tms.updated_at is None:
        return None
    return now - order.tms.updated_at


def in_window(age: timedelta | None, start_hours: int, end_hours: int) -> bool:
    if age is None:
        return False
    return timedelta(hours=start_hours) <= age <= timedelta(hours=end_hours)


def meets_survey_preconditions(order: OrderDocument) -> bool:
    return (
        _external_status(order) in DELIVERED_EXTERNAL_STATUSES
        and bool((order.tms.external_id or "").strip())
        and bool((order.customer.email or "").strip())
    )


def is_standard_survey_due(
    order: OrderDocument,
    now: datetime,
    start_hours: int | None = None,
    end_hours: int | None = None,
) -> bool:
    if not meets_survey_preconditions(order) or not order.notifications.survey.is_unsent:
        return False
    return in_window(
        survey_age(order, now),
        settings.survey_window_start_hours if start_hours is None else start_hours,
        settings.survey_window_end_hours if end_hours is None else end_hours,
    )


def is_mmi_pre_survey_due(
    order: OrderDocument,
    now: datetime,
    mmi_portal_ids: Iterable[str] | None = None,
    start_hours: int | None = None,
    end_hours: int | None = None,
) -> bool:
    if not is_mmi_portal(order.portal_id, mmi_portal_ids):
        return False
    if not meets_survey_preconditions(order) or not order.notifications.survey_reminder.is_unsent:
        return False
    return in_window(
        survey_age(order, now),
        settings.mmi_pre_survey_window_start_hours if start_hours is None else start_hours,
        settings.mmi_pre_survey_window_end_hours if end_hours is None else end_hours,
    )
