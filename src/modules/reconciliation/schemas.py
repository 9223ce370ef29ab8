"""Pydantic schemas for reconciliation results."""

from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, Field

from src.models.enums import ReconciliationOutcome


class ReconciliationResult(BaseModel):
    order_id: uuid.UUID
    ref_id: int | None = None
    outcome: ReconciliationOutcome
    status: str | None = None
    sync_key: str | None = None
    schedule_changed: bool = False
    contact_mismatches: list[str] = Field(default_factory=list)
    vehicle_ambiguities: list[str] = Field(default_factory=list)
    reason: str | None = None


class ActiveOrderSyncSummary(BaseModel):
    checked: int = 0
    reconciled: int = 0
    duplicates: int = 0
    skipped: int = 0
    failed: int = 0
    started_at: datetime
    finished_at: datetime | None = None
