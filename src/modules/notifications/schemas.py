"""Pydantic schemas for notification dispatch and sweep results."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class Recipient(BaseModel):
    email: str
    name: str | None = None


class DeliveryResult(BaseModel):
    """Outcome of sending to one recipient."""

    recipient: str
    success: bool
    message_id: str | None = None
    error: str | None = None
    retryable: bool = True


class DispatchResult(BaseModel):
    results: list[DeliveryResult] = Field(default_factory=list)

    @property
    def succeeded(self) -> list[DeliveryResult]:
        return [r for r in self.results if r.success]

    @property
    def failed(self) -> list[DeliveryResult]:
        return [r for r in self.results if not r.success]

    @property
    def success(self) -> bool:
        """At least one recipient received the message."""
        return bool(self.succeeded)


class ConfirmationSweepSummary(BaseModel):
    preserve_flags: bool
    pickup_candidates: int = 0
    delivery_candidates: int = 0
    sent: int = 0
    skipped: int = 0
    flags_cleared: int = 0
    no_recipients: int = 0
    failed: int = 0
    errors: int = 0
    started_at: datetime
    finished_at: datetime | None = None


class SurveySweepSummary(BaseModel):
    candidates: int = 0
    surveys_sent: int = 0
    pre_surveys_sent: int = 0
    failed: int = 0
    skipped: int = 0
    errors: int = 0
    started_at: datetime
    finished_at: datetime | None = None
