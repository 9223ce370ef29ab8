"""Boundary DTOs for TMS order snapshots and webhook payloads.

Everything the TMS sends is parsed into these models before it reaches the
reconciliation code. Fields the TMS is known to send in inconsistent shapes
(numbers as strings, years as ints, garbage tariffs) are coerced here; a
value that cannot be coerced becomes ``None`` instead of failing the
whole snapshot.
"""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from src.modules.tms.constants import SNAPSHOT_SCHEMA_VERSION


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO-8601 value into an aware UTC datetime, or None."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).strip())
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    return str(value)


class _TmsModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class TmsVenue(_TmsModel):
    name: str | None = None
    contact_name: str | None = None
    contact_phone: str | None = None
    contact_mobile_phone: str | None = None
    address: str | None = None
    city: str | None = None
    state: str | None = None
    zip: str | None = None

    @field_validator("zip", "contact_phone", "contact_mobile_phone", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> str | None:
        return _optional_str(value)


class TmsStop(_TmsModel):
    # Dates stay raw; validity depends on the capture time and is decided
    # by the temporal reconciler.
    scheduled_at: str | None = None
    scheduled_ends_at: str | None = None
    adjusted_date: str | None = None
    completed_at: str | None = None
    date_type: str | None = None
    latitude: str | None = None
    longitude: str | None = None
    notes: str | None = None
    venue: TmsVenue | None = None

    @field_validator(
        "scheduled_at", "scheduled_ends_at", "adjusted_date", "completed_at",
        "latitude", "longitude",
        mode="before",
    )
    @classmethod
    def _stringify(cls, value: Any) -> str | None:
        return _optional_str(value)


class TmsVehicle(_TmsModel):
    tariff: Decimal | None = None
    vin: str | None = None
    year: str | None = None
    make: str | None = None
    model: str | None = None
    is_inoperable: bool = False
    type: str | None = None
    color: str | None = None

    @field_validator("tariff", mode="before")
    @classmethod
    def _coerce_tariff(cls, value: Any) -> Decimal | None:
        if value is None or isinstance(value, bool):
            return None
        try:
            tariff = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            return None
        return tariff if tariff.is_finite() else None

    @field_validator("year", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> str | None:
        return _optional_str(value)

    @field_validator("is_inoperable", mode="before")
    @classmethod
    def _coerce_bool(cls, value: Any) -> bool:
        return bool(value)


class TmsCustomer(_TmsModel):
    name: str | None = None
    contact_email: str | None = None
    contact_name: str | None = None
    phone: str | None = None
    notes: str | None = None

    @field_validator("phone", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> str | None:
        return _optional_str(value)


class TmsOrderSnapshot(_TmsModel):
    schema_version: int = SNAPSHOT_SCHEMA_VERSION
    guid: str = Field(..., min_length=1)
    status: str = ""
    created_at: datetime | None = None
    changed_at: datetime | None = None
    purchase_order_number: str | None = None
    transport_type: str | None = None
    customer: TmsCustomer | None = None
    pickup: TmsStop = Field(default_factory=TmsStop)
    delivery: TmsStop = Field(default_factory=TmsStop)
    vehicles: list[TmsVehicle] = Field(default_factory=list)

    @field_validator("created_at", "changed_at", mode="before")
    @classmethod
    def _parse_timestamp(cls, value: Any) -> datetime | None:
        return parse_timestamp(value)

    @field_validator("status", mode="before")
    @classmethod
    def _status(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @field_validator("pickup", "delivery", mode="before")
    @classmethod
    def _stop(cls, value: Any) -> Any:
        return {} if value is None else value

    @field_validator("vehicles", mode="before")
    @classmethod
    def _vehicles(cls, value: Any) -> Any:
        return [] if value is None else value

    @property
    def normalized_status(self) -> str:
        return self.status.strip().lower()


class TmsWebhookPayload(_TmsModel):
    event: str
    order_guid: str = Field(..., min_length=1)
    changed_at: datetime | None = Field(
        None, validation_alias=AliasChoices("changed_at", "action_date")
    )
    snapshot: TmsOrderSnapshot | None = Field(None, alias="object")

    @field_validator("changed_at", mode="before")
    @classmethod
    def _parse_timestamp(cls, value: Any) -> datetime | None:
        return parse_timestamp(value)


class WebhookAck(BaseModel):
    success: bool
    message: str
    order_id: str | None = None
    outcome: str | None = None
    processed_at: datetime
