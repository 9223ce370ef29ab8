"""Pydantic v2 domain schemas for the order document.

The persisted ``orders`` row is loaded into an :class:`OrderDocument` and
written back as a whole; reconciliation and the notification sweeps only
ever work on these typed documents.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from src.models.enums import AddressVisibility, DateType, NotificationStatus

ZERO = Decimal("0")

# ---------------------------------------------------------------------------
# Locations
# ---------------------------------------------------------------------------


class Contact(BaseModel):
    name: str | None = None
    phone: str | None = None
    mobile_phone: str | None = None


class Address(BaseModel):
    line1: str | None = None
    city: str | None = None
    state: str | None = None
    zip: str | None = None


class Location(BaseModel):
    contact: Contact = Field(default_factory=Contact)
    address: Address = Field(default_factory=Address)
    visibility: AddressVisibility = AddressVisibility.VISIBLE
    notes: str | None = None
    latitude: str | None = None
    longitude: str | None = None


# ---------------------------------------------------------------------------
# Vehicles and pricing
# ---------------------------------------------------------------------------


class PricingModifiers(BaseModel):
    """Brokerage-side modifiers; unknown modifier keys are carried through."""

    model_config = ConfigDict(extra="allow")

    commission: Decimal = ZERO
    company_tariff: Decimal = ZERO


class VehiclePricing(BaseModel):
    base: Decimal = ZERO
    modifiers: PricingModifiers = Field(default_factory=PricingModifiers)
    total: Decimal = ZERO
    total_with_company_tariff_and_commission: Decimal = ZERO


class Vehicle(BaseModel):
    make: str | None = None
    model: str | None = None
    year: str | None = None
    vin: str | None = None
    is_inoperable: bool = False
    pricing_class: str | None = None
    tariff: Decimal | None = None
    pricing: VehiclePricing = Field(default_factory=VehiclePricing)


class TotalPricing(BaseModel):
    model_config = ConfigDict(extra="allow")

    modifiers: PricingModifiers = Field(default_factory=PricingModifiers)
    total: Decimal = ZERO
    total_with_company_tariff_and_commission: Decimal = ZERO


# ---------------------------------------------------------------------------
# TMS mirror, schedule, notifications
# ---------------------------------------------------------------------------


class TmsMirror(BaseModel):
    external_id: str | None = None
    external_status: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class Schedule(BaseModel):
    pickup_selected: datetime | None = None
    pickup_estimated: list[datetime] = Field(default_factory=list, max_length=1)
    pickup_estimated_end: datetime | None = None
    delivery_estimated: list[datetime] = Field(default_factory=list, max_length=1)
    delivery_estimated_end: datetime | None = None
    pickup_completed: datetime | None = None
    delivery_completed: datetime | None = None

    @property
    def pickup_reference(self) -> datetime | None:
        """Best known pickup date: completed, else estimated, else selected."""
        if self.pickup_completed:
            return self.pickup_completed
        return self.pickup_estimated[0] if self.pickup_estimated else self.pickup_selected

    @property
    def delivery_reference(self) -> datetime | None:
        if self.delivery_completed:
            return self.delivery_completed
        return self.delivery_estimated[0] if self.delivery_estimated else None


class NotificationRecord(BaseModel):
    status: NotificationStatus = NotificationStatus.UNSENT
    sent_at: datetime | None = None
    failed_at: datetime | None = None
    recipient_email: str | None = None

    @property
    def is_unsent(self) -> bool:
        # Both checks on purpose: legacy rows carry a status without sent_at
        return self.sent_at is None and self.status != NotificationStatus.SENT


class OrderNotifications(BaseModel):
    survey: NotificationRecord = Field(default_factory=NotificationRecord)
    survey_reminder: NotificationRecord = Field(default_factory=NotificationRecord)
    pickup_confirmation: NotificationRecord = Field(default_factory=NotificationRecord)
    delivery_confirmation: NotificationRecord = Field(default_factory=NotificationRecord)
    awaiting_pickup_confirmation: bool = False
    awaiting_delivery_confirmation: bool = False


# ---------------------------------------------------------------------------
# People
# ---------------------------------------------------------------------------


class Agent(BaseModel):
    name: str | None = None
    email: str | None = None
    enable_pickup_notifications: bool = False
    enable_delivery_notifications: bool = False


class Customer(BaseModel):
    name: str | None = None
    email: str | None = None
    phone: str | None = None
    notes: str | None = None


# ---------------------------------------------------------------------------
# Aggregate
# ---------------------------------------------------------------------------


class OrderDocument(BaseModel):
    id: uuid.UUID
    ref_id: int
    status: str
    portal_id: str | None = None
    reg: str | None = None
    transport_type: str | None = None
    pickup_date_type: DateType | None = None
    delivery_date_type: DateType | None = None
    tms: TmsMirror = Field(default_factory=TmsMirror)
    schedule: Schedule = Field(default_factory=Schedule)
    origin: Location = Field(default_factory=Location)
    destination: Location = Field(default_factory=Location)
    customer: Customer = Field(default_factory=Customer)
    vehicles: list[Vehicle] = Field(default_factory=list)
    total_pricing: TotalPricing = Field(default_factory=TotalPricing)
    is_partial_order: bool = False
    has_claim: bool = False
    sirva_non_domestic: bool = False
    notifications: OrderNotifications = Field(default_factory=OrderNotifications)
    agents: list[Agent] = Field(default_factory=list)
    agent_email: str | None = None
    sync_key: str | None = None
