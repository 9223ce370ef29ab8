"""Pydantic schemas for the portal contact and notification profile."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class PortalNotificationEmail(BaseModel):
    email: str | None = None
    name: str | None = None
    pickup: bool = False
    delivery: bool = False
    sirva_domestic: bool = False
    sirva_non_domestic: bool = False


class PortalProfile(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    company_name: str | None = None
    contact_email: str | None = None
    contact_full_name: str | None = None
    company_phone: str | None = None
    notification_emails: list[PortalNotificationEmail] = Field(default_factory=list)
