"""Order model: brokerage order mirrored into the carrier dispatch system."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from src.database.base import Base, JSONType, TimestampMixin, UUIDPrimaryKeyMixin


class Order(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "orders"

    ref_id: Mapped[int] = mapped_column(Integer, nullable=False, unique=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, server_default="New")
    portal_id: Mapped[str | None] = mapped_column(String(64))
    reg: Mapped[str | None] = mapped_column(String(100))
    transport_type: Mapped[str | None] = mapped_column(String(32))
    pickup_date_type: Mapped[str | None] = mapped_column(String(16))
    delivery_date_type: Mapped[str | None] = mapped_column(String(16))

    # TMS mirror
    external_id: Mapped[str | None] = mapped_column(String(64))
    external_status: Mapped[str | None] = mapped_column(String(50))
    tms_created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    tms_updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    sync_key: Mapped[str | None] = mapped_column(String(128))

    # Flags
    is_partial_order: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    has_claim: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    sirva_non_domestic: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    awaiting_pickup_confirmation: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    awaiting_delivery_confirmation: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )

    # Legacy single agent
    agent_email: Mapped[str | None] = mapped_column(String(255))

    # Structured blocks
    customer: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    schedule: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    origin: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    destination: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    vehicles: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    total_pricing: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    agents: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    notifications: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)

    version_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    __table_args__ = (
        Index("ix_orders_external_id", "external_id", unique=True),
        Index("ix_orders_portal_id", "portal_id"),
        Index("ix_orders_status", "status"),
        Index("ix_orders_tms_updated_at", "tms_updated_at"),
    )

    def __repr__(self) -> str:
        return f"<Order id={self.id} ref_id={self.ref_id} status={self.status}>"
