"""Portal model: a customer account that books transport orders."""

from __future__ import annotations

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from src.database.base import Base, JSONType, TimestampMixin


class Portal(TimestampMixin, Base):
    __tablename__ = "portals"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    company_name: Mapped[str | None] = mapped_column(String(255))
    contact_email: Mapped[str | None] = mapped_column(String(255))
    contact_full_name: Mapped[str | None] = mapped_column(String(255))
    company_phone: Mapped[str | None] = mapped_column(String(50))
    notification_emails: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)

    def __repr__(self) -> str:
        return f"<Portal id={self.id} company={self.company_name}>"
