"""Portal lookup used by reconciliation and notification sweeps."""

from __future__ import annotations

from abc import ABC, abstractmethod

from sqlalchemy.ext.asyncio import AsyncSession

from src.models.portal import Portal
from src.modules.portal.schemas import PortalProfile


class PortalRepository(ABC):
    @abstractmethod
    async def get(self, portal_id: str) -> PortalProfile | None:
        """Return the portal profile, or None when it does not exist."""


class SqlPortalRepository(PortalRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, portal_id: str) -> PortalProfile | None:
        if not portal_id:
            return None
        portal = await self.session.get(Portal, portal_id)
        if portal is None:
            return None
        return PortalProfile.model_validate(portal)
