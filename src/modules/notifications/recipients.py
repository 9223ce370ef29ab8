"""Resolve who receives a pickup or delivery confirmation."""

from __future__ import annotations

from collections.abc import Iterable

from src.config import settings
from src.models.enums import NotificationChannel
from src.modules.notifications.schemas import Recipient
from src.modules.order.schemas import Agent, OrderDocument
from src.modules.portal.schemas import PortalNotificationEmail, PortalProfile


def is_mmi_portal(portal_id: str | None, mmi_portal_ids: Iterable[str] | None = None) -> bool:
    ids = settings.mmi_portal_id_set if mmi_portal_ids is None else frozenset(mmi_portal_ids)
    return bool(portal_id) and portal_id in ids


def is_sirva_order(order: OrderDocument, portal: PortalProfile | None = None) -> bool:
    if order.portal_id and order.portal_id == settings.sirva_portal_id:
        return True
    company = (portal.company_name or "").strip().upper() if portal else ""
    return bool(company) and company == settings.sirva_company_name.upper()


def _opted_in(entry: PortalNotificationEmail, channel: NotificationChannel) -> bool:
    return entry.pickup if channel == NotificationChannel.PICKUP else entry.delivery


def _agent_opted_in(agent: Agent, channel: NotificationChannel) -> bool:
    if channel == NotificationChannel.PICKUP:
        return agent.enable_pickup_notifications
    return agent.enable_delivery_notifications


def portal_recipients(
    order: OrderDocument,
    portal: PortalProfile,
    channel: NotificationChannel,
    mmi_portal_ids: Iterable[str] | None = None,
) -> list[PortalNotificationEmail]:
    if is_mmi_portal(order.portal_id, mmi_portal_ids):
        # The MMI group routes everything through one operations mailbox
        return [
            PortalNotificationEmail(
                email=settings.mmi_operations_email,
                name=settings.mmi_operations_name,
                pickup=True,
                delivery=True,
            )
        ]

    entries = [e for e in portal.notification_emails if _opted_in(e, channel)]
    if is_sirva_order(order, portal):
        if order.sirva_non_domestic:
            entries = [e for e in entries if e.sirva_non_domestic]
        else:
            entries = [e for e in entries if e.sirva_domestic]
    return entries


def resolve_recipients(
    order: OrderDocument,
    portal: PortalProfile,
    channel: NotificationChannel,
    mmi_portal_ids: Iterable[str] | None = None,
) -> list[Recipient]:
    """Portal list, then opted-in agents, then the legacy agent e-mail.

    Addresses are de-duplicated case-insensitively; the first occurrence wins.
    """
    recipients: list[Recipient] = []
    seen: set[str] = set()

    def add(email: str | None, name: str | None) -> None:
        address = (email or "").strip()
        key = address.lower()
        if not address or key in seen:
            return
        seen.add(key)
        recipients.append(Recipient(email=address, name=name))

    for entry in portal_recipients(order, portal, channel, mmi_portal_ids):
        add(entry.email, entry.name)
    for agent in order.agents:
        if _agent_opted_in(agent, channel):
            add(agent.email, agent.name)
    add(order.agent_email, None)
    return recipients
