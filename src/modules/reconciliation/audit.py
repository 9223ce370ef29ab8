"""Cross-check TMS customer data against the owning portal's contact profile."""

from __future__ import annotations

import logging
import re

from src.config import settings
from src.modules.portal.schemas import PortalProfile
from src.modules.tms.schemas import TmsCustomer

logger = logging.getLogger(__name__)

_NON_DIGITS = re.compile(r"\D")


def _norm(value: str | None) -> str:
    return (value or "").strip().lower()


def _digits(value: str | None) -> str:
    return _NON_DIGITS.sub("", value or "")


def audit_customer_contact(
    customer: TmsCustomer | None,
    portal: PortalProfile,
    default_contact_email: str | None = None,
    ref_id: int | None = None,
) -> list[str]:
    """Return the names of the fields that disagree. Nothing is modified.

    The TMS customer is the portal (the business), not the transferee, so a
    mismatch only means the two systems have drifted apart.
    """
    if customer is None:
        return []

    contact_email = (portal.contact_email or "").strip() or (
        default_contact_email or settings.default_portal_contact_email
    )

    mismatches: list[str] = []
    if customer.name and portal.company_name and _norm(customer.name) != _norm(portal.company_name):
        mismatches.append("company name")
    if customer.contact_email and _norm(customer.contact_email) != _norm(contact_email):
        mismatches.append("contact email")
    if (
        customer.contact_name
        and portal.contact_full_name
        and _norm(customer.contact_name) != _norm(portal.contact_full_name)
    ):
        mismatches.append("contact name")
    if customer.phone and portal.company_phone and _digits(customer.phone) != _digits(portal.company_phone):
        mismatches.append("phone")

    if mismatches:
        logger.warning(
            "Order %s: TMS customer does not match portal %s contact details (%s)",
            ref_id, portal.id, ", ".join(mismatches),
        )
    return mismatches
