"""Decide, per address block, whether TMS or local data wins.

A block is guarded by two order-level markers:

* partial order: contact details (and the street line) stay local because
  the TMS only ever received a minimal copy of the order;
* withheld address: the street, city, state and zip stay local because they
  were deliberately concealed from the carrier.

Withheld is carried as an explicit ``visibility`` tag. Rows written before the
tag existed mark the block by embedding a sentinel in ``address.line1``; such
blocks are recognised and come out tagged.
"""

from __future__ import annotations

import re

from src.config import settings
from src.models.enums import AddressVisibility
from src.modules.order.schemas import Address, Contact, Location
from src.modules.tms.schemas import TmsStop

_NON_DIGITS = re.compile(r"\D+")


def is_withheld(location: Location, sentinel: str | None = None) -> bool:
    if location.visibility == AddressVisibility.WITHHELD:
        return True
    marker = (sentinel or settings.withheld_address_sentinel).upper()
    line1 = location.address.line1
    return bool(line1 and marker and marker in line1.upper())


def _pick(external: str | None, persisted: str | None, keep_persisted: bool) -> str | None:
    # A null external field means "removed upstream": keep ours
    if keep_persisted or external is None:
        return persisted
    return external or None


def _digits(value: str) -> str:
    return _NON_DIGITS.sub("", value)


def resolve_location(
    persisted: Location,
    stop: TmsStop,
    is_partial_order: bool,
    sentinel: str | None = None,
) -> Location:
    venue = stop.venue
    withheld = is_withheld(persisted, sentinel)
    keep_contact = is_partial_order or venue is None

    if keep_contact:
        contact = persisted.contact.model_copy()
    else:
        contact = Contact(
            name=venue.contact_name or None,
            phone=venue.contact_phone or None,
            mobile_phone=venue.contact_mobile_phone or None,
        )

    current = persisted.address
    if withheld or venue is None:
        address = current.model_copy()
    else:
        address = Address(
            line1=_pick(venue.address, current.line1, is_partial_order),
            city=_pick(venue.city, current.city, False),
            state=_pick(venue.state, current.state, False),
            zip=_pick(
                _digits(venue.zip) if venue.zip is not None else None,
                current.zip,
                False,
            ),
        )

    if venue is None:
        notes, latitude, longitude = persisted.notes, persisted.latitude, persisted.longitude
    else:
        notes = stop.notes or None
        latitude = stop.latitude or None
        longitude = stop.longitude or None

    return Location(
        contact=contact,
        address=address,
        visibility=AddressVisibility.WITHHELD if withheld else AddressVisibility.VISIBLE,
        notes=notes,
        latitude=latitude,
        longitude=longitude,
    )
