"""TMS status vocabulary -> canonical order status."""

from __future__ import annotations

from src.modules.reconciliation.constants import NEW_STATUS_ALIASES, STATUS_SYNONYMS


def normalize_status(raw: str | None) -> str:
    """Map an external status string to the canonical order status.

    ``"invoiced"`` -> ``"Delivered"``, ``"picked_up"`` -> ``"Picked Up"``,
    ``"accepted"``/``"pending"`` -> ``"New"``. Anything unrecognised comes
    back with its first letter upper-cased.
    """
    if not raw:
        return ""
    text = raw.strip().lower().replace("_", " ")
    if not text:
        return ""
    text = text[0].upper() + text[1:]
    text = STATUS_SYNONYMS.get(text, text)
    if text in NEW_STATUS_ALIASES:
        return "New"
    return text
