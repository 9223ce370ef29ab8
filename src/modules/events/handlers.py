"""Event handler registry and the order event handlers."""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Callable

from src.modules.order.constants import ORDER_EVENT_TYPES

logger = logging.getLogger(__name__)

Handler = Callable[[dict], None]


class EventHandlerRegistry:
    """Maps event types to plain callables taking the event payload."""

    def __init__(self) -> None:
        self._handlers: dict[str, list[Handler]] = defaultdict(list)

    def register(self, event_type: str, handler: Handler) -> None:
        if handler in self._handlers[event_type]:
            return
        self._handlers[event_type].append(handler)
        logger.info("Registered handler %s for event type %s", handler.__name__, event_type)

    def get_handlers(self, event_type: str) -> list[Handler]:
        return list(self._handlers.get(event_type, []))

    def dispatch(self, event_type: str, payload: dict) -> list[dict]:
        """Run every handler for ``event_type``.

        One failing handler does not stop the others; each outcome comes back
        as ``{"handler", "status", "error"?}``.
        """
        results = []
        for handler in self.get_handlers(event_type):
            try:
                handler(payload)
                results.append({"handler": handler.__name__, "status": "ok"})
            except Exception as exc:
                logger.exception(
                    "Handler %s failed for event type %s", handler.__name__, event_type
                )
                results.append({"handler": handler.__name__, "status": "error", "error": str(exc)})
        return results

    def clear(self) -> None:
        self._handlers.clear()


def log_schedule_update(payload: dict) -> None:
    """Carrier-facing schedule change notice.

    The carrier notification itself belongs to the dispatch side; this
    handler records the change so it can be picked up there.
    """
    logger.info(
        "Order %s schedule updated: pickup %s -> %s, delivery %s -> %s",
        payload.get("ref_id"),
        payload.get("previous_pickup_estimated"),
        payload.get("pickup_estimated"),
        payload.get("previous_delivery_estimated"),
        payload.get("delivery_estimated"),
    )


def register_order_handlers(target: EventHandlerRegistry) -> EventHandlerRegistry:
    target.register(ORDER_EVENT_TYPES["schedule_updated"], log_schedule_update)
    return target


registry = register_order_handlers(EventHandlerRegistry())
