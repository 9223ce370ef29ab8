import enum


class OrderStatus(str, enum.Enum):
    NEW = "New"
    PICKED_UP = "Picked Up"
    DELIVERED = "Delivered"
    INVOICED = "Invoiced"
    CANCELED = "Canceled"
    ARCHIVED = "Archived"


TERMINAL_ORDER_STATUSES = frozenset({
    OrderStatus.DELIVERED.value,
    OrderStatus.INVOICED.value,
    OrderStatus.CANCELED.value,
    OrderStatus.ARCHIVED.value,
})


class NotificationStatus(str, enum.Enum):
    UNSENT = "unsent"
    SENT = "sent"
    FAILED = "failed"


class NotificationChannel(str, enum.Enum):
    PICKUP = "pickup"
    DELIVERY = "delivery"


class AddressVisibility(str, enum.Enum):
    VISIBLE = "visible"
    WITHHELD = "withheld"


class DateType(str, enum.Enum):
    ESTIMATED = "estimated"
    EXACT = "exact"
    NOT_EARLIER_THAN = "not_earlier_than"
    NOT_LATER_THAN = "not_later_than"


class ReconciliationOutcome(str, enum.Enum):
    RECONCILED = "RECONCILED"
    DUPLICATE = "DUPLICATE"
    SKIPPED = "SKIPPED"


class TmsWebhookEvent(str, enum.Enum):
    ORDER_PICKED_UP = "order.picked_up"
    ORDER_DELIVERED = "order.delivered"
    ORDER_INVOICED = "order.invoiced"
    ORDER_MODIFIED = "order.modified"
    ORDER_CANCELED = "order.canceled"
    ORDER_CANCELLED = "order.cancelled"
    ORDER_REMOVED = "order.removed"
    VEHICLE_MODIFIED = "vehicle.modified"


class EventStatus(str, enum.Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
