"""Order module constants: TMS status vocabulary shared by reconciliation and sweeps."""

# Raw TMS statuses (lower-case, underscore separated)
EXTERNAL_STATUS_NEW = "new"
EXTERNAL_STATUS_ACCEPTED = "accepted"
EXTERNAL_STATUS_PICKED_UP = "picked_up"
EXTERNAL_STATUS_DELIVERED = "delivered"
EXTERNAL_STATUS_INVOICED = "invoiced"

PRE_PICKUP_EXTERNAL_STATUSES = (EXTERNAL_STATUS_NEW, EXTERNAL_STATUS_ACCEPTED)
DELIVERED_EXTERNAL_STATUSES = (EXTERNAL_STATUS_DELIVERED, EXTERNAL_STATUS_INVOICED)

ORDER_EVENT_TYPES = {
    "schedule_updated": "order.schedule.updated",
}

# Written locally when the TMS deletes an order
TMS_REMOVED_STATUS = "removed"
