"""TMS integration constants."""

SNAPSHOT_SCHEMA_VERSION = 1

# Refresh the OAuth token this many seconds before it expires
TOKEN_REFRESH_MARGIN_SECONDS = 60
DEFAULT_TOKEN_TTL_SECONDS = 3600

# TMS vehicle type -> local pricing class
VEHICLE_TYPE_PRICING_CLASS = {
    "sedan": "sedan",
    "suv": "suv",
    "van": "van",
    "4_door_pickup": "pickup_4_doors",
    "2_door_pickup": "pickup_2_doors",
    "pickup": "pickup_4_doors",
    "other": "other",
}
DEFAULT_PRICING_CLASS = "other"
