"""Shared constants: placeholder strings, sentinels, and marker palette."""

from __future__ import annotations

# Route filter sentinel, always the first route option.
ALL_ROUTES = "All Routes"

# Position report placeholders (applied at the ingestion boundary).
UNKNOWN_UNIT = "Unknown Unit"
NO_ROUTE = "No Route"
UNKNOWN_STATUS = "Unknown"

# Join fallbacks. The two driver fallbacks are distinct on purpose:
# no holder assigned vs. holder assigned but not found in the registry.
UNKNOWN_VEHICLE = "Unknown Vehicle"
UNKNOWN_DRIVER = "Unknown Driver"
NO_DRIVER_FOUND = "No Driver Found"
NO_NAME_FOUND = "No Name Found"
NO_PARTICULAR = "No Particular"

# Marker colours per status tier.
COLOR_ACTIVE = "#10b981"
COLOR_IDLE = "#6b7280"
COLOR_STOPPED = "#ef4444"

MARKER_ICON_SIZE = 48

COORDINATE_DECIMALS = 7
