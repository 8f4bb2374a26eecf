"""Controller entity ids, prefixes and timing defaults."""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Structured state record ids (``<category>-<slug>``)
# ---------------------------------------------------------------------------

SYNCED_ID = "binary_sensor-synced"
DEVICE_ID_ID = "text_sensor-device_id"
FIRMWARE_IDS = frozenset({"text_sensor-esphome_version", "text_sensor-firmware_version"})

COVER_IDS = frozenset({"cover-garage_door", "cover-door"})
LOCK_IDS = frozenset({"lock-lock", "lock-lock_remotes"})
LIGHT_IDS = frozenset({"light-garage_light", "light-light"})
MOTION_ID = "binary_sensor-motion"
OBSTRUCTION_ID = "binary_sensor-obstruction"
PRE_CLOSE_WARNING_ID = "button-pre-close_warning"
LEARN_ID = "switch-learn"

BINARY_SENSOR_PREFIX = "binary_sensor-"
BUTTON_PREFIX = "button-"
DRY_CONTACT_PREFIX = "dry_contact_"

# Default slugs used for commands until the device reports its own.
DEFAULT_COVER_TYPE = "garage_door"
DEFAULT_LOCK_TYPE = "lock"
DEFAULT_LIGHT_TYPE = "garage_light"

# ---------------------------------------------------------------------------
# Timing
# ---------------------------------------------------------------------------

DEFAULT_IDLE_TIMEOUT_S = 60.0
WATCHDOG_INTERVAL_S = 1.0
DEFAULT_PRE_CLOSE_WARNING_MS = 5000
# Keeps the closing transition visible before pre-closing clears.
PRE_CLOSE_GRACE_S = 0.5

# ---------------------------------------------------------------------------
# Position scale
# ---------------------------------------------------------------------------

POSITION_OPEN = 100
POSITION_CLOSED = 0
POSITION_UNKNOWN = 50

FRIENDLY_NAME_PREFIX = "GDO "
