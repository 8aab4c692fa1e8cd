VERSION = "0.3.0"

# Spherical Earth used for all displacement calculations
EARTH_RADIUS_M = 6_371_000.0

# Default safety radius around the locked position (metres)
DEFAULT_THRESHOLD_M = 10.0

# Severity tier boundaries (metres). Distances above the threshold but at or
# below MEDIUM_SEVERITY_M are "low".
MEDIUM_SEVERITY_M = 25.0
HIGH_SEVERITY_M = 50.0

SEVERITY_LOW = "low"
SEVERITY_MEDIUM = "medium"
SEVERITY_HIGH = "high"
SEVERITIES = (SEVERITY_LOW, SEVERITY_MEDIUM, SEVERITY_HIGH)

# Document store collections
LOCKS_COLLECTION = "locked_locations"
LOCK_HISTORY_COLLECTION = "location_lock_history"
ALERTS_COLLECTION = "movement_alerts"
TOKENS_COLLECTION = "user_push_tokens"
SUMMARY_COLLECTION = "notification_summary"
FAILED_TOKENS_COLLECTION = "failed_tokens"
LOCATION_HISTORY_COLLECTION = "location_history"

# Push notifications
ALERT_TYPE_MOVEMENT = "movement_detected"
ALERT_TOPIC_TEMPLATE = "device_{device_id}_movement_alerts"
ANDROID_CHANNEL_ID = "movement_alerts"
NOTIFICATION_COLOR = "#ff5252"
NOTIFICATION_ICON = "ic_notification"

# Indicator (device LED) pattern sent on a movement alert
INDICATOR_ON = {
    "red": 0,
    "green": 0,
    "blue": 255,
    "duration_on_msec": 500,
    "duration_off_msec": 1000,
    "repetitions": 5,
}
INDICATOR_OFF = {
    "red": 0,
    "green": 0,
    "blue": 0,
    "duration_on_msec": 0,
    "duration_off_msec": 0,
    "repetitions": 0,
}
INDICATOR_OFF_DELAY = 60       # seconds until the pattern is switched off again
DEVICE_UPDATE_INTERVAL = 60    # reporting interval pushed along with every state change

# Scheduler
CHECK_INTERVAL = 120           # seconds between scheduled evaluation ticks
REQUEST_DELAY = 0.2            # minimum gap between consecutive jobs on the same device queue

# Telemetry / device API
NRF_CLOUD_BASE_URL = "https://api.nrfcloud.com/v1"
REQUEST_TIMEOUT = 5            # seconds, multiplied by attempt number for each retry
REQUEST_ATTEMPTS = 3
