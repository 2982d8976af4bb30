"""Proximity and SOS policy constants."""

from __future__ import annotations

# Hard cap on trusted contacts per user
MAX_TRUSTED_CONTACTS = 5

# Safety check-in timer bounds, in minutes
MIN_TIMER_MINUTES = 1
MAX_TIMER_MINUTES = 24 * 60

# Proximity radius bounds, in meters
MIN_RADIUS_M = 50
MAX_RADIUS_M = 50_000
DEFAULT_RADIUS_M = 5000

# Nearby messaging
DEFAULT_NEARBY_MESSAGE_RADIUS_M = 1000
MAX_NEARBY_MESSAGE_RADIUS_M = 5000
MAX_NEARBY_MESSAGE_LENGTH = 500

# SOS history page size
MAX_HISTORY_LIMIT = 100

# Trigger sources
TRIGGER_MANUAL = "manual"
TRIGGER_VOICE = "voice"
TRIGGER_TIMER = "timer-expiry"
TRIGGER_TEST = "test"
TRIGGERS = (TRIGGER_MANUAL, TRIGGER_VOICE, TRIGGER_TIMER, TRIGGER_TEST)
# Triggers a client may request directly
CLIENT_TRIGGERS = (TRIGGER_MANUAL, TRIGGER_VOICE, TRIGGER_TEST)

# Incident states. "idle" is the absence of an open incident.
STATE_IDLE = "idle"
STATE_ARMING = "arming"
STATE_ACTIVE = "active"
STATE_CANCELLED = "cancelled"
STATE_RESOLVED = "resolved"
OPEN_STATES = (STATE_ARMING, STATE_ACTIVE)
TERMINAL_STATES = (STATE_CANCELLED, STATE_RESOLVED)

# Per-contact notification status
NOTIFY_PENDING = "PENDING"
NOTIFY_NOTIFIED = "NOTIFIED"
NOTIFY_FAILED = "FAILED"
NOTIFY_SUPPRESSED = "SUPPRESSED"
NOTIFY_ACKNOWLEDGED = "ACKNOWLEDGED"

# Safety check-in outcomes
CHECKIN_CHECKED_IN = "CHECKED_IN"
CHECKIN_CANCELLED = "CANCELLED"
CHECKIN_EXPIRED = "EXPIRED"
CHECKIN_REPLACED = "REPLACED"

# Proximity alert frequencies
FREQ_IMMEDIATE = "immediate"
FREQ_PERIODIC = "periodic"
FREQ_ONCE = "once"
ALERT_FREQUENCIES = (FREQ_IMMEDIATE, FREQ_PERIODIC, FREQ_ONCE)

# Nearby message visibility
VIS_PUBLIC = "public"
VIS_FOLLOWERS = "followers"
VIS_CLOSE_FRIENDS = "close_friends"
VIS_PRIVATE = "private"
VISIBILITIES = (VIS_PUBLIC, VIS_FOLLOWERS, VIS_CLOSE_FRIENDS, VIS_PRIVATE)

# Saved place types
PLACE_KINDS = ("place", "route", "guide")

# Relationship kinds mirrored from the social graph
REL_BLOCK = "BLOCK"
REL_FOLLOW = "FOLLOW"
REL_CLOSE_FRIEND = "CLOSE_FRIEND"

# Real-time event names
EVENT_PROXIMITY_ALERT = "proximity_alert_received"
EVENT_SOS_ALERT = "sos_alert"
EVENT_SOS_CANCELLED = "sos_cancelled"
EVENT_SOS_RESOLVED = "sos_resolved"
EVENT_SOS_STATUS = "sos_status"
EVENT_NEARBY_MESSAGE = "nearby_message_received"
EVENT_LOCATION_UPDATED = "location_updated"
