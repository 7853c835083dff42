"""Common application-wide constants."""

from datetime import time, timedelta

# Sessions may only start inside [MATCH_WINDOW_START, MATCH_WINDOW_END)
MATCH_WINDOW_START = time(12, 0)
MATCH_WINDOW_END = time(14, 0)
# Granularity of the slots offered to users when picking a start time
TIME_SLOT_STEP = timedelta(minutes=30)
# Default start time of generated sessions
DEFAULT_SESSION_TIME = "12:00"

# Booking horizon relative to "now"
MIN_BOOKING_ADVANCE = timedelta(hours=24)
MAX_BOOKING_ADVANCE_DAYS = 14

# Monday=0 ... Friday=4 (datetime.weekday())
BUSINESS_WEEKDAYS = frozenset(range(5))

MIN_PLAYERS_LIMIT = 2
MAX_PLAYERS_LIMIT = 100

JOIN_CODE_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"
JOIN_CODE_LENGTH = 8

# Minimum spacing between two matches when checking for overlaps
TIME_CONFLICT_BUFFER = timedelta(minutes=30)

SYSTEM_ACTOR = "system"


__all__ = [
    "MATCH_WINDOW_START",
    "MATCH_WINDOW_END",
    "TIME_SLOT_STEP",
    "DEFAULT_SESSION_TIME",
    "MIN_BOOKING_ADVANCE",
    "MAX_BOOKING_ADVANCE_DAYS",
    "BUSINESS_WEEKDAYS",
    "MIN_PLAYERS_LIMIT",
    "MAX_PLAYERS_LIMIT",
    "JOIN_CODE_ALPHABET",
    "JOIN_CODE_LENGTH",
    "TIME_CONFLICT_BUFFER",
    "SYSTEM_ACTOR",
]
