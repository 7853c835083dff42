from . import activities, schedule, sessions

__all__ = [
    "activities",
    "schedule",
    "sessions",
]
