from . import (
    activity_service,
    participation_service,
    recurrence,
    time_constraints,
)
__all__ = [
    "activity_service",
    "participation_service",
    "recurrence",
    "time_constraints",
]
