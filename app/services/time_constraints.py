"""Business rules deciding when a session may take place.

Sessions run on weekdays, start inside the lunch window
(``MATCH_WINDOW_START`` inclusive, ``MATCH_WINDOW_END`` exclusive) and can be
booked between 24 hours and two weeks ahead. Every check that depends on the
current time takes the reference instant as an argument; nothing in this
module reads the clock.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta
from typing import Iterable

from ..core.clock import as_utc
from ..core.constants import (
    BUSINESS_WEEKDAYS,
    MATCH_WINDOW_END,
    MATCH_WINDOW_START,
    MAX_BOOKING_ADVANCE_DAYS,
    MAX_PLAYERS_LIMIT,
    MIN_BOOKING_ADVANCE,
    MIN_PLAYERS_LIMIT,
    TIME_CONFLICT_BUFFER,
    TIME_SLOT_STEP,
)

_TIME_RE = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")

WEEKDAY_ERROR = "Sessions can only take place from Monday to Friday"
TIME_WINDOW_ERROR = (
    f"Sessions must start between {MATCH_WINDOW_START:%H:%M} and {MATCH_WINDOW_END:%H:%M}"
)
MIN_ADVANCE_ERROR = "Sessions must be created at least 24 hours in advance"
MAX_ADVANCE_ERROR = "Sessions cannot be created more than 2 weeks in advance"
MIN_PLAYERS_ERROR = f"A session needs at least {MIN_PLAYERS_LIMIT} players"
MAX_PLAYERS_ERROR = f"A session cannot have more than {MAX_PLAYERS_LIMIT} players"
PLAYERS_ORDER_ERROR = "Minimum players cannot be greater than maximum players"


@dataclass(slots=True)
class MatchCandidate:
    starts_at: datetime
    max_players: int
    min_players: int | None = None
    description: str = ""


@dataclass(slots=True)
class ValidationResult:
    is_valid: bool
    errors: list[str] = field(default_factory=list)


def parse_match_time(value: str | time) -> time | None:
    if isinstance(value, time):
        return value
    if not isinstance(value, str):
        return None
    match = _TIME_RE.match(value.strip())
    if match is None:
        return None
    return time(int(match.group(1)), int(match.group(2)))


def is_valid_match_time(value: str | time) -> bool:
    parsed = parse_match_time(value)
    if parsed is None:
        return False
    return MATCH_WINDOW_START <= parsed.replace(second=0, microsecond=0) < MATCH_WINDOW_END


def is_business_day(moment: datetime) -> bool:
    return moment.weekday() in BUSINESS_WEEKDAYS


def has_min_advance(moment: datetime, reference_now: datetime) -> bool:
    return as_utc(moment) - as_utc(reference_now) > MIN_BOOKING_ADVANCE


def within_booking_horizon(moment: datetime, reference_now: datetime) -> bool:
    # Whole days only: a session on day 14 is bookable whatever its hour.
    return (as_utc(moment) - as_utc(reference_now)).days <= MAX_BOOKING_ADVANCE_DAYS


def is_valid_match_date(moment: datetime, reference_now: datetime) -> bool:
    return (
        is_business_day(moment)
        and has_min_advance(moment, reference_now)
        and within_booking_horizon(moment, reference_now)
    )


def get_available_time_slots() -> list[str]:
    slots: list[str] = []
    cursor = datetime.combine(datetime.min.date(), MATCH_WINDOW_START)
    end = datetime.combine(datetime.min.date(), MATCH_WINDOW_END)
    while cursor < end:
        slots.append(cursor.strftime("%H:%M"))
        cursor += TIME_SLOT_STEP
    return slots


def get_available_durations() -> list[dict[str, int | str]]:
    return [
        {"value": 30, "label": "30 minutes"},
        {"value": 60, "label": "1 hour"},
        {"value": 90, "label": "1h30"},
        {"value": 120, "label": "2 hours"},
    ]


def validate_players(max_players: int, min_players: int | None = None) -> list[str]:
    errors: list[str] = []
    if max_players < MIN_PLAYERS_LIMIT:
        errors.append(MIN_PLAYERS_ERROR)
    if max_players > MAX_PLAYERS_LIMIT:
        errors.append(MAX_PLAYERS_ERROR)
    if min_players is not None:
        if min_players < MIN_PLAYERS_LIMIT and MIN_PLAYERS_ERROR not in errors:
            errors.append(MIN_PLAYERS_ERROR)
        if min_players > max_players:
            errors.append(PLAYERS_ORDER_ERROR)
    return errors


def validate_match_creation(candidate: MatchCandidate, now: datetime) -> ValidationResult:
    """Collect every rule the candidate breaks, not only the first one."""
    errors: list[str] = []
    starts_at = candidate.starts_at

    if not is_business_day(starts_at):
        errors.append(WEEKDAY_ERROR)
    if not is_valid_match_time(starts_at.time()):
        errors.append(TIME_WINDOW_ERROR)
    errors.extend(validate_players(candidate.max_players, candidate.min_players))
    if not has_min_advance(starts_at, now):
        errors.append(MIN_ADVANCE_ERROR)
    if not within_booking_horizon(starts_at, now):
        errors.append(MAX_ADVANCE_ERROR)

    return ValidationResult(is_valid=not errors, errors=errors)


def has_time_conflict(
    candidate: datetime,
    existing: Iterable[datetime],
    buffer: timedelta = TIME_CONFLICT_BUFFER,
) -> bool:
    candidate = as_utc(candidate)
    return any(abs(candidate - as_utc(other)) < buffer for other in existing)
