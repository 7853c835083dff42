from __future__ import annotations

import logging
import re
import secrets
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, tzinfo

from ..core.constants import (
    DEFAULT_SESSION_TIME,
    JOIN_CODE_ALPHABET,
    JOIN_CODE_LENGTH,
    MAX_PLAYERS_LIMIT,
    MIN_PLAYERS_LIMIT,
)
from ..core.errors import (
    ActivityNotFound,
    JoinCodeUnavailable,
    NotActivityOwner,
    NotRegistered,
    SessionNotFound,
    ValidationFailed,
)
from ..db.models import DayOfWeek, RecurringType, SportType
from .participation_service import ParticipationService
from .recurrence import activity_occurrences
from .repositories import ActivityRecord, BaseSessionRepository, SessionFilter, SessionRecord
from .time_constraints import (
    TIME_WINDOW_ERROR,
    is_business_day,
    is_valid_match_time,
    parse_match_time,
    validate_players,
    within_booking_horizon,
)

logger = logging.getLogger(__name__)

_JOIN_CODE_RE = re.compile(rf"^[A-Z0-9]{{{JOIN_CODE_LENGTH}}}$")
_JOIN_CODE_ATTEMPTS = 10
_UPDATABLE_FIELDS = frozenset(
    {
        "name",
        "description",
        "sport",
        "min_players",
        "max_players",
        "recurring_type",
        "recurring_days",
        "start_time",
        "is_public",
    }
)


@dataclass(slots=True)
class ActivityDraft:
    name: str
    sport: SportType
    min_players: int
    max_players: int
    recurring_type: RecurringType
    recurring_days: list[str]
    start_time: str = DEFAULT_SESSION_TIME
    description: str | None = None
    is_public: bool = True


def generate_join_code() -> str:
    return "".join(secrets.choice(JOIN_CODE_ALPHABET) for _ in range(JOIN_CODE_LENGTH))


def sanitize_join_code(raw: str) -> str:
    return re.sub(r"\s", "", raw).upper()


def is_valid_join_code(code: str) -> bool:
    return bool(_JOIN_CODE_RE.match(code))


def format_join_code(code: str) -> str:
    if not is_valid_join_code(code):
        return code
    half = JOIN_CODE_LENGTH // 2
    return f"{code[:half]} {code[half:]}"


def validate_activity(draft: ActivityDraft) -> list[str]:
    errors: list[str] = []
    if not draft.name or not draft.name.strip():
        errors.append("Activity name is required")
    if not draft.recurring_days:
        errors.append("Select at least one day of the week")
    else:
        for day in draft.recurring_days:
            try:
                weekday = DayOfWeek(day).weekday
            except ValueError:
                errors.append(f"Unknown day of the week: {day}")
                continue
            if weekday >= 5:
                errors.append("Activities can only recur from Monday to Friday")
                break
    errors.extend(validate_players(draft.max_players, draft.min_players))
    if not is_valid_match_time(draft.start_time):
        errors.append(TIME_WINDOW_ERROR)
    return errors


def create_activity(
    repo: BaseSessionRepository,
    user_id: str,
    draft: ActivityDraft,
    *,
    now: datetime,
    tz: tzinfo,
    weeks_ahead: int = 2,
) -> tuple[ActivityRecord, list[SessionRecord]]:
    errors = validate_activity(draft)
    if errors:
        raise ValidationFailed(errors)

    for _ in range(_JOIN_CODE_ATTEMPTS):
        join_code = generate_join_code()
        if repo.get_activity_by_code(join_code) is None:
            break
    else:
        logger.error("Join code space exhausted", extra={"attempts": _JOIN_CODE_ATTEMPTS})
        raise JoinCodeUnavailable()

    activity = repo.add_activity(
        ActivityRecord(
            name=draft.name.strip(),
            description=draft.description,
            sport=SportType(draft.sport),
            min_players=draft.min_players,
            max_players=draft.max_players,
            recurring_type=RecurringType(draft.recurring_type),
            recurring_days=[DayOfWeek(day).value for day in draft.recurring_days],
            start_time=draft.start_time,
            created_by=user_id,
            join_code=join_code,
            is_public=draft.is_public,
        )
    )
    repo.add_subscription(activity.id, user_id)
    logger.info(
        "Activity created",
        extra={"activity_id": activity.id, "user_id": user_id, "join_code": join_code},
    )
    sessions = generate_sessions(repo, activity, now=now, tz=tz, weeks_ahead=weeks_ahead)
    return activity, sessions


def generate_sessions(
    repo: BaseSessionRepository,
    activity: ActivityRecord,
    *,
    now: datetime,
    tz: tzinfo,
    weeks_ahead: int = 2,
    from_dt: datetime | None = None,
) -> list[SessionRecord]:
    """Create the missing sessions of ``activity`` for the coming weeks.

    Occurrences already in the past, outside the booking horizon, on a
    weekend or outside the time window are skipped, as is any day that
    already holds a session of this activity.
    """
    start = from_dt or now
    until = start + timedelta(weeks=weeks_ahead)
    start_time = parse_match_time(activity.start_time) or parse_match_time(DEFAULT_SESSION_TIME)

    existing_days = {
        session.starts_at.astimezone(tz).date()
        for session in repo.list_sessions(SessionFilter(activity_id=activity.id))
    }
    pending: list[SessionRecord] = []
    for starts_at in activity_occurrences(
        activity.recurring_type,
        activity.recurring_days,
        start_time,
        start,
        until,
        tz,
    ):
        if starts_at <= now or not within_booking_horizon(starts_at, now):
            continue
        if not is_business_day(starts_at) or not is_valid_match_time(starts_at.time()):
            continue
        if starts_at.date() in existing_days:
            continue
        existing_days.add(starts_at.date())
        pending.append(
            SessionRecord(
                activity_id=activity.id,
                starts_at=starts_at,
                max_players=activity.max_players,
            )
        )
    if not pending:
        return []
    created = repo.add_sessions(pending)
    logger.info(
        "Sessions generated",
        extra={"activity_id": activity.id, "count": len(created)},
    )
    return created


def get_activity(repo: BaseSessionRepository, activity_id: int) -> ActivityRecord:
    activity = repo.get_activity(activity_id)
    if activity is None:
        raise ActivityNotFound()
    return activity


def find_activity_by_code(repo: BaseSessionRepository, raw_code: str) -> ActivityRecord:
    code = sanitize_join_code(raw_code)
    if not is_valid_join_code(code):
        raise ValidationFailed(["Activity codes are 8 letters or digits"])
    activity = repo.get_activity_by_code(code)
    if activity is None:
        raise ActivityNotFound()
    return activity


def _owned_activity(repo: BaseSessionRepository, activity_id: int, user_id: str) -> ActivityRecord:
    activity = get_activity(repo, activity_id)
    if activity.created_by != user_id:
        raise NotActivityOwner()
    return activity


def _owned_session(
    repo: BaseSessionRepository, session_id: int, user_id: str
) -> SessionRecord:
    session = repo.get_session(session_id)
    if session is None:
        raise SessionNotFound()
    _owned_activity(repo, session.activity_id, user_id)
    return session


def delete_activity(repo: BaseSessionRepository, activity_id: int, user_id: str) -> None:
    _owned_activity(repo, activity_id, user_id)
    repo.delete_activity(activity_id)
    logger.info("Activity deleted", extra={"activity_id": activity_id, "user_id": user_id})


def cancel_session(repo: BaseSessionRepository, session_id: int, user_id: str) -> SessionRecord:
    session = _owned_session(repo, session_id, user_id)
    if session.is_cancelled:
        return session
    session = repo.update_session(replace(session, is_cancelled=True))
    logger.info("Session cancelled", extra={"session_id": session_id, "user_id": user_id})
    return session


def update_session_capacity(
    repo: BaseSessionRepository,
    service: ParticipationService,
    session_id: int,
    user_id: str,
    max_players: int,
) -> SessionRecord:
    """Change a session's capacity and fill any slots it opens.

    Lowering the capacity never demotes confirmed participants; the session
    simply stays full until enough of them leave.
    """
    session = _owned_session(repo, session_id, user_id)
    if not MIN_PLAYERS_LIMIT <= max_players <= MAX_PLAYERS_LIMIT:
        raise ValidationFailed(
            [f"Capacity must be between {MIN_PLAYERS_LIMIT} and {MAX_PLAYERS_LIMIT} players"]
        )
    session = repo.update_session(replace(session, max_players=max_players))
    logger.info(
        "Session capacity changed",
        extra={"session_id": session_id, "max_players": max_players},
    )
    service.process_interested_participants(session_id)
    return session


def update_activity(
    repo: BaseSessionRepository,
    activity_id: int,
    user_id: str,
    changes: dict,
) -> ActivityRecord:
    """Apply a partial update to an activity owned by ``user_id``.

    The merged activity is validated as a whole. Sessions that already exist
    keep their date and capacity; a new recurrence rule only shapes the
    sessions generated from now on.
    """
    activity = _owned_activity(repo, activity_id, user_id)
    unknown = sorted(set(changes) - _UPDATABLE_FIELDS)
    if unknown:
        raise ValidationFailed([f"Field cannot be changed: {name}" for name in unknown])

    merged = replace(activity, **changes)
    errors = validate_activity(
        ActivityDraft(
            name=merged.name,
            sport=merged.sport,
            min_players=merged.min_players,
            max_players=merged.max_players,
            recurring_type=merged.recurring_type,
            recurring_days=list(merged.recurring_days),
            start_time=merged.start_time,
            description=merged.description,
            is_public=merged.is_public,
        )
    )
    if errors:
        raise ValidationFailed(errors)

    updated = repo.update_activity(
        replace(
            merged,
            name=merged.name.strip(),
            sport=SportType(merged.sport),
            recurring_type=RecurringType(merged.recurring_type),
            recurring_days=[DayOfWeek(day).value for day in merged.recurring_days],
        )
    )
    logger.info(
        "Activity updated",
        extra={"activity_id": activity_id, "user_id": user_id, "fields": sorted(changes)},
    )
    return updated


def find_by_creator(repo: BaseSessionRepository, user_id: str) -> list[ActivityRecord]:
    # Newest first
    return sorted(repo.list_activities(created_by=user_id), key=lambda a: a.id, reverse=True)


def subscribe(repo: BaseSessionRepository, activity_id: int, user_id: str) -> bool:
    get_activity(repo, activity_id)
    created = repo.add_subscription(activity_id, user_id)
    if created:
        logger.info("Subscribed to activity", extra={"activity_id": activity_id, "user_id": user_id})
    return created


def unsubscribe(
    repo: BaseSessionRepository,
    service: ParticipationService,
    activity_id: int,
    user_id: str,
    *,
    now: datetime,
) -> int:
    """Drop the subscription and leave every upcoming session of the activity.

    Leaving goes through the participation service so freed spots are handed
    to the waiting list. Returns the number of sessions left.
    """
    get_activity(repo, activity_id)
    repo.remove_subscription(activity_id, user_id)
    left = 0
    for session in repo.list_sessions(SessionFilter(activity_id=activity_id, from_dt=now)):
        if service.get_user_participation_status(session.id, user_id) is None:
            continue
        try:
            service.leave_session(session.id, user_id)
        except NotRegistered:
            continue
        left += 1
    logger.info(
        "Unsubscribed from activity",
        extra={"activity_id": activity_id, "user_id": user_id, "sessions_left": left},
    )
    return left


def join_by_code(
    repo: BaseSessionRepository, raw_code: str, user_id: str
) -> tuple[ActivityRecord, bool]:
    """Subscribe ``user_id`` to the activity behind a join code.

    Returns the activity and whether the user was already a member.
    """
    activity = find_activity_by_code(repo, raw_code)
    created = repo.add_subscription(activity.id, user_id)
    if created:
        logger.info(
            "Joined activity by code",
            extra={"activity_id": activity.id, "user_id": user_id},
        )
    return activity, not created
