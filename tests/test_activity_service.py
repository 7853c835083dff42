from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from app.core.errors import (
    ActivityNotFound,
    JoinCodeUnavailable,
    NotActivityOwner,
    SessionNotFound,
    ValidationFailed,
)
from app.db import models
from app.services import activity_service
from app.services.activity_service import ActivityDraft
from app.services.participation_service import ParticipationService
from app.services.repositories import SessionFilter

from conftest import NOW, create_activity, create_session

UTC = timezone.utc


def make_draft(**overrides):
    values = dict(
        name="Lunch football",
        sport=models.SportType.football,
        min_players=4,
        max_players=10,
        recurring_type=models.RecurringType.weekly,
        recurring_days=["tuesday", "thursday"],
    )
    values.update(overrides)
    return ActivityDraft(**values)


def test_create_activity_generates_two_weeks_of_sessions(repository):
    activity, sessions = activity_service.create_activity(
        repository, "owner", make_draft(), now=NOW, tz=UTC
    )

    assert activity.id is not None
    assert activity.created_by == "owner"
    assert activity_service.is_valid_join_code(activity.join_code)
    assert [s.starts_at for s in sessions] == [
        datetime(2025, 1, 16, 12, 0, tzinfo=UTC),
        datetime(2025, 1, 21, 12, 0, tzinfo=UTC),
        datetime(2025, 1, 23, 12, 0, tzinfo=UTC),
        datetime(2025, 1, 28, 12, 0, tzinfo=UTC),
    ]
    assert all(s.max_players == 10 for s in sessions)


def test_create_activity_uses_local_timezone(repository):
    paris = ZoneInfo("Europe/Paris")

    _, sessions = activity_service.create_activity(
        repository,
        "owner",
        make_draft(recurring_days=["friday"], start_time="12:30"),
        now=NOW,
        tz=paris,
    )

    assert sessions[0].starts_at == datetime(2025, 1, 17, 11, 30, tzinfo=UTC)


def test_generate_sessions_is_idempotent(repository):
    activity, created = activity_service.create_activity(
        repository, "owner", make_draft(), now=NOW, tz=UTC
    )

    again = activity_service.generate_sessions(repository, activity, now=NOW, tz=UTC)

    assert again == []
    assert len(repository.list_sessions(SessionFilter(activity_id=activity.id))) == len(created)


def test_generate_sessions_extends_horizon_as_time_passes(repository):
    activity, _ = activity_service.create_activity(
        repository, "owner", make_draft(recurring_days=["tuesday"]), now=NOW, tz=UTC
    )

    later = NOW + timedelta(days=7)
    created = activity_service.generate_sessions(repository, activity, now=later, tz=UTC)

    assert [s.starts_at for s in created] == [datetime(2025, 2, 4, 12, 0, tzinfo=UTC)]


def test_monthly_activity_occurs_on_first_weekday_of_month(repository):
    activity, _ = activity_service.create_activity(
        repository,
        "owner",
        make_draft(recurring_type=models.RecurringType.monthly, recurring_days=["monday"]),
        now=datetime(2025, 1, 25, 10, 0, tzinfo=UTC),
        tz=UTC,
    )

    sessions = repository.list_sessions(SessionFilter(activity_id=activity.id))

    assert [s.starts_at for s in sessions] == [datetime(2025, 2, 3, 12, 0, tzinfo=UTC)]


@pytest.mark.parametrize(
    "overrides, message",
    [
        ({"name": "  "}, "Activity name is required"),
        ({"recurring_days": []}, "Select at least one day of the week"),
        ({"recurring_days": ["saturday"]}, "Activities can only recur from Monday to Friday"),
        ({"recurring_days": ["someday"]}, "Unknown day of the week: someday"),
        ({"min_players": 12}, "Minimum players cannot be greater than maximum players"),
        ({"max_players": 101}, "A session cannot have more than 100 players"),
        ({"start_time": "15:00"}, activity_service.TIME_WINDOW_ERROR),
    ],
)
def test_create_activity_rejects_invalid_drafts(repository, overrides, message):
    with pytest.raises(ValidationFailed) as exc_info:
        activity_service.create_activity(
            repository, "owner", make_draft(**overrides), now=NOW, tz=UTC
        )

    assert message in exc_info.value.errors
    assert repository.list_activities() == []


def test_join_code_helpers():
    code = activity_service.generate_join_code()

    assert activity_service.is_valid_join_code(code)
    assert activity_service.sanitize_join_code(" ab cd\t12 34 ") == "ABCD1234"
    assert activity_service.format_join_code("ABCD1234") == "ABCD 1234"
    assert activity_service.format_join_code("short") == "short"
    assert not activity_service.is_valid_join_code("ABC-1234")


def test_find_activity_by_code(repository):
    activity = create_activity(repository, join_code="XYZW9876")

    found = activity_service.find_activity_by_code(repository, "xyzw 9876")

    assert found.id == activity.id
    with pytest.raises(ActivityNotFound):
        activity_service.find_activity_by_code(repository, "AAAA0000")
    with pytest.raises(ValidationFailed):
        activity_service.find_activity_by_code(repository, "nope")


def test_only_owner_can_delete_activity(repository):
    activity = create_activity(repository, created_by="owner")
    session = create_session(repository, activity=activity)

    with pytest.raises(NotActivityOwner):
        activity_service.delete_activity(repository, activity.id, "intruder")

    activity_service.delete_activity(repository, activity.id, "owner")

    with pytest.raises(ActivityNotFound):
        activity_service.get_activity(repository, activity.id)
    assert repository.get_session(session.id) is None


def test_cancel_session_keeps_participants(repository, clock):
    service = ParticipationService(repository, clock=clock)
    session = create_session(repository)
    service.join_session(session.id, "alice")

    with pytest.raises(NotActivityOwner):
        activity_service.cancel_session(repository, session.id, "alice")
    cancelled = activity_service.cancel_session(repository, session.id, "owner")

    assert cancelled.is_cancelled
    assert service.get_session_overview(session.id).status == models.SessionStatus.cancelled
    assert len(service.list_participants(session.id)) == 1
    with pytest.raises(SessionNotFound):
        activity_service.cancel_session(repository, 999, "owner")


def test_raising_capacity_promotes_waiting_participants(repository, clock):
    service = ParticipationService(repository, clock=clock)
    session = create_session(repository, max_players=2)
    for user_id in ["u1", "u2", "u3", "u4", "u5"]:
        service.join_session(session.id, user_id)
        clock.advance(seconds=1)

    activity_service.update_session_capacity(repository, service, session.id, "owner", 4)

    participants = service.list_participants(session.id)
    assert [p.status for p in participants] == [
        models.ParticipantStatus.confirmed,
        models.ParticipantStatus.confirmed,
        models.ParticipantStatus.confirmed,
        models.ParticipantStatus.confirmed,
        models.ParticipantStatus.waiting,
    ]
    assert participants[-1].user_id == "u5"


def test_lowering_capacity_keeps_confirmed_participants(repository, clock):
    service = ParticipationService(repository, clock=clock)
    session = create_session(repository, max_players=4)
    for user_id in ["u1", "u2", "u3"]:
        service.join_session(session.id, user_id)

    updated = activity_service.update_session_capacity(repository, service, session.id, "owner", 2)

    assert updated.max_players == 2
    stats = service.get_session_stats(session.id)
    assert stats.confirmed_count == 3
    assert stats.available_spots == 0
    assert service.join_session(session.id, "u4").status == models.ParticipantStatus.waiting


def test_capacity_must_stay_within_limits(repository, clock):
    service = ParticipationService(repository, clock=clock)
    session = create_session(repository)

    with pytest.raises(ValidationFailed):
        activity_service.update_session_capacity(repository, service, session.id, "owner", 1)
    with pytest.raises(NotActivityOwner):
        activity_service.update_session_capacity(repository, service, session.id, "other", 6)


def test_create_activity_gives_up_when_join_codes_are_taken(repository, monkeypatch):
    create_activity(repository, join_code="ABCD1234")
    monkeypatch.setattr(activity_service, "generate_join_code", lambda: "ABCD1234")

    with pytest.raises(JoinCodeUnavailable):
        activity_service.create_activity(repository, "owner", make_draft(), now=NOW, tz=UTC)

    assert len(repository.list_activities()) == 1


def test_creator_is_subscribed_to_new_activity(repository):
    activity, _ = activity_service.create_activity(
        repository, "owner", make_draft(), now=NOW, tz=UTC
    )

    assert repository.list_subscriptions("owner") == [activity.id]


def test_update_activity_changes_rules_but_not_existing_sessions(repository):
    activity, sessions = activity_service.create_activity(
        repository, "owner", make_draft(), now=NOW, tz=UTC
    )

    updated = activity_service.update_activity(
        repository,
        activity.id,
        "owner",
        {"name": " Evening football ", "max_players": 14, "recurring_days": ["monday"]},
    )

    assert updated.name == "Evening football"
    assert updated.max_players == 14
    assert updated.recurring_days == ["monday"]
    assert updated.join_code == activity.join_code
    assert activity_service.get_activity(repository, activity.id).max_players == 14
    current = repository.list_sessions(SessionFilter(activity_id=activity.id))
    assert [(s.starts_at, s.max_players) for s in current] == [
        (s.starts_at, s.max_players) for s in sessions
    ]


def test_update_activity_validates_merged_values(repository):
    activity = create_activity(repository, created_by="owner", max_players=4)

    with pytest.raises(NotActivityOwner):
        activity_service.update_activity(repository, activity.id, "intruder", {"name": "Mine"})
    with pytest.raises(ValidationFailed) as exc_info:
        activity_service.update_activity(repository, activity.id, "owner", {"min_players": 6})
    assert "Minimum players cannot be greater than maximum players" in exc_info.value.errors
    with pytest.raises(ValidationFailed) as exc_info:
        activity_service.update_activity(
            repository, activity.id, "owner", {"join_code": "ZZZZ9999"}
        )
    assert exc_info.value.errors == ["Field cannot be changed: join_code"]
    with pytest.raises(ActivityNotFound):
        activity_service.update_activity(repository, 999, "owner", {"name": "Ghost"})

    assert activity_service.get_activity(repository, activity.id).min_players == 2


def test_find_by_creator_lists_newest_first(repository):
    first = create_activity(repository, created_by="owner", join_code="AAAA1111")
    create_activity(repository, created_by="someone", join_code="BBBB2222")
    second = create_activity(repository, created_by="owner", join_code="CCCC3333")

    found = activity_service.find_by_creator(repository, "owner")

    assert [a.id for a in found] == [second.id, first.id]
    assert activity_service.find_by_creator(repository, "nobody") == []


def test_subscribe_is_idempotent(repository):
    activity = create_activity(repository)

    assert activity_service.subscribe(repository, activity.id, "alice") is True
    assert activity_service.subscribe(repository, activity.id, "alice") is False
    assert repository.list_subscriptions("alice") == [activity.id]
    with pytest.raises(ActivityNotFound):
        activity_service.subscribe(repository, 999, "alice")


def test_unsubscribe_leaves_upcoming_sessions_and_promotes(repository, clock):
    service = ParticipationService(repository, clock=clock)
    activity = create_activity(repository, max_players=1)
    upcoming = create_session(repository, max_players=1, activity=activity)
    later = create_session(
        repository, max_players=1, activity=activity, starts_at=NOW + timedelta(days=7)
    )
    activity_service.subscribe(repository, activity.id, "alice")
    for session in (upcoming, later):
        service.join_session(session.id, "alice")
    clock.advance(seconds=1)
    service.join_session(upcoming.id, "bob")

    left = activity_service.unsubscribe(repository, service, activity.id, "alice", now=clock())

    assert left == 2
    assert repository.list_subscriptions("alice") == []
    assert service.get_user_participation_status(later.id, "alice") is None
    [bob] = service.list_participants(upcoming.id)
    assert bob.user_id == "bob"
    assert bob.status == models.ParticipantStatus.confirmed


def test_join_by_code_reports_existing_membership(repository):
    activity, _ = activity_service.create_activity(
        repository, "owner", make_draft(), now=NOW, tz=UTC
    )
    spaced = activity_service.format_join_code(activity.join_code).lower()

    joined, already_member = activity_service.join_by_code(repository, spaced, "alice")
    assert joined.id == activity.id
    assert already_member is False

    _, already_member = activity_service.join_by_code(repository, activity.join_code, "alice")
    assert already_member is True
    _, already_member = activity_service.join_by_code(repository, activity.join_code, "owner")
    assert already_member is True
    assert repository.list_subscriptions("alice") == [activity.id]
