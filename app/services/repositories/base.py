from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from dataclasses import dataclass
from datetime import datetime

from ...db.models import ParticipantStatus, RecurringType, SportType


@dataclass(slots=True)
class ActivityRecord:
    name: str
    sport: SportType
    min_players: int
    max_players: int
    recurring_type: RecurringType
    recurring_days: list[str]
    created_by: str
    join_code: str
    start_time: str = "12:00"
    description: str | None = None
    is_public: bool = True
    id: int | None = None
    created_at: datetime | None = None


@dataclass(slots=True)
class SessionRecord:
    activity_id: int
    starts_at: datetime
    max_players: int
    is_cancelled: bool = False
    id: int | None = None


@dataclass(slots=True)
class Participant:
    session_id: int
    user_id: str
    status: ParticipantStatus
    joined_at: datetime
    # Authoritative insertion order, breaks joined_at ties
    seq: int = 0

    @property
    def sort_key(self) -> tuple[datetime, int]:
        return (self.joined_at, self.seq)


@dataclass(slots=True)
class SessionFilter:
    activity_id: int | None = None
    activity_ids: list[int] | None = None
    from_dt: datetime | None = None
    to_dt: datetime | None = None
    include_cancelled: bool = True


class ParticipantSet(ABC):
    """Participants of one session, locked for the enclosing transaction."""

    session: SessionRecord

    @abstractmethod
    def ordered(self) -> list[Participant]:
        """All participants ordered by (joined_at, seq)."""
        raise NotImplementedError

    @abstractmethod
    def get(self, user_id: str) -> Participant | None:
        raise NotImplementedError

    @abstractmethod
    def add(self, user_id: str, status: ParticipantStatus, joined_at: datetime) -> Participant:
        raise NotImplementedError

    @abstractmethod
    def remove(self, user_id: str) -> Participant:
        raise NotImplementedError

    @abstractmethod
    def set_status(self, user_id: str, status: ParticipantStatus) -> Participant:
        raise NotImplementedError

    def confirmed(self) -> list[Participant]:
        return [p for p in self.ordered() if p.status == ParticipantStatus.confirmed]

    def waiting(self) -> list[Participant]:
        return [p for p in self.ordered() if p.status == ParticipantStatus.waiting]


class BaseSessionRepository(ABC):
    @abstractmethod
    def add_activity(self, activity: ActivityRecord) -> ActivityRecord:
        raise NotImplementedError

    @abstractmethod
    def get_activity(self, activity_id: int) -> ActivityRecord | None:
        raise NotImplementedError

    @abstractmethod
    def get_activity_by_code(self, join_code: str) -> ActivityRecord | None:
        raise NotImplementedError

    @abstractmethod
    def list_activities(self, created_by: str | None = None) -> list[ActivityRecord]:
        """Activities ordered by id, optionally only those of one creator."""
        raise NotImplementedError

    @abstractmethod
    def update_activity(self, activity: ActivityRecord) -> ActivityRecord:
        raise NotImplementedError

    @abstractmethod
    def delete_activity(self, activity_id: int) -> None:
        """Remove the activity together with its sessions and participants."""
        raise NotImplementedError

    @abstractmethod
    def add_subscription(self, activity_id: int, user_id: str) -> bool:
        """Subscribe a user to an activity. Returns False if already subscribed."""
        raise NotImplementedError

    @abstractmethod
    def remove_subscription(self, activity_id: int, user_id: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    def list_subscriptions(self, user_id: str) -> list[int]:
        """Ids of the activities the user is subscribed to."""
        raise NotImplementedError

    @abstractmethod
    def add_sessions(self, sessions: list[SessionRecord]) -> list[SessionRecord]:
        raise NotImplementedError

    @abstractmethod
    def get_session(self, session_id: int) -> SessionRecord | None:
        raise NotImplementedError

    @abstractmethod
    def list_sessions(self, filters: SessionFilter | None = None) -> list[SessionRecord]:
        """Sessions ordered by start time."""
        raise NotImplementedError

    @abstractmethod
    def update_session(self, session: SessionRecord) -> SessionRecord:
        raise NotImplementedError

    @abstractmethod
    def list_user_participations(self, user_id: str) -> list[Participant]:
        """Every participation of a user, across sessions, by session start."""
        raise NotImplementedError

    @abstractmethod
    def participants(self, session_id: int) -> AbstractContextManager[ParticipantSet]:
        """Open a transaction over the participant set of ``session_id``.

        Concurrent callers for the same session are serialized. Changes made
        through the yielded set are committed together on a clean exit and
        discarded if the block raises. Raises ``SessionNotFound`` when the
        session does not exist and ``CapacityConflict`` when the store
        detects a concurrent write.
        """
        raise NotImplementedError
