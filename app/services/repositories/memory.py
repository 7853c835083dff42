from __future__ import annotations

import itertools
import threading
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime
from typing import Iterator

from ...core.clock import as_utc
from ...core.errors import ActivityNotFound, AlreadyRegistered, NotRegistered, SessionNotFound
from ...db.models import ParticipantStatus
from .base import (
    ActivityRecord,
    BaseSessionRepository,
    Participant,
    ParticipantSet,
    SessionFilter,
    SessionRecord,
)


class _MemoryParticipantSet(ParticipantSet):
    def __init__(
        self,
        session: SessionRecord,
        participants: dict[str, Participant],
        sequence: Iterator[int],
    ) -> None:
        self.session = session
        self._participants = participants
        self._sequence = sequence

    def ordered(self) -> list[Participant]:
        return sorted(
            (replace(p) for p in self._participants.values()),
            key=lambda p: p.sort_key,
        )

    def get(self, user_id: str) -> Participant | None:
        participant = self._participants.get(user_id)
        return replace(participant) if participant else None

    def add(self, user_id: str, status: ParticipantStatus, joined_at: datetime) -> Participant:
        if user_id in self._participants:
            raise AlreadyRegistered()
        participant = Participant(
            session_id=self.session.id,
            user_id=user_id,
            status=status,
            joined_at=joined_at,
            seq=next(self._sequence),
        )
        self._participants[user_id] = participant
        return replace(participant)

    def remove(self, user_id: str) -> Participant:
        participant = self._participants.pop(user_id, None)
        if participant is None:
            raise NotRegistered()
        return participant

    def set_status(self, user_id: str, status: ParticipantStatus) -> Participant:
        participant = self._participants.get(user_id)
        if participant is None:
            raise NotRegistered()
        participant.status = status
        return replace(participant)


class InMemorySessionRepository(BaseSessionRepository):
    """Process-local store used by unit tests and the ``memory`` backend.

    Each session has its own lock; a participant transaction works on a copy
    of the session's participant map and swaps it in only on success.
    """

    def __init__(self) -> None:
        self._activities: dict[int, ActivityRecord] = {}
        self._sessions: dict[int, SessionRecord] = {}
        self._participants: dict[int, dict[str, Participant]] = defaultdict(dict)
        self._subscriptions: dict[int, set[str]] = defaultdict(set)
        self._session_locks: dict[int, threading.Lock] = defaultdict(threading.Lock)
        self._registry_lock = threading.RLock()
        self._activity_ids = itertools.count(1)
        self._session_ids = itertools.count(1)
        self._participant_seq = itertools.count(1)

    def _lock_for(self, session_id: int) -> threading.Lock:
        with self._registry_lock:
            if session_id not in self._sessions:
                # Unknown ids get a throwaway lock so the registry only holds live sessions
                return threading.Lock()
            return self._session_locks[session_id]

    def add_activity(self, activity: ActivityRecord) -> ActivityRecord:
        with self._registry_lock:
            stored = replace(
                activity,
                id=next(self._activity_ids),
                recurring_days=list(activity.recurring_days),
            )
            self._activities[stored.id] = stored
            return replace(stored)

    def get_activity(self, activity_id: int) -> ActivityRecord | None:
        activity = self._activities.get(activity_id)
        return replace(activity) if activity else None

    def get_activity_by_code(self, join_code: str) -> ActivityRecord | None:
        for activity in list(self._activities.values()):
            if activity.join_code == join_code:
                return replace(activity)
        return None

    def list_activities(self, created_by: str | None = None) -> list[ActivityRecord]:
        return [
            replace(a)
            for a in sorted(self._activities.values(), key=lambda a: a.id)
            if created_by is None or a.created_by == created_by
        ]

    def update_activity(self, activity: ActivityRecord) -> ActivityRecord:
        with self._registry_lock:
            if activity.id not in self._activities:
                raise ActivityNotFound()
            stored = replace(activity, recurring_days=list(activity.recurring_days))
            self._activities[stored.id] = stored
            return replace(stored)

    def delete_activity(self, activity_id: int) -> None:
        with self._registry_lock:
            self._activities.pop(activity_id, None)
            self._subscriptions.pop(activity_id, None)
            owned = [s.id for s in self._sessions.values() if s.activity_id == activity_id]
            for session_id in owned:
                with self._session_locks[session_id]:
                    self._sessions.pop(session_id, None)
                    self._participants.pop(session_id, None)
                self._session_locks.pop(session_id, None)

    def add_subscription(self, activity_id: int, user_id: str) -> bool:
        with self._registry_lock:
            if activity_id not in self._activities:
                raise ActivityNotFound()
            subscribers = self._subscriptions[activity_id]
            if user_id in subscribers:
                return False
            subscribers.add(user_id)
            return True

    def remove_subscription(self, activity_id: int, user_id: str) -> bool:
        with self._registry_lock:
            subscribers = self._subscriptions.get(activity_id, set())
            if user_id not in subscribers:
                return False
            subscribers.discard(user_id)
            return True

    def list_subscriptions(self, user_id: str) -> list[int]:
        with self._registry_lock:
            return sorted(
                activity_id
                for activity_id, subscribers in self._subscriptions.items()
                if user_id in subscribers
            )

    def add_sessions(self, sessions: list[SessionRecord]) -> list[SessionRecord]:
        with self._registry_lock:
            stored = []
            for session in sessions:
                record = replace(
                    session,
                    id=next(self._session_ids),
                    starts_at=as_utc(session.starts_at),
                )
                self._sessions[record.id] = record
                stored.append(replace(record))
            return stored

    def get_session(self, session_id: int) -> SessionRecord | None:
        session = self._sessions.get(session_id)
        return replace(session) if session else None

    def list_sessions(self, filters: SessionFilter | None = None) -> list[SessionRecord]:
        filters = filters or SessionFilter()
        selected = []
        for session in list(self._sessions.values()):
            if filters.activity_id is not None and session.activity_id != filters.activity_id:
                continue
            if filters.activity_ids is not None and session.activity_id not in filters.activity_ids:
                continue
            if filters.from_dt is not None and session.starts_at < as_utc(filters.from_dt):
                continue
            if filters.to_dt is not None and session.starts_at > as_utc(filters.to_dt):
                continue
            if not filters.include_cancelled and session.is_cancelled:
                continue
            selected.append(replace(session))
        return sorted(selected, key=lambda s: (s.starts_at, s.id))

    def update_session(self, session: SessionRecord) -> SessionRecord:
        with self._lock_for(session.id):
            if session.id not in self._sessions:
                raise SessionNotFound()
            self._sessions[session.id] = replace(session, starts_at=as_utc(session.starts_at))
            return replace(self._sessions[session.id])

    def list_user_participations(self, user_id: str) -> list[Participant]:
        with self._registry_lock:
            found = [
                replace(by_user[user_id])
                for session_id, by_user in list(self._participants.items())
                if user_id in by_user and session_id in self._sessions
            ]
            starts = {p.session_id: self._sessions[p.session_id].starts_at for p in found}
        return sorted(found, key=lambda p: (starts[p.session_id], p.session_id))

    @contextmanager
    def participants(self, session_id: int) -> Iterator[ParticipantSet]:
        with self._lock_for(session_id):
            session = self._sessions.get(session_id)
            if session is None:
                raise SessionNotFound()
            working = {
                user_id: replace(p) for user_id, p in self._participants[session_id].items()
            }
            yield _MemoryParticipantSet(replace(session), working, self._participant_seq)
            self._participants[session_id] = working
