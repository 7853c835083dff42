from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, TypeVar

from ..core.clock import Clock, utc_now
from ..core.errors import (
    AlreadyRegistered,
    CapacityConflict,
    NotRegistered,
    SessionCancelled,
    SessionInPast,
    SessionNotFound,
)
from ..db.models import ParticipantStatus, SessionStatus
from .repositories import (
    BaseSessionRepository,
    Participant,
    ParticipantSet,
    SessionFilter,
    SessionRecord,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_UPCOMING_LIMIT = 20


@dataclass(slots=True)
class SessionStats:
    confirmed_count: int
    waiting_count: int
    total_count: int
    available_spots: int


@dataclass(slots=True)
class JoinEligibility:
    can_join: bool
    would_be_waiting: bool
    reason: str | None = None


@dataclass(slots=True)
class SessionOverview:
    session: SessionRecord
    stats: SessionStats
    status: SessionStatus


@dataclass(slots=True)
class UserSessionStatus:
    is_participant: bool
    can_join: bool
    would_be_waiting: bool
    participant_status: ParticipantStatus | None = None


@dataclass(slots=True)
class UpcomingSession:
    overview: SessionOverview
    user_status: UserSessionStatus


@dataclass(slots=True)
class UserParticipation:
    overview: SessionOverview
    participant: Participant


@dataclass(slots=True)
class UserParticipations:
    upcoming: list[UserParticipation]
    past: list[UserParticipation]


def session_status(session: SessionRecord, confirmed_count: int, now: datetime) -> SessionStatus:
    if session.is_cancelled:
        return SessionStatus.cancelled
    if session.starts_at < now:
        return SessionStatus.completed
    if confirmed_count >= session.max_players:
        return SessionStatus.full
    return SessionStatus.open


def _stats(participants: ParticipantSet) -> SessionStats:
    ordered = participants.ordered()
    confirmed = sum(1 for p in ordered if p.status == ParticipantStatus.confirmed)
    waiting = sum(1 for p in ordered if p.status == ParticipantStatus.waiting)
    return SessionStats(
        confirmed_count=confirmed,
        waiting_count=waiting,
        total_count=len(ordered),
        available_spots=max(0, participants.session.max_players - confirmed),
    )


class ParticipationService:
    """Join, leave and waiting-list promotion for session participants.

    Each mutating call runs inside one ``repository.participants`` transaction,
    so the confirmed-count check and the write that depends on it cannot
    interleave with another call on the same session.
    """

    def __init__(
        self,
        repository: BaseSessionRepository,
        clock: Clock = utc_now,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ) -> None:
        self.repository = repository
        self.clock = clock
        self.max_attempts = max(1, max_attempts)

    def _with_retry(self, action: Callable[[], T], *, operation: str, session_id: int) -> T:
        for attempt in range(1, self.max_attempts + 1):
            try:
                return action()
            except CapacityConflict:
                if attempt == self.max_attempts:
                    logger.error(
                        "Giving up after concurrent updates",
                        extra={"operation": operation, "session_id": session_id, "attempt": attempt},
                    )
                    raise
                logger.warning(
                    "Concurrent update, retrying",
                    extra={"operation": operation, "session_id": session_id, "attempt": attempt},
                )
        raise CapacityConflict()

    def join_session(self, session_id: int, user_id: str) -> Participant:
        return self._with_retry(
            lambda: self._join(session_id, user_id),
            operation="join",
            session_id=session_id,
        )

    def _join(self, session_id: int, user_id: str) -> Participant:
        with self.repository.participants(session_id) as participants:
            now = self.clock()
            session = participants.session
            if session.is_cancelled:
                raise SessionCancelled()
            if session.starts_at < now:
                raise SessionInPast()
            if participants.get(user_id) is not None:
                raise AlreadyRegistered()
            confirmed_count = len(participants.confirmed())
            status = (
                ParticipantStatus.confirmed
                if confirmed_count < session.max_players
                else ParticipantStatus.waiting
            )
            participant = participants.add(user_id, status, now)
        logger.info(
            "Participant joined",
            extra={"session_id": session_id, "user_id": user_id, "status": status.value},
        )
        return participant

    def leave_session(self, session_id: int, user_id: str) -> None:
        self._with_retry(
            lambda: self._leave(session_id, user_id),
            operation="leave",
            session_id=session_id,
        )

    def _leave(self, session_id: int, user_id: str) -> None:
        try:
            with self.repository.participants(session_id) as participants:
                if participants.get(user_id) is None:
                    raise NotRegistered()
                removed = participants.remove(user_id)
                promoted = self._promote(participants, limit=1)
        except SessionNotFound as exc:
            raise NotRegistered() from exc
        logger.info(
            "Participant left",
            extra={"session_id": session_id, "user_id": user_id, "status": removed.status.value},
        )
        self._log_promotions(promoted)

    def promote_from_waiting_list(self, session_id: int) -> Participant | None:
        promoted = self.process_interested_participants(session_id, limit=1)
        return promoted[0] if promoted else None

    def process_interested_participants(
        self, session_id: int, limit: int | None = None
    ) -> list[Participant]:
        """Promote waiting participants into every free confirmed slot.

        ``limit`` caps the number of promotions; ``promote_from_waiting_list``
        is this call with ``limit=1``.
        """

        def promote() -> list[Participant]:
            with self.repository.participants(session_id) as participants:
                return self._promote(participants, limit=limit)

        promoted = self._with_retry(promote, operation="promote", session_id=session_id)
        self._log_promotions(promoted)
        return promoted

    @staticmethod
    def _promote(participants: ParticipantSet, limit: int | None) -> list[Participant]:
        available = participants.session.max_players - len(participants.confirmed())
        slots = available if limit is None else min(limit, available)
        if slots <= 0:
            return []
        return [
            participants.set_status(waiting.user_id, ParticipantStatus.confirmed)
            for waiting in participants.waiting()[:slots]
        ]

    @staticmethod
    def _log_promotions(promoted: list[Participant]) -> None:
        for participant in promoted:
            logger.info(
                "Participant promoted",
                extra={"session_id": participant.session_id, "user_id": participant.user_id},
            )

    def get_session_stats(self, session_id: int) -> SessionStats:
        with self.repository.participants(session_id) as participants:
            return _stats(participants)

    def get_session_overview(self, session_id: int) -> SessionOverview:
        with self.repository.participants(session_id) as participants:
            stats = _stats(participants)
            session = participants.session
        return SessionOverview(
            session=session,
            stats=stats,
            status=session_status(session, stats.confirmed_count, self.clock()),
        )

    def can_user_join_session(self, session_id: int, user_id: str) -> JoinEligibility:
        # Cancelled or past sessions are rejected by join_session itself.
        with self.repository.participants(session_id) as participants:
            if participants.get(user_id) is not None:
                return JoinEligibility(
                    can_join=False,
                    would_be_waiting=False,
                    reason=AlreadyRegistered.default_message,
                )
            confirmed_count = len(participants.confirmed())
            return JoinEligibility(
                can_join=True,
                would_be_waiting=confirmed_count >= participants.session.max_players,
            )

    def get_user_participation_status(self, session_id: int, user_id: str) -> Participant | None:
        try:
            with self.repository.participants(session_id) as participants:
                return participants.get(user_id)
        except SessionNotFound:
            return None

    def list_participants(self, session_id: int) -> list[Participant]:
        with self.repository.participants(session_id) as participants:
            return participants.ordered()

    def get_upcoming_sessions(
        self,
        user_id: str | None = None,
        limit: int = DEFAULT_UPCOMING_LIMIT,
        include_joined: bool = False,
    ) -> list[UpcomingSession]:
        """Open sessions that have not started yet, soonest first.

        With a ``user_id`` only sessions of the activities that user is
        subscribed to are listed, and sessions the user already takes part
        in are left out unless ``include_joined`` is set.
        """
        now = self.clock()
        filters = SessionFilter(from_dt=now, include_cancelled=False)
        if user_id is not None:
            filters.activity_ids = self.repository.list_subscriptions(user_id)
            if not filters.activity_ids:
                return []

        upcoming: list[UpcomingSession] = []
        for session in self.repository.list_sessions(filters):
            if len(upcoming) >= limit:
                break
            try:
                with self.repository.participants(session.id) as participants:
                    stats = _stats(participants)
                    current = participants.session
                    participant = participants.get(user_id) if user_id is not None else None
            except SessionNotFound:
                continue
            if participant is not None and not include_joined:
                continue
            upcoming.append(
                UpcomingSession(
                    overview=SessionOverview(
                        session=current,
                        stats=stats,
                        status=session_status(current, stats.confirmed_count, now),
                    ),
                    user_status=UserSessionStatus(
                        is_participant=participant is not None,
                        can_join=participant is None,
                        would_be_waiting=stats.available_spots == 0,
                        participant_status=participant.status if participant else None,
                    ),
                )
            )
        return upcoming

    def find_user_participations(self, user_id: str) -> UserParticipations:
        """Every session ``user_id`` takes part in, split around the current time.

        Upcoming sessions are listed soonest first, past ones most recent first.
        """
        now = self.clock()
        upcoming: list[UserParticipation] = []
        past: list[UserParticipation] = []
        for participant in self.repository.list_user_participations(user_id):
            try:
                overview = self.get_session_overview(participant.session_id)
            except SessionNotFound:
                continue
            entry = UserParticipation(overview=overview, participant=participant)
            if overview.session.starts_at >= now:
                upcoming.append(entry)
            else:
                past.append(entry)
        past.reverse()
        return UserParticipations(upcoming=upcoming, past=past)
