from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from ...core.clock import as_utc
from ...core.errors import (
    ActivityNotFound,
    AlreadyRegistered,
    CapacityConflict,
    NotRegistered,
    SessionNotFound,
)
from ...db import models
from .base import (
    ActivityRecord,
    BaseSessionRepository,
    Participant,
    ParticipantSet,
    SessionFilter,
    SessionRecord,
)

logger = logging.getLogger(__name__)

PARTICIPANT_UNIQUE_CONSTRAINT = "uq_participant_session_user"


def _utc(value: datetime) -> datetime:
    return as_utc(value).astimezone(timezone.utc)


def _to_activity(row: models.Activity) -> ActivityRecord:
    return ActivityRecord(
        id=row.id,
        name=row.name,
        description=row.description,
        sport=models.SportType(row.sport),
        min_players=row.min_players,
        max_players=row.max_players,
        recurring_type=models.RecurringType(row.recurring_type),
        recurring_days=list(row.recurring_days or []),
        start_time=row.start_time,
        created_by=row.created_by,
        is_public=row.is_public,
        join_code=row.join_code,
        created_at=as_utc(row.created_at) if row.created_at else None,
    )


def _to_session(row: models.ActivitySession) -> SessionRecord:
    return SessionRecord(
        id=row.id,
        activity_id=row.activity_id,
        starts_at=as_utc(row.starts_at),
        max_players=row.max_players,
        is_cancelled=bool(row.is_cancelled),
    )


def _to_participant(row: models.ActivityParticipant) -> Participant:
    return Participant(
        session_id=row.session_id,
        user_id=row.user_id,
        status=models.ParticipantStatus(row.status),
        joined_at=as_utc(row.joined_at),
        seq=row.id,
    )


def _is_duplicate_participant(exc: IntegrityError) -> bool:
    constraint = getattr(getattr(exc.orig, "diag", None), "constraint_name", "")
    if constraint == PARTICIPANT_UNIQUE_CONSTRAINT:
        return True
    # SQLite reports the columns rather than the constraint name
    return "activity_participants.user_id" in str(exc.orig)


class _SqlParticipantSet(ParticipantSet):
    def __init__(self, db: Session, session_row: models.ActivitySession) -> None:
        self.session = _to_session(session_row)
        self._db = db

    def _rows(self) -> list[models.ActivityParticipant]:
        return list(
            self._db.execute(
                select(models.ActivityParticipant)
                .where(models.ActivityParticipant.session_id == self.session.id)
                .order_by(
                    models.ActivityParticipant.joined_at,
                    models.ActivityParticipant.id,
                )
                .execution_options(populate_existing=True)
            ).scalars()
        )

    def _row(self, user_id: str) -> models.ActivityParticipant | None:
        return self._db.execute(
            select(models.ActivityParticipant).where(
                models.ActivityParticipant.session_id == self.session.id,
                models.ActivityParticipant.user_id == user_id,
            ).execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def ordered(self) -> list[Participant]:
        return [_to_participant(row) for row in self._rows()]

    def get(self, user_id: str) -> Participant | None:
        row = self._row(user_id)
        return _to_participant(row) if row else None

    def add(
        self, user_id: str, status: models.ParticipantStatus, joined_at: datetime
    ) -> Participant:
        row = models.ActivityParticipant(
            session_id=self.session.id,
            user_id=user_id,
            status=status,
            joined_at=_utc(joined_at),
        )
        self._db.add(row)
        self._db.flush()
        return _to_participant(row)

    def remove(self, user_id: str) -> Participant:
        row = self._row(user_id)
        if row is None:
            raise NotRegistered()
        removed = _to_participant(row)
        self._db.delete(row)
        self._db.flush()
        return removed

    def set_status(self, user_id: str, status: models.ParticipantStatus) -> Participant:
        row = self._row(user_id)
        if row is None:
            raise NotRegistered()
        row.status = status
        self._db.flush()
        return _to_participant(row)


class SqlSessionRepository(BaseSessionRepository):
    """Repository backed by a SQLAlchemy session.

    Participant transactions lock the session row with ``SELECT ... FOR
    UPDATE`` so concurrent joins and leaves on one session run one after the
    other. SQLite has no row locks; engines built with
    ``enable_sqlite_write_lock`` start every transaction with ``BEGIN
    IMMEDIATE`` instead, which serializes them on the database write lock.
    """

    def __init__(self, db: Session) -> None:
        self.db = db

    def add_activity(self, activity: ActivityRecord) -> ActivityRecord:
        row = models.Activity(
            name=activity.name,
            description=activity.description,
            sport=activity.sport,
            min_players=activity.min_players,
            max_players=activity.max_players,
            recurring_type=activity.recurring_type,
            recurring_days=list(activity.recurring_days),
            start_time=activity.start_time,
            created_by=activity.created_by,
            is_public=activity.is_public,
            join_code=activity.join_code,
        )
        self.db.add(row)
        self.db.commit()
        self.db.refresh(row)
        return _to_activity(row)

    def get_activity(self, activity_id: int) -> ActivityRecord | None:
        row = self.db.get(models.Activity, activity_id)
        return _to_activity(row) if row else None

    def get_activity_by_code(self, join_code: str) -> ActivityRecord | None:
        row = self.db.execute(
            select(models.Activity).where(models.Activity.join_code == join_code)
        ).scalar_one_or_none()
        return _to_activity(row) if row else None

    def list_activities(self, created_by: str | None = None) -> list[ActivityRecord]:
        stmt = select(models.Activity).order_by(models.Activity.id)
        if created_by is not None:
            stmt = stmt.where(models.Activity.created_by == created_by)
        return [_to_activity(row) for row in self.db.execute(stmt).scalars()]

    def update_activity(self, activity: ActivityRecord) -> ActivityRecord:
        row = self.db.get(models.Activity, activity.id)
        if row is None:
            raise ActivityNotFound()
        row.name = activity.name
        row.description = activity.description
        row.sport = activity.sport
        row.min_players = activity.min_players
        row.max_players = activity.max_players
        row.recurring_type = activity.recurring_type
        row.recurring_days = list(activity.recurring_days)
        row.start_time = activity.start_time
        row.is_public = activity.is_public
        self.db.commit()
        self.db.refresh(row)
        return _to_activity(row)

    def delete_activity(self, activity_id: int) -> None:
        row = self.db.get(models.Activity, activity_id)
        if row is None:
            return
        self.db.delete(row)
        self.db.commit()

    def _subscription(self, activity_id: int, user_id: str) -> models.ActivitySubscription | None:
        return self.db.execute(
            select(models.ActivitySubscription).where(
                models.ActivitySubscription.activity_id == activity_id,
                models.ActivitySubscription.user_id == user_id,
            )
        ).scalar_one_or_none()

    def add_subscription(self, activity_id: int, user_id: str) -> bool:
        if self.db.get(models.Activity, activity_id) is None:
            raise ActivityNotFound()
        if self._subscription(activity_id, user_id) is not None:
            return False
        self.db.add(models.ActivitySubscription(activity_id=activity_id, user_id=user_id))
        try:
            self.db.commit()
        except IntegrityError:
            # Subscribed concurrently
            self.db.rollback()
            return False
        return True

    def remove_subscription(self, activity_id: int, user_id: str) -> bool:
        row = self._subscription(activity_id, user_id)
        if row is None:
            return False
        self.db.delete(row)
        self.db.commit()
        return True

    def list_subscriptions(self, user_id: str) -> list[int]:
        return list(
            self.db.execute(
                select(models.ActivitySubscription.activity_id)
                .where(models.ActivitySubscription.user_id == user_id)
                .order_by(models.ActivitySubscription.activity_id)
            ).scalars()
        )

    def add_sessions(self, sessions: list[SessionRecord]) -> list[SessionRecord]:
        rows = [
            models.ActivitySession(
                activity_id=session.activity_id,
                starts_at=_utc(session.starts_at),
                max_players=session.max_players,
                is_cancelled=session.is_cancelled,
            )
            for session in sessions
        ]
        self.db.add_all(rows)
        self.db.commit()
        return [_to_session(row) for row in rows]

    def get_session(self, session_id: int) -> SessionRecord | None:
        row = self.db.get(models.ActivitySession, session_id, populate_existing=True)
        return _to_session(row) if row else None

    def list_sessions(self, filters: SessionFilter | None = None) -> list[SessionRecord]:
        filters = filters or SessionFilter()
        stmt = select(models.ActivitySession)
        if filters.activity_id is not None:
            stmt = stmt.where(models.ActivitySession.activity_id == filters.activity_id)
        if filters.activity_ids is not None:
            stmt = stmt.where(models.ActivitySession.activity_id.in_(filters.activity_ids))
        if filters.from_dt is not None:
            stmt = stmt.where(models.ActivitySession.starts_at >= _utc(filters.from_dt))
        if filters.to_dt is not None:
            stmt = stmt.where(models.ActivitySession.starts_at <= _utc(filters.to_dt))
        if not filters.include_cancelled:
            stmt = stmt.where(models.ActivitySession.is_cancelled.is_(False))
        stmt = stmt.order_by(
            models.ActivitySession.starts_at, models.ActivitySession.id
        ).execution_options(populate_existing=True)
        return [_to_session(row) for row in self.db.execute(stmt).scalars()]

    def update_session(self, session: SessionRecord) -> SessionRecord:
        row = self.db.get(models.ActivitySession, session.id)
        if row is None:
            raise SessionNotFound()
        row.starts_at = _utc(session.starts_at)
        row.max_players = session.max_players
        row.is_cancelled = session.is_cancelled
        self.db.commit()
        self.db.refresh(row)
        return _to_session(row)

    def list_user_participations(self, user_id: str) -> list[Participant]:
        rows = self.db.execute(
            select(models.ActivityParticipant)
            .join(models.ActivitySession)
            .where(models.ActivityParticipant.user_id == user_id)
            .order_by(models.ActivitySession.starts_at, models.ActivitySession.id)
            .execution_options(populate_existing=True)
        ).scalars()
        return [_to_participant(row) for row in rows]

    @contextmanager
    def participants(self, session_id: int) -> Iterator[ParticipantSet]:
        db = self.db
        nested = db.in_transaction()
        transaction_ctx = db.begin_nested() if nested else db.begin()
        try:
            with transaction_ctx:
                locked_session = db.execute(
                    select(models.ActivitySession)
                    .where(models.ActivitySession.id == session_id)
                    .with_for_update()
                    .execution_options(populate_existing=True)
                ).scalar_one_or_none()
                if locked_session is None:
                    raise SessionNotFound()
                yield _SqlParticipantSet(db, locked_session)
            if nested:
                db.commit()
        except IntegrityError as exc:
            if _is_duplicate_participant(exc):
                raise AlreadyRegistered() from exc
            logger.warning("Integrity conflict on session", extra={"session_id": session_id})
            raise CapacityConflict() from exc
        except OperationalError as exc:
            logger.warning("Lock conflict on session", extra={"session_id": session_id})
            raise CapacityConflict() from exc
