import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace

import pytest

from app.core.errors import NotRegistered
from app.db import models
from app.services.participation_service import ParticipationService
from app.services.repositories import InMemorySessionRepository, SqlSessionRepository

from conftest import create_session


def test_concurrent_joins_never_exceed_capacity(clock):
    repository = InMemorySessionRepository()
    service = ParticipationService(repository, clock=clock)
    session = create_session(repository, max_players=5)
    start = threading.Barrier(20)

    def join(index):
        start.wait()
        return service.join_session(session.id, f"user-{index}")

    with ThreadPoolExecutor(max_workers=20) as pool:
        results = list(pool.map(join, range(20)))

    confirmed = [p for p in results if p.status == models.ParticipantStatus.confirmed]
    assert len(confirmed) == 5
    stats = service.get_session_stats(session.id)
    assert stats.confirmed_count == 5
    assert stats.waiting_count == 15
    assert [p.seq for p in service.list_participants(session.id)] == sorted(
        p.seq for p in results
    )


def test_concurrent_leaves_promote_in_order(clock):
    repository = InMemorySessionRepository()
    service = ParticipationService(repository, clock=clock)
    session = create_session(repository, max_players=4)
    for index in range(10):
        service.join_session(session.id, f"user-{index}")
        clock.advance(seconds=1)
    start = threading.Barrier(4)

    def leave(index):
        start.wait()
        service.leave_session(session.id, f"user-{index}")

    with ThreadPoolExecutor(max_workers=4) as pool:
        list(pool.map(leave, range(4)))

    participants = service.list_participants(session.id)
    confirmed = [p.user_id for p in participants if p.status == models.ParticipantStatus.confirmed]
    assert confirmed == ["user-4", "user-5", "user-6", "user-7"]
    assert len(participants) == 6


def test_deleting_activity_releases_session_locks(clock):
    repository = InMemorySessionRepository()
    service = ParticipationService(repository, clock=clock)
    session = create_session(repository)
    service.join_session(session.id, "alice")
    assert session.id in repository._session_locks

    repository.delete_activity(session.activity_id)

    assert session.id not in repository._session_locks
    with pytest.raises(NotRegistered):
        service.leave_session(session.id, "alice")
    assert session.id not in repository._session_locks


def _sql_service(db, clock):
    return ParticipationService(SqlSessionRepository(db), clock=clock, max_attempts=5)


def test_sql_concurrent_joins_never_exceed_capacity(file_session_factory, clock):
    with file_session_factory() as db:
        session = create_session(SqlSessionRepository(db), max_players=3)
    start = threading.Barrier(12)

    def join(index):
        with file_session_factory() as db:
            service = _sql_service(db, clock)
            start.wait()
            return service.join_session(session.id, f"user-{index}")

    with ThreadPoolExecutor(max_workers=12) as pool:
        results = list(pool.map(join, range(12)))

    confirmed = [p for p in results if p.status == models.ParticipantStatus.confirmed]
    assert len(confirmed) == 3
    with file_session_factory() as db:
        service = _sql_service(db, clock)
        stats = service.get_session_stats(session.id)
        participants = service.list_participants(session.id)
    assert stats.confirmed_count == 3
    assert stats.waiting_count == 9
    assert len({p.user_id for p in participants}) == 12


def test_sql_concurrent_leaves_promote_in_order(file_session_factory, clock):
    with file_session_factory() as db:
        session = create_session(SqlSessionRepository(db), max_players=3)
        service = _sql_service(db, clock)
        for index in range(8):
            service.join_session(session.id, f"user-{index}")
            clock.advance(seconds=1)
    start = threading.Barrier(3)

    def leave(index):
        with file_session_factory() as db:
            service = _sql_service(db, clock)
            start.wait()
            service.leave_session(session.id, f"user-{index}")

    with ThreadPoolExecutor(max_workers=3) as pool:
        list(pool.map(leave, range(3)))

    with file_session_factory() as db:
        participants = _sql_service(db, clock).list_participants(session.id)
    confirmed = [p.user_id for p in participants if p.status == models.ParticipantStatus.confirmed]
    waiting = [p.user_id for p in participants if p.status == models.ParticipantStatus.waiting]
    assert confirmed == ["user-3", "user-4", "user-5"]
    assert waiting == ["user-6", "user-7"]


def test_sql_reads_reflect_changes_from_other_sessions(file_session_factory, clock):
    with file_session_factory() as db:
        session = create_session(SqlSessionRepository(db), max_players=1)

    with file_session_factory() as first_db:
        first = _sql_service(first_db, clock)
        first.join_session(session.id, "alice")
        clock.advance(seconds=1)
        first.join_session(session.id, "bob")
        assert [p.status for p in first.list_participants(session.id)] == [
            models.ParticipantStatus.confirmed,
            models.ParticipantStatus.waiting,
        ]

        with file_session_factory() as second_db:
            second = _sql_service(second_db, clock)
            second.leave_session(session.id, "alice")
            second.repository.update_session(replace(session, max_players=3))

        [bob] = first.list_participants(session.id)
        assert bob.user_id == "bob"
        assert bob.status == models.ParticipantStatus.confirmed
        stats = first.get_session_stats(session.id)
        assert stats.available_spots == 2
