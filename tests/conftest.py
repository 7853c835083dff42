from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from app.db.session import Base, enable_sqlite_write_lock
from app.db import models
from app.services.repositories import (
    ActivityRecord,
    InMemorySessionRepository,
    SessionRecord,
    SqlSessionRepository,
)

# Wednesday
NOW = datetime(2025, 1, 15, 10, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, moment: datetime) -> None:
        self.moment = moment

    def __call__(self) -> datetime:
        return self.moment

    def advance(self, **kwargs) -> None:
        self.moment += timedelta(**kwargs)


@pytest.fixture()
def clock():
    return FakeClock(NOW)


@pytest.fixture()
def db_session():
    engine = enable_sqlite_write_lock(create_engine("sqlite+pysqlite:///:memory:", future=True))
    TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def file_session_factory(tmp_path):
    """Sessions on a file-backed SQLite database, one connection per session."""
    engine = enable_sqlite_write_lock(
        create_engine(
            f"sqlite+pysqlite:///{tmp_path / 'sessions.db'}",
            connect_args={"check_same_thread": False, "timeout": 30},
            future=True,
        )
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(
        bind=engine, autoflush=False, autocommit=False, expire_on_commit=False
    )
    try:
        yield factory
    finally:
        engine.dispose()


@pytest.fixture(params=["memory", "sql"])
def repository(request):
    if request.param == "memory":
        yield InMemorySessionRepository()
    else:
        yield SqlSessionRepository(request.getfixturevalue("db_session"))


def create_activity(repo, created_by="owner", max_players=4, **overrides):
    record = ActivityRecord(
        name=overrides.pop("name", "Lunch football"),
        sport=overrides.pop("sport", models.SportType.football),
        min_players=overrides.pop("min_players", 2),
        max_players=max_players,
        recurring_type=overrides.pop("recurring_type", models.RecurringType.weekly),
        recurring_days=overrides.pop("recurring_days", ["tuesday"]),
        created_by=created_by,
        join_code=overrides.pop("join_code", "ABCD1234"),
        **overrides,
    )
    return repo.add_activity(record)


def create_session(repo, max_players=4, starts_at=None, activity=None, **overrides):
    activity = activity or create_activity(repo, max_players=max_players)
    [session] = repo.add_sessions(
        [
            SessionRecord(
                activity_id=activity.id,
                starts_at=starts_at or NOW + timedelta(days=2, hours=2),
                max_players=max_players,
                **overrides,
            )
        ]
    )
    return session
