from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, declarative_base, Session
from ..config import get_settings

settings = get_settings()


def enable_sqlite_write_lock(engine: Engine) -> Engine:
    """Make every SQLite transaction take the database write lock up front.

    SQLite ignores ``SELECT ... FOR UPDATE`` and pysqlite delays ``BEGIN``
    until the first write, so a count followed by an insert is not isolated.
    ``BEGIN IMMEDIATE`` serializes transactions instead, and handing the
    transaction boundaries to SQLAlchemy also makes savepoints work.
    """
    if engine.dialect.name != "sqlite":
        return engine

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


engine = enable_sqlite_write_lock(create_engine(settings.sqlalchemy_url, future=True, echo=False))
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)
Base = declarative_base()


def get_db() -> Session:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
