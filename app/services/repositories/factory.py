from sqlalchemy.orm import Session

from ...config import Settings
from .base import BaseSessionRepository

_memory_repository: BaseSessionRepository | None = None


def get_repository(settings: Settings, db: Session | None = None) -> BaseSessionRepository:
    if settings.storage_backend == "memory":
        global _memory_repository
        if _memory_repository is None:
            from .memory import InMemorySessionRepository

            _memory_repository = InMemorySessionRepository()
        return _memory_repository
    if settings.storage_backend == "sql":
        if db is None:
            raise ValueError("The sql storage backend needs a database session")
        from .sql import SqlSessionRepository

        return SqlSessionRepository(db)
    raise ValueError(f"Unsupported storage backend {settings.storage_backend}")


def reset_memory_repository() -> None:
    global _memory_repository
    _memory_repository = None
