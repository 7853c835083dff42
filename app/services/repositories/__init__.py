from .base import (
    ActivityRecord,
    BaseSessionRepository,
    Participant,
    ParticipantSet,
    SessionFilter,
    SessionRecord,
)
from .factory import get_repository, reset_memory_repository
from .memory import InMemorySessionRepository
from .sql import SqlSessionRepository

__all__ = [
    "ActivityRecord",
    "BaseSessionRepository",
    "Participant",
    "ParticipantSet",
    "SessionFilter",
    "SessionRecord",
    "get_repository",
    "reset_memory_repository",
    "InMemorySessionRepository",
    "SqlSessionRepository",
]
