from datetime import datetime
from pydantic import BaseModel

from ..models import ParticipantStatus
from .session import ActivitySessionDetail


class Participant(BaseModel):
    session_id: int
    user_id: str
    status: ParticipantStatus
    joined_at: datetime

    class Config:
        from_attributes = True


class ParticipationStatus(BaseModel):
    registered: bool
    participant: Participant | None = None


class UserParticipation(BaseModel):
    session: ActivitySessionDetail
    participant: Participant


class UserParticipations(BaseModel):
    upcoming: list[UserParticipation]
    past: list[UserParticipation]
