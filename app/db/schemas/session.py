from datetime import datetime
from pydantic import BaseModel, Field

from ..models import ParticipantStatus


class SessionStats(BaseModel):
    confirmed_count: int
    waiting_count: int
    total_count: int
    available_spots: int

    class Config:
        from_attributes = True


class ActivitySession(BaseModel):
    id: int
    activity_id: int
    starts_at: datetime
    max_players: int
    is_cancelled: bool

    class Config:
        from_attributes = True


class ActivitySessionDetail(ActivitySession):
    status: str
    stats: SessionStats


class ActivitySessionUpdate(BaseModel):
    max_players: int = Field(ge=2, le=100)


class JoinEligibility(BaseModel):
    can_join: bool
    would_be_waiting: bool
    reason: str | None = None

    class Config:
        from_attributes = True


class UserSessionStatus(BaseModel):
    is_participant: bool
    can_join: bool
    would_be_waiting: bool
    participant_status: ParticipantStatus | None = None


class UpcomingSession(ActivitySessionDetail):
    user_status: UserSessionStatus
