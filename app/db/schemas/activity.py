from datetime import datetime
from pydantic import BaseModel, Field

from ..models import DayOfWeek, RecurringType, SportType


class ActivityBase(BaseModel):
    name: str
    description: str | None = None
    sport: SportType = SportType.football
    min_players: int = Field(ge=2, le=100)
    max_players: int = Field(ge=2, le=100)
    recurring_type: RecurringType = RecurringType.weekly
    recurring_days: list[DayOfWeek]
    start_time: str = "12:00"
    is_public: bool = True


class ActivityCreate(ActivityBase):
    pass


class Activity(ActivityBase):
    id: int
    created_by: str
    join_code: str
    created_at: datetime | None = None

    class Config:
        from_attributes = True


class ActivityUpdate(BaseModel):
    name: str | None = None
    description: str | None = None
    sport: SportType | None = None
    min_players: int | None = Field(default=None, ge=2, le=100)
    max_players: int | None = Field(default=None, ge=2, le=100)
    recurring_type: RecurringType | None = None
    recurring_days: list[DayOfWeek] | None = None
    start_time: str | None = None
    is_public: bool | None = None


class JoinByCodeRequest(BaseModel):
    code: str


class JoinByCodeResult(BaseModel):
    activity: Activity
    already_member: bool


class SubscriptionStatus(BaseModel):
    activity_id: int
    subscribed: bool
    sessions_left: int = 0
