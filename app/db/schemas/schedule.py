from datetime import datetime
from pydantic import BaseModel, Field


class MatchValidationRequest(BaseModel):
    starts_at: datetime
    max_players: int = 12
    min_players: int | None = None
    description: str = ""


class ValidationResult(BaseModel):
    is_valid: bool
    errors: list[str]

    class Config:
        from_attributes = True


class RecurringDatesRequest(BaseModel):
    start: datetime
    frequency: str = Field(pattern="^(day|week|month)$")
    count: int = Field(ge=1, le=60)


class RecurringDatesResponse(BaseModel):
    dates: list[datetime]


class Duration(BaseModel):
    value: int
    label: str
