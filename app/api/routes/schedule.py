from fastapi import APIRouter, Depends
from ...api import deps
from ...core.clock import Clock
from ...db import schemas
from ...services import recurrence, time_constraints

router = APIRouter(prefix="/schedule", tags=["schedule"])


@router.get("/time-slots", response_model=list[str])
def list_time_slots():
    return time_constraints.get_available_time_slots()


@router.get("/durations", response_model=list[schemas.Duration])
def list_durations():
    return time_constraints.get_available_durations()


@router.post("/validate", response_model=schemas.ValidationResult)
def validate_match(
    payload: schemas.MatchValidationRequest,
    clock: Clock = Depends(deps.get_clock),
):
    candidate = time_constraints.MatchCandidate(**payload.model_dump())
    return time_constraints.validate_match_creation(candidate, clock())


@router.post("/recurring-dates", response_model=schemas.RecurringDatesResponse)
def recurring_dates(
    payload: schemas.RecurringDatesRequest,
    clock: Clock = Depends(deps.get_clock),
):
    dates = recurrence.calculate_recurring_dates(
        payload.start, payload.frequency, payload.count, clock()
    )
    return schemas.RecurringDatesResponse(dates=dates)
