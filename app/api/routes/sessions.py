from fastapi import APIRouter, Depends, status
from ...api import deps
from ...api.errors import to_http_exception
from ...core.errors import ParticipationError
from ...db import schemas
from ...services import activity_service
from ...services.participation_service import ParticipationService, SessionOverview
from ...services.repositories import BaseSessionRepository

router = APIRouter(prefix="/sessions", tags=["sessions"])


def session_detail(overview: SessionOverview) -> schemas.ActivitySessionDetail:
    return schemas.ActivitySessionDetail(
        **schemas.ActivitySession.model_validate(overview.session).model_dump(),
        status=overview.status.value,
        stats=schemas.SessionStats.model_validate(overview.stats),
    )


def _detail(service: ParticipationService, session_id: int) -> schemas.ActivitySessionDetail:
    return session_detail(service.get_session_overview(session_id))


@router.get("/{session_id}", response_model=schemas.ActivitySessionDetail)
def get_session(
    session_id: int,
    _: str = Depends(deps.get_current_user_id),
    service: ParticipationService = Depends(deps.get_participation_service),
):
    try:
        return _detail(service, session_id)
    except ParticipationError as exc:
        raise to_http_exception(exc) from exc


@router.get("/{session_id}/participants", response_model=list[schemas.Participant])
def list_participants(
    session_id: int,
    _: str = Depends(deps.get_current_user_id),
    service: ParticipationService = Depends(deps.get_participation_service),
):
    try:
        return service.list_participants(session_id)
    except ParticipationError as exc:
        raise to_http_exception(exc) from exc


@router.post(
    "/{session_id}/join",
    response_model=schemas.Participant,
    status_code=status.HTTP_201_CREATED,
)
def join_session(
    session_id: int,
    user_id: str = Depends(deps.get_current_user_id),
    service: ParticipationService = Depends(deps.get_participation_service),
):
    try:
        return service.join_session(session_id, user_id)
    except ParticipationError as exc:
        raise to_http_exception(exc) from exc


@router.post("/{session_id}/leave", status_code=status.HTTP_204_NO_CONTENT)
def leave_session(
    session_id: int,
    user_id: str = Depends(deps.get_current_user_id),
    service: ParticipationService = Depends(deps.get_participation_service),
):
    try:
        service.leave_session(session_id, user_id)
    except ParticipationError as exc:
        raise to_http_exception(exc) from exc


@router.get("/{session_id}/stats", response_model=schemas.SessionStats)
def session_stats(
    session_id: int,
    _: str = Depends(deps.get_current_user_id),
    service: ParticipationService = Depends(deps.get_participation_service),
):
    try:
        return service.get_session_stats(session_id)
    except ParticipationError as exc:
        raise to_http_exception(exc) from exc


@router.get("/{session_id}/can-join", response_model=schemas.JoinEligibility)
def can_join_session(
    session_id: int,
    user_id: str = Depends(deps.get_current_user_id),
    service: ParticipationService = Depends(deps.get_participation_service),
):
    try:
        return service.can_user_join_session(session_id, user_id)
    except ParticipationError as exc:
        raise to_http_exception(exc) from exc


@router.get("/{session_id}/me", response_model=schemas.ParticipationStatus)
def my_participation(
    session_id: int,
    user_id: str = Depends(deps.get_current_user_id),
    service: ParticipationService = Depends(deps.get_participation_service),
):
    participant = service.get_user_participation_status(session_id, user_id)
    return schemas.ParticipationStatus(
        registered=participant is not None,
        participant=schemas.Participant.model_validate(participant) if participant else None,
    )


@router.post("/{session_id}/cancel", response_model=schemas.ActivitySession)
def cancel_session(
    session_id: int,
    user_id: str = Depends(deps.get_current_user_id),
    repo: BaseSessionRepository = Depends(deps.get_session_repository),
):
    try:
        return activity_service.cancel_session(repo, session_id, user_id)
    except ParticipationError as exc:
        raise to_http_exception(exc) from exc


@router.patch("/{session_id}", response_model=schemas.ActivitySessionDetail)
def update_session(
    session_id: int,
    payload: schemas.ActivitySessionUpdate,
    user_id: str = Depends(deps.get_current_user_id),
    repo: BaseSessionRepository = Depends(deps.get_session_repository),
    service: ParticipationService = Depends(deps.get_participation_service),
):
    try:
        activity_service.update_session_capacity(
            repo, service, session_id, user_id, payload.max_players
        )
        return _detail(service, session_id)
    except ParticipationError as exc:
        raise to_http_exception(exc) from exc
