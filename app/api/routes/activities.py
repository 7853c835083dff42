from datetime import datetime
from zoneinfo import ZoneInfo
from fastapi import APIRouter, Depends, Query, Response, status
from ...api import deps
from ...api.errors import to_http_exception
from ...config import Settings
from ...core.clock import Clock
from ...core.errors import NotActivityOwner, ParticipationError
from ...db import schemas
from ...services import activity_service
from ...services.participation_service import ParticipationService
from ...services.repositories import BaseSessionRepository, SessionFilter
from .sessions import session_detail

router = APIRouter(prefix="/activities", tags=["activities"])


class ActivityCreated(schemas.Activity):
    sessions: list[schemas.ActivitySession] = []


@router.post("", response_model=ActivityCreated, status_code=status.HTTP_201_CREATED)
def create_activity(
    payload: schemas.ActivityCreate,
    user_id: str = Depends(deps.get_current_user_id),
    repo: BaseSessionRepository = Depends(deps.get_session_repository),
    clock: Clock = Depends(deps.get_clock),
    tz: ZoneInfo = Depends(deps.get_timezone),
    settings: Settings = Depends(deps.get_app_settings),
):
    draft = activity_service.ActivityDraft(
        **payload.model_dump(exclude={"recurring_days"}),
        recurring_days=[day.value for day in payload.recurring_days],
    )
    try:
        activity, sessions = activity_service.create_activity(
            repo,
            user_id,
            draft,
            now=clock(),
            tz=tz,
            weeks_ahead=settings.session_horizon_weeks,
        )
    except ParticipationError as exc:
        raise to_http_exception(exc) from exc
    response = ActivityCreated.model_validate(activity)
    response.sessions = [schemas.ActivitySession.model_validate(s) for s in sessions]
    return response


@router.get("", response_model=list[schemas.Activity])
def list_activities(
    _: str = Depends(deps.get_current_user_id),
    repo: BaseSessionRepository = Depends(deps.get_session_repository),
):
    return [activity for activity in repo.list_activities() if activity.is_public]


@router.get("/code/{code}", response_model=schemas.Activity)
def get_activity_by_code(
    code: str,
    _: str = Depends(deps.get_current_user_id),
    repo: BaseSessionRepository = Depends(deps.get_session_repository),
):
    try:
        return activity_service.find_activity_by_code(repo, code)
    except ParticipationError as exc:
        raise to_http_exception(exc) from exc


@router.get("/my-created", response_model=list[schemas.Activity])
def my_created_activities(
    user_id: str = Depends(deps.get_current_user_id),
    repo: BaseSessionRepository = Depends(deps.get_session_repository),
):
    return activity_service.find_by_creator(repo, user_id)


@router.get("/my-participations", response_model=schemas.UserParticipations)
def my_participations(
    user_id: str = Depends(deps.get_current_user_id),
    service: ParticipationService = Depends(deps.get_participation_service),
):
    participations = service.find_user_participations(user_id)

    def entries(items):
        return [
            schemas.UserParticipation(
                session=session_detail(item.overview),
                participant=schemas.Participant.model_validate(item.participant),
            )
            for item in items
        ]

    return schemas.UserParticipations(
        upcoming=entries(participations.upcoming),
        past=entries(participations.past),
    )


@router.get("/upcoming-sessions", response_model=list[schemas.UpcomingSession])
def upcoming_sessions(
    limit: int = Query(default=20, ge=1, le=100),
    include_joined: bool = False,
    user_id: str = Depends(deps.get_current_user_id),
    service: ParticipationService = Depends(deps.get_participation_service),
):
    return [
        schemas.UpcomingSession(
            **session_detail(item.overview).model_dump(),
            user_status=schemas.UserSessionStatus.model_validate(
                item.user_status, from_attributes=True
            ),
        )
        for item in service.get_upcoming_sessions(
            user_id, limit=limit, include_joined=include_joined
        )
    ]


@router.post("/join-by-code", response_model=schemas.JoinByCodeResult)
def join_activity_by_code(
    payload: schemas.JoinByCodeRequest,
    response: Response,
    user_id: str = Depends(deps.get_current_user_id),
    repo: BaseSessionRepository = Depends(deps.get_session_repository),
):
    try:
        activity, already_member = activity_service.join_by_code(repo, payload.code, user_id)
    except ParticipationError as exc:
        raise to_http_exception(exc) from exc
    if not already_member:
        response.status_code = status.HTTP_201_CREATED
    return schemas.JoinByCodeResult(
        activity=schemas.Activity.model_validate(activity),
        already_member=already_member,
    )


@router.get("/{activity_id}", response_model=schemas.Activity)
def get_activity(
    activity_id: int,
    _: str = Depends(deps.get_current_user_id),
    repo: BaseSessionRepository = Depends(deps.get_session_repository),
):
    try:
        return activity_service.get_activity(repo, activity_id)
    except ParticipationError as exc:
        raise to_http_exception(exc) from exc


@router.delete("/{activity_id}")
def delete_activity(
    activity_id: int,
    user_id: str = Depends(deps.get_current_user_id),
    repo: BaseSessionRepository = Depends(deps.get_session_repository),
):
    try:
        activity_service.delete_activity(repo, activity_id, user_id)
    except ParticipationError as exc:
        raise to_http_exception(exc) from exc
    return {"status": "deleted"}


@router.put("/{activity_id}", response_model=schemas.Activity)
def update_activity(
    activity_id: int,
    payload: schemas.ActivityUpdate,
    user_id: str = Depends(deps.get_current_user_id),
    repo: BaseSessionRepository = Depends(deps.get_session_repository),
):
    changes = payload.model_dump(exclude_none=True)
    if "recurring_days" in changes:
        changes["recurring_days"] = [day.value for day in payload.recurring_days]
    try:
        return activity_service.update_activity(repo, activity_id, user_id, changes)
    except ParticipationError as exc:
        raise to_http_exception(exc) from exc


@router.post("/{activity_id}/subscribe", response_model=schemas.SubscriptionStatus)
def subscribe_activity(
    activity_id: int,
    user_id: str = Depends(deps.get_current_user_id),
    repo: BaseSessionRepository = Depends(deps.get_session_repository),
):
    try:
        activity_service.subscribe(repo, activity_id, user_id)
    except ParticipationError as exc:
        raise to_http_exception(exc) from exc
    return schemas.SubscriptionStatus(activity_id=activity_id, subscribed=True)


@router.delete("/{activity_id}/subscribe", response_model=schemas.SubscriptionStatus)
def unsubscribe_activity(
    activity_id: int,
    user_id: str = Depends(deps.get_current_user_id),
    repo: BaseSessionRepository = Depends(deps.get_session_repository),
    service: ParticipationService = Depends(deps.get_participation_service),
    clock: Clock = Depends(deps.get_clock),
):
    try:
        left = activity_service.unsubscribe(repo, service, activity_id, user_id, now=clock())
    except ParticipationError as exc:
        raise to_http_exception(exc) from exc
    return schemas.SubscriptionStatus(activity_id=activity_id, subscribed=False, sessions_left=left)


@router.get("/{activity_id}/sessions", response_model=list[schemas.ActivitySession])
def list_activity_sessions(
    activity_id: int,
    from_dt: datetime | None = None,
    to_dt: datetime | None = None,
    include_cancelled: bool = True,
    _: str = Depends(deps.get_current_user_id),
    repo: BaseSessionRepository = Depends(deps.get_session_repository),
):
    try:
        activity_service.get_activity(repo, activity_id)
    except ParticipationError as exc:
        raise to_http_exception(exc) from exc
    return repo.list_sessions(
        SessionFilter(
            activity_id=activity_id,
            from_dt=from_dt,
            to_dt=to_dt,
            include_cancelled=include_cancelled,
        )
    )


@router.post("/{activity_id}/sessions/generate", response_model=list[schemas.ActivitySession])
def generate_activity_sessions(
    activity_id: int,
    user_id: str = Depends(deps.get_current_user_id),
    repo: BaseSessionRepository = Depends(deps.get_session_repository),
    clock: Clock = Depends(deps.get_clock),
    tz: ZoneInfo = Depends(deps.get_timezone),
    settings: Settings = Depends(deps.get_app_settings),
):
    try:
        activity = activity_service.get_activity(repo, activity_id)
        if activity.created_by != user_id:
            raise NotActivityOwner()
    except ParticipationError as exc:
        raise to_http_exception(exc) from exc
    return activity_service.generate_sessions(
        repo,
        activity,
        now=clock(),
        tz=tz,
        weeks_ahead=settings.session_horizon_weeks,
    )
