from typing import Annotated
from zoneinfo import ZoneInfo
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError
from sqlalchemy.orm import Session
from ..config import Settings, get_settings
from ..core.clock import Clock, utc_now
from ..core.security import decode_access_token
from ..db.session import get_db
from ..services.participation_service import ParticipationService
from ..services.repositories import BaseSessionRepository, get_repository


oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login")


def get_current_user_id(token: Annotated[str, Depends(oauth2_scheme)]) -> str:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
    )
    try:
        payload = decode_access_token(token)
    except JWTError as exc:
        raise credentials_exception from exc
    user_id = payload.get("sub")
    if not user_id:
        raise credentials_exception
    return str(user_id)


def get_clock() -> Clock:
    return utc_now


def get_app_settings() -> Settings:
    return get_settings()


def get_timezone(settings: Annotated[Settings, Depends(get_app_settings)]) -> ZoneInfo:
    return ZoneInfo(settings.timezone)


def get_session_repository(
    db: Annotated[Session, Depends(get_db)],
    settings: Annotated[Settings, Depends(get_app_settings)],
) -> BaseSessionRepository:
    return get_repository(settings, db)


def get_participation_service(
    repo: Annotated[BaseSessionRepository, Depends(get_session_repository)],
    clock: Annotated[Clock, Depends(get_clock)],
    settings: Annotated[Settings, Depends(get_app_settings)],
) -> ParticipationService:
    return ParticipationService(repo, clock=clock, max_attempts=settings.participation_max_attempts)
