from zoneinfo import ZoneInfo
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from ..config import get_settings
from ..core.clock import Clock, utc_now
from ..core.constants import SYSTEM_ACTOR
from ..db.session import SessionLocal
from ..services import activity_service
from ..services.repositories import BaseSessionRepository, get_repository

logger = logging.getLogger(__name__)


def extend_sessions_for(repo: BaseSessionRepository, clock: Clock = utc_now) -> int:
    settings = get_settings()
    tz = ZoneInfo(settings.timezone)
    now = clock()
    created = 0
    for activity in repo.list_activities():
        sessions = activity_service.generate_sessions(
            repo,
            activity,
            now=now,
            tz=tz,
            weeks_ahead=settings.session_horizon_weeks,
        )
        created += len(sessions)
    logger.info("Session horizon extended", extra={"created": created, "actor": SYSTEM_ACTOR})
    return created


def extend_sessions() -> None:
    settings = get_settings()
    with SessionLocal() as db:
        extend_sessions_for(get_repository(settings, db))


def get_scheduler() -> AsyncIOScheduler:
    settings = get_settings()
    scheduler = AsyncIOScheduler()
    scheduler.add_job(
        extend_sessions,
        "interval",
        hours=settings.session_extension_interval_hours,
    )
    return scheduler
