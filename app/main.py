import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from .api.routes import activities, schedule, sessions
from .db.session import Base, engine
from .config import get_settings
from .workers.scheduler import get_scheduler

settings = get_settings()
logging.basicConfig(level=settings.log_level.upper())

app = FastAPI(title="Sport Sessions API", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(activities.router, prefix="/api/v1")
app.include_router(sessions.router, prefix="/api/v1")
app.include_router(schedule.router, prefix="/api/v1")


@app.on_event("startup")
async def startup_event() -> None:
    if settings.storage_backend == "sql":
        Base.metadata.create_all(bind=engine)
    scheduler = get_scheduler()
    scheduler.start()
    app.state.scheduler = scheduler


@app.on_event("shutdown")
async def shutdown_event() -> None:
    scheduler = getattr(app.state, "scheduler", None)
    if scheduler is not None and scheduler.running:
        scheduler.shutdown(wait=False)
