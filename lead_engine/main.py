from contextlib import asynccontextmanager

from fastapi import FastAPI

from lead_engine.core.config import get_settings
from lead_engine.core.logging import setup_logging
from lead_engine.db.redis_client import close_redis, get_redis_client
from lead_engine.db.session import async_session
from lead_engine.routers import automation, leads, sources
from lead_engine.scheduler.context import SchedulerContext
from lead_engine.scheduler.scheduler import build_default_scheduler
from lead_engine.services.notifications import LoggingNotificationSender, NotificationDispatcher


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    setup_logging(settings.log_level)

    ctx = SchedulerContext(
        session_factory=async_session,
        settings=settings,
        notifier=NotificationDispatcher(LoggingNotificationSender(), settings.notification_timeout_seconds),
        redis=get_redis_client(),
    )
    scheduler = build_default_scheduler(ctx)
    app.state.scheduler = scheduler
    if settings.scheduler_enabled:
        await scheduler.start()
    try:
        yield
    finally:
        await scheduler.stop()
        await close_redis()


app = FastAPI(
    title="Lead Rotation Engine",
    version="1.0.0",
    lifespan=lifespan,
)

# --- Register Routers ---
app.include_router(leads.router)       # /api/v1/leads/*
app.include_router(sources.router)     # /api/v1/sources/*
app.include_router(automation.router)  # /api/v1/automation/*


# --- Root health check ---
@app.get("/")
async def root():
    return {"message": "Lead Rotation Engine is running"}
