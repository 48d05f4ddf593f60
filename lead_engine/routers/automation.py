from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional
import logging
import traceback

from lead_engine.crud.activity_log import get_recent_logs
from lead_engine.db.session import get_db
from lead_engine.scheduler.scheduler import JobScheduler
from lead_engine.schemas.automation import (
    ActivityLogOut,
    AutomationSettings,
    JobResult,
    JobToggleResponse,
    SchedulerHealth,
    SettingOut,
    SettingUpdate,
)
from lead_engine.services.settings_gate import SettingsGate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/automation", tags=["Automation"])


def get_scheduler(request: Request) -> JobScheduler:
    scheduler = getattr(request.app.state, "scheduler", None)
    if scheduler is None:
        raise HTTPException(status_code=503, detail="Scheduler is not initialised")
    return scheduler


@router.get("/health", response_model=SchedulerHealth, summary="Scheduler and job health")
async def get_health(scheduler: JobScheduler = Depends(get_scheduler)):
    return scheduler.get_health()


@router.post(
    "/jobs/{name}/trigger",
    response_model=JobResult,
    summary="Run a job now",
    description="Runs the job once and waits for it to finish, even if the job is disabled.",
)
async def trigger_job(name: str, scheduler: JobScheduler = Depends(get_scheduler)):
    try:
        return await scheduler.trigger(name)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error("Error in trigger_job: %s\n%s", e, traceback.format_exc())
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.post("/jobs/{name}/enable", response_model=JobToggleResponse, summary="Enable a job")
async def enable_job(name: str, scheduler: JobScheduler = Depends(get_scheduler)):
    try:
        entry = scheduler.enable(name)
        return JobToggleResponse(name=entry.name, enabled=entry.enabled)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("/jobs/{name}/disable", response_model=JobToggleResponse, summary="Disable a job")
async def disable_job(name: str, scheduler: JobScheduler = Depends(get_scheduler)):
    try:
        entry = scheduler.disable(name)
        return JobToggleResponse(name=entry.name, enabled=entry.enabled)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.get("/logs", response_model=List[ActivityLogOut], summary="Recent activity log entries")
async def get_logs(
    limit: int = Query(50, ge=1, le=500, description="Number of entries to fetch"),
    event_type: Optional[str] = Query(None, description="Filter by event type, e.g. cron_completed"),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await get_recent_logs(db, limit=limit, event_type=event_type)
    except Exception as e:
        logger.error("Error in get_logs: %s\n%s", e, traceback.format_exc())
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.get("/settings", response_model=AutomationSettings, summary="Runtime automation switches")
async def get_automation_settings(db: AsyncSession = Depends(get_db)):
    try:
        return AutomationSettings(**await SettingsGate(db).get_automation_settings())
    except Exception as e:
        logger.error("Error in get_automation_settings: %s\n%s", e, traceback.format_exc())
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.put(
    "/settings/{key}",
    response_model=SettingOut,
    summary="Update a runtime switch",
    description="Stores the value in the settings table; jobs pick it up on their next run.",
)
async def update_setting(key: str, update: SettingUpdate, db: AsyncSession = Depends(get_db)):
    try:
        value = await SettingsGate(db).set(key, update.value, update.type)
        return SettingOut(key=key, value=value, message=f'Setting "{key}" updated successfully')
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error("Error in update_setting: %s\n%s", e, traceback.format_exc())
        raise HTTPException(status_code=500, detail="Internal Server Error")
