# lead_engine/scheduler/scheduler.py
import asyncio
import logging
import traceback
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional, Union

from sqlalchemy.exc import SQLAlchemyError

from lead_engine.core.exceptions import JobNotFound
from lead_engine.jobs.auto_distribution import AutoDistributionJob
from lead_engine.jobs.base import RotationJob
from lead_engine.jobs.daily_report import DailyReportJob
from lead_engine.jobs.dnd_check import DndCheckJob
from lead_engine.jobs.fresh_lead_demotion import FreshLeadDemotionJob
from lead_engine.jobs.no_activity_rotation import NoActivityRotationJob
from lead_engine.jobs.no_answer_rotation import NoAnswerRotationJob
from lead_engine.jobs.not_interested_rotation import NotInterestedRotationJob
from lead_engine.jobs.reminders import CallReminderJob, MeetingReminderJob
from lead_engine.scheduler.context import SchedulerContext
from lead_engine.scheduler.schedules import DailyAt, Interval, describe_delay
from lead_engine.schemas.automation import JobHealth, JobResult, SchedulerHealth
from lead_engine.services.activity_log import ActivityLogService
from lead_engine.services.locks import JobRunLock

logger = logging.getLogger(__name__)

Schedule = Union[Interval, DailyAt]


@dataclass
class ScheduledJob:
    """Registry entry for one job. In-memory only; rebuilt at process start."""

    name: str
    job: RotationJob
    schedule: Schedule
    enabled: bool = True
    next_run_at: Optional[datetime] = None
    last_run_at: Optional[datetime] = None
    last_status: Optional[str] = None


class JobScheduler:
    """
    Runs registered jobs on their schedules.

    Each tick walks the registry in registration order and runs every due job
    to completion before the next. A per-job running lock means a slow run is
    never overlapped by another run of the same job, whether scheduled or
    triggered by hand.
    """

    def __init__(self, ctx: SchedulerContext):
        self.ctx = ctx
        self._jobs: Dict[str, ScheduledJob] = {}
        self._run_lock = JobRunLock(ctx.redis, ttl_seconds=ctx.settings.job_lock_ttl_seconds)
        self._task: Optional[asyncio.Task] = None
        self._armed = False

    # ---------------- registry ----------------
    def register(self, job: RotationJob, schedule: Schedule, enabled: bool = True) -> ScheduledJob:
        if job.name in self._jobs:
            raise ValueError(f"Job '{job.name}' is already registered")
        entry = ScheduledJob(name=job.name, job=job, schedule=schedule, enabled=enabled)
        if self._armed:
            entry.next_run_at = schedule.next_after(self.ctx.clock.now())
        self._jobs[job.name] = entry
        return entry

    def get(self, name: str) -> ScheduledJob:
        entry = self._jobs.get(name)
        if entry is None:
            raise JobNotFound(f"No job named '{name}'")
        return entry

    @property
    def is_running(self) -> bool:
        return self._armed

    # ---------------- lifecycle ----------------
    def arm(self) -> None:
        now = self.ctx.clock.now()
        for entry in self._jobs.values():
            entry.next_run_at = entry.schedule.next_after(now)
        self._armed = True

    async def start(self) -> None:
        """Arm every job and start the polling loop."""
        if self._task is not None:
            return
        self.arm()
        self._task = asyncio.create_task(self._loop(), name="lead-engine-scheduler")
        logger.info("Scheduler started with %d job(s)", len(self._jobs))

    async def stop(self) -> None:
        self._armed = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        if self.ctx.notifier is not None:
            await self.ctx.notifier.drain()
        logger.info("Scheduler stopped")

    async def _loop(self) -> None:
        while True:
            try:
                await self.tick()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error("Scheduler tick failed: %s\n%s", e, traceback.format_exc())
            await asyncio.sleep(self.ctx.settings.scheduler_poll_seconds)

    async def tick(self) -> List[JobResult]:
        """Run every job whose next run time has passed. Disabled jobs are skipped and logged."""
        results = []
        now = self.ctx.clock.now()
        for entry in list(self._jobs.values()):
            if entry.next_run_at is None:
                entry.next_run_at = entry.schedule.next_after(now)
                continue
            if now < entry.next_run_at:
                continue
            entry.next_run_at = entry.schedule.next_after(now)

            if not entry.enabled:
                logger.info("Job '%s' is disabled, skipping", entry.name)
                await self._log_cron(entry.name, "skipped", {"reason": "disabled"})
                results.append(self._skipped(entry, "disabled"))
                continue
            results.append(await self._execute(entry, trigger="schedule"))
        return results

    # ---------------- management ----------------
    async def trigger(self, name: str) -> JobResult:
        """Run a job once, now, regardless of schedule or enabled flag."""
        entry = self.get(name)
        logger.info("Job '%s' triggered manually", name)
        return await self._execute(entry, trigger="manual")

    def enable(self, name: str) -> ScheduledJob:
        entry = self.get(name)
        entry.enabled = True
        if entry.next_run_at is None and self._armed:
            entry.next_run_at = entry.schedule.next_after(self.ctx.clock.now())
        logger.info("Job '%s' enabled", name)
        return entry

    def disable(self, name: str) -> ScheduledJob:
        entry = self.get(name)
        entry.enabled = False
        logger.info("Job '%s' disabled", name)
        return entry

    def get_health(self) -> SchedulerHealth:
        now = self.ctx.clock.now()
        jobs = []
        for entry in self._jobs.values():
            if not entry.enabled:
                next_run = "disabled"
            elif entry.next_run_at is None:
                next_run = "not scheduled"
            else:
                next_run = describe_delay(entry.next_run_at - now)
            jobs.append(
                JobHealth(
                    name=entry.name,
                    schedule=entry.schedule.describe(),
                    enabled=entry.enabled,
                    running=self._run_lock.is_locked(entry.name),
                    next_run=next_run,
                    next_run_at=entry.next_run_at,
                    last_run_at=entry.last_run_at,
                    last_status=entry.last_status,
                )
            )
        return SchedulerHealth(running=self._armed, now=now, jobs=jobs)

    # ---------------- execution ----------------
    async def _execute(self, entry: ScheduledJob, trigger: str) -> JobResult:
        if not await self._run_lock.acquire(entry.name):
            logger.warning("Job '%s' is already running, skipping this run", entry.name)
            await self._log_cron(entry.name, "skipped", {"reason": "already running", "trigger": trigger})
            return self._skipped(entry, "already running")

        try:
            entry.last_run_at = self.ctx.clock.now()
            await self._log_cron(entry.name, "started", {"trigger": trigger})
            try:
                result = await entry.job.run(self.ctx)
            except Exception as e:
                logger.error("Job '%s' failed: %s\n%s", entry.name, e, traceback.format_exc())
                result = JobResult(
                    job_name=entry.name,
                    status="failed",
                    message=str(e),
                    started_at=entry.last_run_at,
                    finished_at=self.ctx.clock.now(),
                )
                await self._log_cron(entry.name, "failed", {"trigger": trigger, "error": str(e)})
            else:
                status = "skipped" if result.status == "skipped" else "completed"
                logger.info("Job '%s' %s: %s", entry.name, status, result.message)
                await self._log_cron(entry.name, status, dict(result.summary(), trigger=trigger))
            entry.last_status = result.status
            return result
        finally:
            await self._run_lock.release(entry.name)

    def _skipped(self, entry: ScheduledJob, reason: str) -> JobResult:
        now = self.ctx.clock.now()
        return JobResult(job_name=entry.name, status="skipped", message=reason, started_at=now, finished_at=now)

    async def _log_cron(self, job_name: str, status: str, properties: dict) -> None:
        # activity-log writes never take the scheduler down
        try:
            async with self.ctx.session_factory() as db:
                ActivityLogService(db).log_cron_execution(job_name, status, properties)
                await db.commit()
        except SQLAlchemyError as e:
            logger.error("Could not write cron_%s entry for '%s': %s", status, job_name, e)


DEFAULT_SCHEDULES = (
    (AutoDistributionJob, Interval.minutes(15)),
    (NoActivityRotationJob, Interval.minutes(30)),
    (FreshLeadDemotionJob, DailyAt(4, 0)),
    (NoAnswerRotationJob, Interval.hours(4)),
    (NotInterestedRotationJob, Interval.hours(4)),
    (CallReminderJob, Interval.minutes(5)),
    (MeetingReminderJob, Interval.minutes(5)),
    (DndCheckJob, DailyAt(3, 0)),
    (DailyReportJob, DailyAt(8, 0)),
)


def build_default_scheduler(ctx: SchedulerContext) -> JobScheduler:
    scheduler = JobScheduler(ctx)
    for job_cls, schedule in DEFAULT_SCHEDULES:
        scheduler.register(job_cls(), schedule)
    return scheduler
