"""Scheduler registry, ticking, manual control and health."""

import asyncio
from datetime import datetime, timedelta
from unittest.mock import AsyncMock

import pytest

from lead_engine.core.exceptions import JobNotFound
from lead_engine.crud.activity_log import get_recent_logs
from lead_engine.crud.assignment_history import count_history_by_lead
from lead_engine.jobs.base import RotationJob
from lead_engine.models import Lead
from lead_engine.scheduler.schedules import DailyAt, Interval, describe_delay
from lead_engine.scheduler.scheduler import JobScheduler, build_default_scheduler
from lead_engine.schemas.automation import JobResult
from lead_engine.services.locks import JobRunLock


class CountingJob(RotationJob):
    name = "Counting"

    def __init__(self, delay: float = 0.0, fail: bool = False):
        self.calls = 0
        self.delay = delay
        self.fail = fail

    async def run(self, ctx):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise RuntimeError("boom")
        return JobResult(job_name=self.name, message="ok", processed=1)


async def cron_logs(session_factory, event_type):
    async with session_factory() as s:
        return await get_recent_logs(s, event_type=event_type)


# ---------------- schedule values ----------------
def test_interval_is_epoch_aligned():
    every_15 = Interval.minutes(15)
    assert every_15.next_after(datetime(2024, 5, 15, 10, 7, 30)) == datetime(2024, 5, 15, 10, 15)
    assert every_15.next_after(datetime(2024, 5, 15, 10, 15)) == datetime(2024, 5, 15, 10, 30)


def test_daily_at_rolls_over_to_tomorrow():
    four_am = DailyAt(4, 0)
    assert four_am.next_after(datetime(2024, 5, 15, 3, 59)) == datetime(2024, 5, 15, 4, 0)
    assert four_am.next_after(datetime(2024, 5, 15, 4, 0)) == datetime(2024, 5, 16, 4, 0)


@pytest.mark.parametrize(
    "schedule, text",
    [
        (Interval.minutes(5), "Every 5 minutes"),
        (Interval.minutes(1), "Every 1 minute"),
        (Interval.hours(4), "Every 4 hours"),
        (Interval(90), "Every 90 seconds"),
        (DailyAt(4, 0), "Daily at 04:00 UTC"),
    ],
)
def test_schedule_descriptions(schedule, text):
    assert schedule.describe() == text


def test_describe_delay():
    assert describe_delay(timedelta(seconds=0)) == "due now"
    assert describe_delay(timedelta(minutes=14, seconds=20)) == "in 14 minutes"
    assert describe_delay(timedelta(hours=2, minutes=5)) == "in 2 hours 5 minutes"


# ---------------- ticking ----------------
async def test_tick_runs_only_due_jobs(ctx, clock):
    scheduler = JobScheduler(ctx)
    job = CountingJob()
    scheduler.register(job, Interval.minutes(30))
    scheduler.arm()

    await scheduler.tick()
    assert job.calls == 0

    clock.advance(minutes=30)
    results = await scheduler.tick()
    assert job.calls == 1
    assert [r.status for r in results] == ["completed"]

    await scheduler.tick()
    assert job.calls == 1


async def test_failed_job_is_logged_and_scheduler_survives(ctx, clock, session_factory):
    scheduler = JobScheduler(ctx)
    scheduler.register(CountingJob(fail=True), Interval.minutes(5))
    scheduler.arm()
    clock.advance(minutes=5)

    results = await scheduler.tick()

    assert results[0].status == "failed"
    assert results[0].message == "boom"
    failed = await cron_logs(session_factory, "cron_failed")
    assert failed[0].subject_id == "Counting"
    assert scheduler.get("Counting").last_status == "failed"


async def test_disabled_job_scenario(ctx, clock, factory, session_factory):
    await factory.setting("no_activity_rotation_enabled", "true", "boolean")
    source = await factory.source()
    a, b = await factory.agents(2)
    await factory.pool(source.source_id, [a.agent_id, b.agent_id], flagged=b.agent_id)
    lead = await factory.lead(source_id=source.source_id, agent_id=a.agent_id)
    await factory.assignment(lead, a.agent_id, assigned_at=clock.now() - timedelta(hours=1))

    scheduler = build_default_scheduler(ctx)
    scheduler.arm()
    scheduler.disable("No Activity Lead Rotation")
    clock.advance(minutes=31)

    results = {r.job_name: r for r in await scheduler.tick()}

    assert results["No Activity Lead Rotation"].status == "skipped"
    assert results["No Activity Lead Rotation"].message == "disabled"
    async with session_factory() as s:
        assert await count_history_by_lead(s, lead.lead_id) == 0
        assert (await s.get(Lead, lead.lead_id)).agent_id == a.agent_id
    skipped = await cron_logs(session_factory, "cron_skipped")
    assert any(
        log.subject_id == "No Activity Lead Rotation" and log.properties["reason"] == "disabled" for log in skipped
    )


async def test_enabled_job_rotates_on_tick(ctx, clock, factory, session_factory):
    await factory.setting("no_activity_rotation_enabled", "true", "boolean")
    source = await factory.source()
    a, b = await factory.agents(2)
    await factory.pool(source.source_id, [a.agent_id, b.agent_id], flagged=b.agent_id)
    lead = await factory.lead(source_id=source.source_id, agent_id=a.agent_id)
    await factory.assignment(lead, a.agent_id, assigned_at=clock.now() - timedelta(hours=1))

    scheduler = build_default_scheduler(ctx)
    scheduler.arm()
    clock.advance(minutes=31)
    await scheduler.tick()

    async with session_factory() as s:
        assert (await s.get(Lead, lead.lead_id)).agent_id == b.agent_id
    completed = await cron_logs(session_factory, "cron_completed")
    summary = [log for log in completed if log.subject_id == "No Activity Lead Rotation"][0]
    assert summary.properties["processed"] == 1
    assert summary.properties["failed"] == 0


# ---------------- manual control ----------------
async def test_trigger_runs_even_when_disabled(ctx):
    scheduler = JobScheduler(ctx)
    job = CountingJob()
    scheduler.register(job, Interval.hours(4))
    scheduler.disable("Counting")

    result = await scheduler.trigger("Counting")

    assert result.status == "completed"
    assert job.calls == 1
    assert scheduler.get("Counting").last_run_at is not None


async def test_unknown_job_name(ctx):
    scheduler = JobScheduler(ctx)
    with pytest.raises(JobNotFound):
        await scheduler.trigger("Nope")
    with pytest.raises(JobNotFound):
        scheduler.enable("Nope")


async def test_duplicate_registration_is_rejected(ctx):
    scheduler = JobScheduler(ctx)
    scheduler.register(CountingJob(), Interval.minutes(5))
    with pytest.raises(ValueError):
        scheduler.register(CountingJob(), Interval.minutes(10))


async def test_overlapping_runs_of_same_job_are_skipped(ctx, session_factory):
    scheduler = JobScheduler(ctx)
    job = CountingJob(delay=0.2)
    scheduler.register(job, Interval.minutes(5))

    first, second = await asyncio.gather(scheduler.trigger("Counting"), scheduler.trigger("Counting"))

    assert sorted([first.status, second.status]) == ["completed", "skipped"]
    assert job.calls == 1
    skipped = await cron_logs(session_factory, "cron_skipped")
    assert skipped[0].properties["reason"] == "already running"


# ---------------- health ----------------
async def test_default_registry_health(ctx, clock):
    scheduler = build_default_scheduler(ctx)
    scheduler.arm()
    scheduler.disable("Call Reminder")

    health = scheduler.get_health()
    by_name = {job.name: job for job in health.jobs}

    assert set(by_name) == {
        "Auto Lead Distribution",
        "No Activity Lead Rotation",
        "Fresh Lead Assignment",
        "No Answer Status Rotation",
        "Not Interested Status Rotation",
        "Call Reminder",
        "Meeting Reminder",
        "Lead DND Check",
        "Daily Email Reports",
    }
    assert health.running is True
    assert by_name["Auto Lead Distribution"].schedule == "Every 15 minutes"
    assert by_name["Auto Lead Distribution"].next_run == "in 15 minutes"
    assert by_name["Fresh Lead Assignment"].schedule == "Daily at 04:00 UTC"
    assert by_name["Fresh Lead Assignment"].next_run_at == datetime(2024, 5, 16, 4, 0)
    assert by_name["Lead DND Check"].next_run_at == datetime(2024, 5, 16, 3, 0)
    assert by_name["Daily Email Reports"].schedule == "Daily at 08:00 UTC"
    assert by_name["Daily Email Reports"].next_run_at == datetime(2024, 5, 16, 8, 0)
    assert by_name["Call Reminder"].enabled is False
    assert by_name["Call Reminder"].next_run == "disabled"
    assert by_name["Meeting Reminder"].running is False


async def test_start_and_stop(ctx):
    ctx.settings.scheduler_poll_seconds = 0.01
    scheduler = JobScheduler(ctx)
    scheduler.register(CountingJob(), Interval.minutes(5))

    await scheduler.start()
    assert scheduler.is_running
    await asyncio.sleep(0.03)
    await scheduler.stop()

    assert not scheduler.is_running


# ---------------- redis job lock ----------------
async def test_redis_lock_held_elsewhere_skips_run():
    redis = AsyncMock()
    redis.set.return_value = None
    lock = JobRunLock(redis, ttl_seconds=60)

    assert await lock.acquire("No Activity Lead Rotation") is False
    assert lock.is_locked("No Activity Lead Rotation") is False
    redis.set.assert_awaited_once()
    key = redis.set.call_args.args[0]
    assert key == "lead_engine:job_lock:no_activity_lead_rotation"
    assert redis.set.call_args.kwargs == {"nx": True, "ex": 60}


async def test_redis_lock_released_with_owned_token():
    redis = AsyncMock()
    redis.set.return_value = True
    lock = JobRunLock(redis, ttl_seconds=60)

    assert await lock.acquire("Call Reminder") is True
    token = redis.set.call_args.args[1]
    redis.get.return_value = token
    await lock.release("Call Reminder")

    redis.delete.assert_awaited_once_with("lead_engine:job_lock:call_reminder")
    assert lock.is_locked("Call Reminder") is False


async def test_in_process_lock_without_redis():
    lock = JobRunLock(None)
    assert await lock.acquire("Job") is True
    assert await lock.acquire("Job") is False
    await lock.release("Job")
    assert await lock.acquire("Job") is True
