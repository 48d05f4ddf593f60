# lead_engine/jobs/daily_report.py
from dataclasses import dataclass
from datetime import datetime, timedelta

from lead_engine.crud.agent import get_managers, get_team_ids
from lead_engine.crud.reports import get_team_report
from lead_engine.jobs.base import RotationJob, SKIPPED, PROCESSED, batch_limit
from lead_engine.services.activity_log import ActivityLogService


@dataclass(frozen=True)
class ReportDay:
    start: datetime  # yesterday 00:00
    end: datetime    # today 00:00
    next_end: datetime  # tomorrow 00:00


class DailyReportJob(RotationJob):
    """Send each manager the previous day's lead summary for their team."""

    name = "Daily Email Reports"
    feature_key = "daily_report_enabled"

    async def load_params(self, ctx, gate, now):
        today = now.replace(hour=0, minute=0, second=0, microsecond=0)
        return ReportDay(start=today - timedelta(days=1), end=today, next_end=today + timedelta(days=1))

    async def fetch_candidates(self, ctx, db, day, now):
        return await get_managers(db, batch_limit(ctx))

    def item_id(self, item):
        return str(item["agent_id"])

    async def process_item(self, ctx, db, item, day, now):
        if ctx.notifier is None:
            return SKIPPED
        team_ids = await get_team_ids(db, item["agent_id"])
        report = await get_team_report(db, team_ids, day.start, day.end, day.next_end)

        ctx.notifier.notify(
            item["agent_id"],
            f"Daily report for {day.start:%Y-%m-%d}: {report['new_leads']} new leads, "
            f"{report['conversions']} conversions, {report['follow_ups_today']} follow-ups due today",
        )
        ActivityLogService(db).record(
            "daily_report_sent",
            f"Daily report sent to {item['full_name']}",
            subject_type="Agent",
            subject_id=item["agent_id"],
            causer_type="Cron",
            properties=dict(report, report_date=f"{day.start:%Y-%m-%d}"),
        )
        await db.commit()
        return PROCESSED
