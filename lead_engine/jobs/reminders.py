# lead_engine/jobs/reminders.py
from datetime import timedelta

from lead_engine.crud.follow_up_tasks import get_due_tasks
from lead_engine.jobs.base import RotationJob, SKIPPED, PROCESSED, batch_limit
from lead_engine.services.activity_log import ActivityLogService


class ReminderJob(RotationJob):
    """Notify agents about follow-up tasks due shortly. Never touches ownership."""

    task_type = ""
    label = ""

    async def load_params(self, ctx, gate, now):
        # [start, end): consecutive 5 minute runs tile the timeline without overlap
        return (
            now + timedelta(minutes=ctx.settings.reminder_window_start_minutes),
            now + timedelta(minutes=ctx.settings.reminder_window_end_minutes),
        )

    async def fetch_candidates(self, ctx, db, window, now):
        start, end = window
        return await get_due_tasks(db, self.task_type, start, end, batch_limit(ctx))

    def item_id(self, item):
        return str(item["task_id"])

    async def process_item(self, ctx, db, item, window, now):
        if ctx.notifier is None:
            return SKIPPED
        lead_name = f"{item['first_name']} {item['last_name']}".strip()
        due = item["due_at"].strftime("%H:%M")
        ctx.notifier.notify(item["agent_id"], f"{self.label} with {lead_name} at {due} UTC")

        ActivityLogService(db).record(
            f"{self.task_type}_reminder_sent",
            f"{self.label} reminder sent for {lead_name}",
            subject_type="Lead",
            subject_id=item["lead_id"],
            causer_type="Cron",
            properties={
                "task_id": str(item["task_id"]),
                "agent_id": str(item["agent_id"]),
                "due_at": item["due_at"].isoformat(),
            },
        )
        await db.commit()
        return PROCESSED


class CallReminderJob(ReminderJob):
    name = "Call Reminder"
    feature_key = "call_reminder_enabled"
    task_type = "call"
    label = "Call"


class MeetingReminderJob(ReminderJob):
    name = "Meeting Reminder"
    feature_key = "meeting_reminder_enabled"
    task_type = "meeting"
    label = "Meeting"
