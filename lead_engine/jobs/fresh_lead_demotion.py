# lead_engine/jobs/fresh_lead_demotion.py
from lead_engine.crud.lead import get_fresh_demotion_candidates, get_lead_by_id
from lead_engine.jobs.base import RotationJob, SKIPPED, PROCESSED, batch_limit
from lead_engine.services.activity_log import ActivityLogService


class FreshLeadDemotionJob(RotationJob):
    """Clear ``is_fresh`` on leads that have been assigned too often. No reassignment."""

    name = "Fresh Lead Assignment"
    feature_key = "fresh_lead_demotion_enabled"

    async def load_params(self, ctx, gate, now):
        return await gate.get_int("fresh_lead_max_assignments", ctx.settings.fresh_lead_max_assignments)

    async def fetch_candidates(self, ctx, db, threshold, now):
        return await get_fresh_demotion_candidates(db, threshold, batch_limit(ctx))

    async def process_item(self, ctx, db, item, threshold, now):
        lead = await get_lead_by_id(db, item["lead_id"], for_update=True)
        if lead is None or not lead.is_fresh or lead.assignment_count < threshold:
            return SKIPPED

        # one-way: nothing sets is_fresh back to true
        lead.is_fresh = False
        lead.updated_at = now
        ActivityLogService(db).record(
            "lead_demoted",
            "Lead is no longer fresh",
            subject_type="Lead",
            subject_id=lead.lead_id,
            causer_type="Cron",
            properties={"assignment_count": lead.assignment_count},
        )
        await db.commit()
        return PROCESSED
