# lead_engine/jobs/dnd_check.py
from lead_engine.core.exceptions import CandidateChanged
from lead_engine.crud.dnd_registry import get_active_numbers
from lead_engine.crud.lead import get_callable_leads, get_lead_by_id
from lead_engine.jobs.base import RotationJob, PROCESSED, batch_limit
from lead_engine.models import normalize_phone
from lead_engine.services.activity_log import ActivityLogService

PAGE_SIZE = 500


class DndCheckJob(RotationJob):
    """
    Mark leads "do not call" when their phone number is in the DND registry.
    Ownership is untouched; a marked lead is never checked again.
    """

    name = "Lead DND Check"
    feature_key = "dnd_check_enabled"

    async def fetch_candidates(self, ctx, db, params, now):
        registry = await get_active_numbers(db)
        if not registry:
            return []

        limit = batch_limit(ctx)
        matches, after_id = [], None
        while len(matches) < limit:
            page = await get_callable_leads(db, after_id, PAGE_SIZE)
            if not page:
                break
            for row in page:
                phone = normalize_phone(row["phone"])
                if phone in registry:
                    matches.append({"lead_id": row["lead_id"], "phone": phone})
            after_id = page[-1]["lead_id"]
        return matches[:limit]

    async def process_item(self, ctx, db, item, params, now):
        lead = await get_lead_by_id(db, item["lead_id"], for_update=True)
        if lead is None or lead.do_not_call:
            raise CandidateChanged("lead is gone or already marked")
        if normalize_phone(lead.phone) != item["phone"]:
            raise CandidateChanged("phone number changed since the batch was read")

        lead_name = f"{lead.first_name} {lead.last_name}".strip()
        lead.do_not_call = True
        lead.updated_at = now
        ActivityLogService(db).record(
            "dnd_marked",
            f'Lead "{lead_name}" marked as "Do not call" (phone in DND registry)',
            subject_type="Lead",
            subject_id=lead.lead_id,
            causer_type="Cron",
            properties={"phone": item["phone"], "agent_id": str(lead.agent_id) if lead.agent_id else None},
        )
        await db.commit()
        return PROCESSED
