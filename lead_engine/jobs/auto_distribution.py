# lead_engine/jobs/auto_distribution.py
from uuid import UUID

from lead_engine.crud.lead import get_auto_distribution_sources, get_queued_leads
from lead_engine.jobs.base import RotationJob, batch_limit


class AutoDistributionJob(RotationJob):
    """
    Hand waiting leads of each auto-distribution source to that source's ring.
    Waiting means parked on the queue agent, or unowned after a rejection.
    """

    name = "Auto Lead Distribution"
    feature_key = "auto_distribution_enabled"
    feature_default = False
    requires_office_hours = True

    async def check_gates(self, gate, now):
        reason = await super().check_gates(gate, now)
        if reason:
            return reason
        if not await gate.get("queue_agent_id", ""):
            return "queue_agent_id is not configured"
        return None

    async def load_params(self, ctx, gate, now):
        return UUID(str(await gate.get("queue_agent_id", "")))

    async def fetch_candidates(self, ctx, db, queue_agent_id, now):
        candidates = []
        for source_id in await get_auto_distribution_sources(db):
            candidates.extend(await get_queued_leads(db, source_id, queue_agent_id, batch_limit(ctx)))
        return candidates

    async def process_item(self, ctx, db, item, queue_agent_id, now):
        async def still_waiting(session, lead):
            if lead.is_terminal:
                return f"lead is {lead.status}"
            if lead.agent_id not in (None, queue_agent_id):
                return "lead already has an owner"
            return None

        manager = ctx.assignment_manager(db)
        outcome = await manager.assign_round_robin(
            item["lead_id"], item["source_id"], reason="Auto distribution", guard=still_waiting
        )
        return self.ensure_success(outcome)
