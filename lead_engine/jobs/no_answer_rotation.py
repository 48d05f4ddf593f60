# lead_engine/jobs/no_answer_rotation.py
from datetime import timedelta

from lead_engine.core.exceptions import NoEligibleAgent
from lead_engine.crud.agent import get_eligible_agents
from lead_engine.crud.lead import get_no_answer_candidates
from lead_engine.jobs.base import RotationJob, batch_limit


def _bump_no_answer(lead):
    lead.no_answer_count = (lead.no_answer_count or 0) + 1


class NoAnswerRotationJob(RotationJob):
    """Recycle recent no-answer leads to a random different agent."""

    name = "No Answer Status Rotation"
    feature_key = "no_answer_rotation_enabled"

    async def load_params(self, ctx, gate, now):
        days = await gate.get_int("no_answer_max_age_days", ctx.settings.no_answer_max_age_days)
        return now - timedelta(days=days)  # oldest created_at still recycled

    async def fetch_candidates(self, ctx, db, created_after, now):
        return await get_no_answer_candidates(db, created_after, batch_limit(ctx))

    async def process_item(self, ctx, db, item, created_after, now):
        # random, not the ring: spreads repeated failures across the whole team
        agents = await get_eligible_agents(db, exclude=[item["agent_id"]])
        if not agents:
            raise NoEligibleAgent("No other eligible agent for no-answer rotation")
        target = ctx.rng.choice(agents)

        async def still_no_answer(session, lead):
            if lead.status != "no_answer":
                return f"status is now {lead.status}"
            if lead.agent_id != item["agent_id"]:
                return "lead changed owner since the batch was read"
            if lead.created_at < created_after:
                return "lead is too old to recycle"
            return None

        manager = ctx.assignment_manager(db)
        outcome = await manager.assign_to(
            item["lead_id"],
            target.agent_id,
            "random",
            reason="No answer rotation",
            mutate_lead=_bump_no_answer,
            guard=still_no_answer,
        )
        return self.ensure_success(outcome)
