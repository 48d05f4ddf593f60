# lead_engine/jobs/not_interested_rotation.py
from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from lead_engine.core.exceptions import NoEligibleAgent, UnknownAgent
from lead_engine.crud.agent import get_eligible_agents
from lead_engine.crud.lead import get_not_interested_candidates
from lead_engine.jobs.base import RotationJob, batch_limit


@dataclass(frozen=True)
class NotInterestedParams:
    max_attempts: int
    fallback_agent_id: Optional[UUID]


class NotInterestedRotationJob(RotationJob):
    """
    Give not-interested leads another chance with a random different agent.
    The last attempt goes to the configured fallback (admin) agent, which ends
    the cycle because the lead then reaches the attempt cap.
    """

    name = "Not Interested Status Rotation"
    feature_key = "not_interested_rotation_enabled"

    async def load_params(self, ctx, gate, now):
        max_attempts = await gate.get_int("not_interested_max_attempts", ctx.settings.not_interested_max_attempts)
        fallback = await gate.get("fallback_admin_agent_id", "")
        return NotInterestedParams(
            max_attempts=max_attempts,
            fallback_agent_id=UUID(str(fallback)) if fallback else None,
        )

    async def fetch_candidates(self, ctx, db, params, now):
        return await get_not_interested_candidates(db, params.max_attempts, batch_limit(ctx))

    async def process_item(self, ctx, db, item, params, now):
        # the stored count picks the strategy, so it must not have moved underneath us
        async def unchanged(session, lead):
            if lead.status != "not_interested":
                return f"status is now {lead.status}"
            if lead.assignment_count != item["assignment_count"] or lead.agent_id != item["agent_id"]:
                return "lead was reassigned since the batch was read"
            return None

        manager = ctx.assignment_manager(db)

        if item["assignment_count"] >= params.max_attempts - 1:
            if params.fallback_agent_id is None:
                raise UnknownAgent("fallback_admin_agent_id is not configured")
            outcome = await manager.assign_to(
                item["lead_id"],
                params.fallback_agent_id,
                "fallback",
                reason="Not interested: final attempt routed to fallback agent",
                require_eligible=False,
                guard=unchanged,
            )
            return self.ensure_success(outcome)

        agents = await get_eligible_agents(db, exclude=[item["agent_id"], params.fallback_agent_id])
        if not agents:
            raise NoEligibleAgent("No other eligible agent for not-interested rotation")
        target = ctx.rng.choice(agents)
        outcome = await manager.assign_to(
            item["lead_id"], target.agent_id, "random", reason="Not interested rotation", guard=unchanged
        )
        return self.ensure_success(outcome)
