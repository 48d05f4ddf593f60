# lead_engine/jobs/no_activity_rotation.py
from dataclasses import dataclass
from datetime import datetime, timedelta

from lead_engine.core.exceptions import NoEligibleAgent
from lead_engine.crud.lead_assignment import get_assignment, get_stale_assignments
from lead_engine.jobs.base import RotationJob, batch_limit


@dataclass(frozen=True)
class NoActivityParams:
    timeout_minutes: int
    threshold: datetime


class NoActivityRotationJob(RotationJob):
    """
    Reclaim leads whose primary owner has gone quiet.

    The replacement assignment is created with ``loop_guard`` set in the same
    transaction, so the lead is not picked again until the new agent records
    activity on it.
    """

    name = "No Activity Lead Rotation"
    feature_key = "no_activity_rotation_enabled"
    feature_default = False
    requires_office_hours = True

    async def load_params(self, ctx, gate, now):
        minutes = await gate.get_int("no_activity_timeout_minutes", ctx.settings.no_activity_timeout_minutes)
        return NoActivityParams(timeout_minutes=minutes, threshold=now - timedelta(minutes=minutes))

    async def fetch_candidates(self, ctx, db, params, now):
        return await get_stale_assignments(db, params.threshold, batch_limit(ctx))

    async def process_item(self, ctx, db, item, params, now):
        if item["source_id"] is None:
            raise NoEligibleAgent("Lead has no source pool to rotate through")

        async def still_stale(session, lead):
            if lead.is_terminal:
                return f"lead is {lead.status}"
            assignment = await get_assignment(session, item["assignment_id"], for_update=True)
            if assignment is None or not assignment.is_open or not assignment.is_primary:
                return "assignment is no longer the open primary"
            if assignment.loop_guard:
                return "assignment was already rotated"
            if assignment.last_activity_at is not None and assignment.last_activity_at >= params.threshold:
                return "agent has been active since the batch was read"
            return None

        manager = ctx.assignment_manager(db)
        outcome = await manager.assign_round_robin(
            item["lead_id"],
            item["source_id"],
            loop_guard=True,
            reason=f"No activity for {params.timeout_minutes} minutes",
            guard=still_stale,
        )
        return self.ensure_success(outcome)
