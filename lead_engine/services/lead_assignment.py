# lead_engine/services/lead_assignment.py
import logging
from datetime import datetime
from typing import Awaitable, Callable, List, Optional, Sequence
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from lead_engine.core.exceptions import (
    AgentExcluded,
    AssignmentNotFound,
    CandidateChanged,
    ConcurrentModification,
    InvalidTransition,
    LeadEngineError,
    LeadNotFound,
    NoEligibleAgent,
    TransientStoreError,
    UnknownAgent,
)
from lead_engine.crud.agent import get_agent, get_agents
from lead_engine.crud.assignment_history import create_history_entry, get_history_by_lead
from lead_engine.crud.lead import get_lead_by_id
from lead_engine.crud.lead_activities import create_activity
from lead_engine.crud.lead_assignment import (
    close_assignment,
    create_assignment,
    get_open_assignment,
    get_open_assignments_by_lead,
    get_pending_by_agent,
)
from lead_engine.db.base_class import utcnow
from lead_engine.models import Agent, AssignmentHistoryEntry, Lead, LeadAssignment
from lead_engine.schemas.assignment import AssignmentResult
from lead_engine.services.activity_log import ActivityLogService
from lead_engine.services.locks import SourceLockRegistry, source_locks
from lead_engine.services.notifications import NotificationDispatcher
from lead_engine.services.round_robin import RoundRobinSelector

logger = logging.getLogger(__name__)

LeadMutation = Callable[[Lead], None]
# Re-checks a job candidate once the lead row is locked; returns why it no longer qualifies, or None
LeadGuard = Callable[[AsyncSession, Lead], Awaitable[Optional[str]]]


class LeadAssignmentManager:
    """
    Assignment orchestrator: every way a lead changes owner goes through here.

    Each mode runs as one transaction:
    1. close the lead's open primary assignment (and any open edge for the target agent),
    2. open a new ``pending`` assignment,
    3. point ``Lead.agent_id`` at the new owner and bump ``assignment_count``,
    4. append one history entry per edge created,
    5. (round-robin) advance the source ring, under the per-source lock.

    Public methods never raise engine errors; they return an ``AssignmentResult``
    with ``error_kind`` set. A ``ConcurrentModification`` is retried once.
    """

    def __init__(
        self,
        db: AsyncSession,
        locks: Optional[SourceLockRegistry] = None,
        notifier: Optional[NotificationDispatcher] = None,
        now: Optional[Callable[[], datetime]] = None,
    ):
        self.db = db
        self.locks = locks or source_locks
        self.notifier = notifier
        self.now = now or utcnow
        self.selector = RoundRobinSelector(db, self.locks)
        self.activity = ActivityLogService(db)

    # ------------------------------------------------------------------
    # Assignment modes
    # ------------------------------------------------------------------
    async def assign_round_robin(
        self,
        lead_id: UUID,
        source_id: UUID,
        actor_id: Optional[UUID] = None,
        loop_guard: bool = False,
        reason: Optional[str] = None,
        guard: Optional[LeadGuard] = None,
    ) -> AssignmentResult:
        async def op():
            async with self.locks.get(source_id):
                lead = await self._load_lead(lead_id, guard)
                agent = await self.selector.next_agent(source_id)
                if agent is None:
                    raise NoEligibleAgent(f"No eligible agent in the pool of source {source_id}")
                await self._assign(
                    lead, agent, "round_robin", actor_id,
                    reason=reason or "Round-robin assignment", loop_guard=loop_guard,
                )
                await self.selector.advance(source_id, agent.agent_id)
                await self._commit()
                return agent

        return await self._run(lead_id, "round_robin", op)

    async def assign_manual(self, lead_id: UUID, agent_id: UUID, actor_id: Optional[UUID] = None) -> AssignmentResult:
        async def op():
            lead = await self._load_lead(lead_id)
            agent = await self._eligible_agent(agent_id)
            await self._assign(lead, agent, "manual", actor_id, reason="Manual assignment")
            await self._commit()
            return agent

        return await self._run(lead_id, "manual", op)

    async def assign_multiple(
        self, lead_id: UUID, agent_ids: Sequence[UUID], actor_id: Optional[UUID] = None
    ) -> AssignmentResult:
        """One assignment per agent (commission sharing); the first id becomes the primary owner."""
        ordered = list(dict.fromkeys(agent_ids))

        async def op():
            if not ordered:
                raise UnknownAgent("At least one agent id is required")
            lead = await self._load_lead(lead_id)
            by_id = {a.agent_id: a for a in await get_agents(self.db, ordered)}
            missing = [str(a) for a in ordered if a not in by_id]
            if missing:
                raise UnknownAgent(f"Unknown agent(s): {', '.join(missing)}")

            for position, agent_id in enumerate(ordered):
                await self._assign(
                    lead, by_id[agent_id], "multi_agent", actor_id,
                    reason="Multi-agent assignment", is_primary=position == 0,
                )
            await self._commit()
            return [by_id[a] for a in ordered]

        return await self._run(lead_id, "multi_agent", op)

    async def reassign(
        self,
        lead_id: UUID,
        from_agent_id: UUID,
        to_agent_id: UUID,
        actor_id: Optional[UUID] = None,
        reason: Optional[str] = None,
    ) -> AssignmentResult:
        async def op():
            lead = await self._load_lead(lead_id)
            current = await get_open_assignment(self.db, lead.lead_id, from_agent_id)
            if current is None:
                raise AssignmentNotFound(f"Agent {from_agent_id} has no open assignment on lead {lead_id}")
            agent = await self._eligible_agent(to_agent_id)
            close_assignment(current, reason or "Reassigned", self.now())
            await self._assign(lead, agent, "reassignment", actor_id, reason=reason, from_agent_id=from_agent_id)
            await self._commit()
            return agent

        return await self._run(lead_id, "reassignment", op)

    async def assign_to(
        self,
        lead_id: UUID,
        agent_id: UUID,
        assignment_type: str,
        actor_id: Optional[UUID] = None,
        reason: Optional[str] = None,
        require_eligible: bool = True,
        mutate_lead: Optional[LeadMutation] = None,
        guard: Optional[LeadGuard] = None,
    ) -> AssignmentResult:
        """
        Direct assignment used by the recycling strategies (``random``, ``fallback``).
        ``mutate_lead`` applies extra lead changes in the same transaction.
        ``guard`` re-checks the lead after it is locked and aborts with
        ``CandidateChanged`` when it no longer qualifies.
        """
        async def op():
            lead = await self._load_lead(lead_id, guard)
            if require_eligible:
                agent = await self._eligible_agent(agent_id)
            else:
                agent = await self._known_agent(agent_id)
            await self._assign(lead, agent, assignment_type, actor_id, reason=reason)
            if mutate_lead is not None:
                mutate_lead(lead)
            await self._commit()
            return agent

        return await self._run(lead_id, assignment_type, op)

    # ------------------------------------------------------------------
    # Acceptance transitions
    # ------------------------------------------------------------------
    async def accept(self, lead_id: UUID, agent_id: UUID) -> AssignmentResult:
        async def op():
            await self._load_lead(lead_id)
            assignment = await self._pending_assignment(lead_id, agent_id)
            assignment.acceptance_state = "accepted"
            assignment.last_activity_at = self.now()
            self.activity.record(
                "lead_accepted", f"Agent {agent_id} accepted lead {lead_id}",
                subject_type="Lead", subject_id=lead_id, causer_type="Agent", causer_id=agent_id,
            )
            await self._commit()
            return await get_agent(self.db, agent_id)

        return await self._run(lead_id, None, op, verb="accepted")

    async def reject(self, lead_id: UUID, agent_id: UUID, reason: Optional[str] = None) -> AssignmentResult:
        """Close the edge as rejected. The lead is not re-assigned here; reclamation picks it up."""
        async def op():
            lead = await self._load_lead(lead_id)
            assignment = await self._pending_assignment(lead_id, agent_id)
            assignment.acceptance_state = "rejected"
            close_assignment(assignment, reason or "Rejected by agent", self.now())
            if assignment.is_primary and lead.agent_id == agent_id:
                lead.agent_id = None
                lead.updated_at = self.now()
            self.activity.record(
                "lead_rejected", f"Agent {agent_id} rejected lead {lead_id}",
                subject_type="Lead", subject_id=lead_id, causer_type="Agent", causer_id=agent_id,
                properties={"reason": reason},
            )
            await self._commit()
            return await get_agent(self.db, agent_id)

        return await self._run(lead_id, None, op, verb="rejected")

    async def record_activity(
        self, lead_id: UUID, agent_id: UUID, activity_type: str = "note", notes: Optional[str] = None
    ) -> AssignmentResult:
        """Agent touched the lead: refresh ``last_activity_at`` and re-arm no-activity rotation."""
        async def op():
            await self._load_lead(lead_id)
            assignment = await get_open_assignment(self.db, lead_id, agent_id)
            if assignment is None:
                raise AssignmentNotFound(f"Agent {agent_id} has no open assignment on lead {lead_id}")
            assignment.last_activity_at = self.now()
            assignment.loop_guard = False
            await create_activity(self.db, lead_id, agent_id, activity_type, notes)
            await self._commit()
            return await get_agent(self.db, agent_id)

        return await self._run(lead_id, None, op, verb="activity recorded")

    # ------------------------------------------------------------------
    # Read models
    # ------------------------------------------------------------------
    async def get_history(self, lead_id: UUID) -> List[AssignmentHistoryEntry]:
        await self._load_lead(lead_id)
        return await get_history_by_lead(self.db, lead_id)

    async def get_pending(self, agent_id: UUID) -> List[LeadAssignment]:
        await self._known_agent(agent_id)
        return await get_pending_by_agent(self.db, agent_id)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    async def _run(
        self,
        lead_id: UUID,
        assignment_type: Optional[str],
        op: Callable[[], Awaitable],
        verb: str = "assigned",
    ) -> AssignmentResult:
        attempts = 0
        while True:
            attempts += 1
            try:
                outcome = await op()
                break
            except (ConcurrentModification, StaleDataError) as e:
                await self._rollback()
                if not isinstance(e, ConcurrentModification):
                    e = ConcurrentModification(str(e))
                if attempts < 2:
                    logger.warning("Concurrent modification on lead %s, retrying: %s", lead_id, e)
                    continue
                return self._failure(lead_id, assignment_type, e)
            except LeadEngineError as e:
                await self._rollback()
                return self._failure(lead_id, assignment_type, e)
            except SQLAlchemyError as e:
                await self._rollback()
                logger.error("Store error on lead %s: %s", lead_id, e)
                return self._failure(lead_id, assignment_type, TransientStoreError(str(e)))

        agents = outcome if isinstance(outcome, list) else [outcome]
        primary = agents[0] if agents else None
        if assignment_type is not None:
            for agent in agents:
                self._notify(agent.agent_id, f"Lead {lead_id} has been assigned to you")

        names = ", ".join(a.full_name for a in agents if a is not None)
        return AssignmentResult(
            success=True,
            lead_id=lead_id,
            agent_id=primary.agent_id if primary else None,
            agent_name=primary.full_name if primary else None,
            agent_ids=[a.agent_id for a in agents if a is not None],
            assignment_type=assignment_type,
            message=f"Lead {verb}: {names}" if names else f"Lead {verb}",
        )

    def _failure(self, lead_id: UUID, assignment_type: Optional[str], error: LeadEngineError) -> AssignmentResult:
        logger.info("Assignment on lead %s failed (%s): %s", lead_id, error.kind, error.message)
        return AssignmentResult(
            success=False,
            lead_id=lead_id,
            assignment_type=assignment_type,
            message=error.message,
            error_kind=error.kind,
        )

    async def _assign(
        self,
        lead: Lead,
        agent: Agent,
        assignment_type: str,
        actor_id: Optional[UUID],
        reason: Optional[str] = None,
        is_primary: bool = True,
        loop_guard: bool = False,
        from_agent_id: Optional[UUID] = None,
    ) -> LeadAssignment:
        now = self.now()
        previous_owner = lead.agent_id

        for open_edge in await get_open_assignments_by_lead(self.db, lead.lead_id):
            if open_edge.agent_id == agent.agent_id:
                close_assignment(open_edge, "Superseded by new assignment", now)
            elif is_primary and open_edge.is_primary:
                close_assignment(open_edge, reason or "Reassigned", now)

        assignment = await create_assignment(
            self.db,
            lead_id=lead.lead_id,
            agent_id=agent.agent_id,
            assignment_type=assignment_type,
            is_primary=is_primary,
            loop_guard=loop_guard,
            reason=reason,
            assigned_at=now,
        )

        if is_primary:
            lead.agent_id = agent.agent_id
            lead.assigned_by = actor_id
        lead.assignment_count = (lead.assignment_count or 0) + 1
        lead.updated_at = now

        create_history_entry(
            self.db,
            lead_id=lead.lead_id,
            from_agent_id=from_agent_id or previous_owner,
            to_agent_id=agent.agent_id,
            actor_id=actor_id,
            assignment_type=assignment_type,
            reason=reason,
        )
        self.activity.record(
            "lead_assigned",
            f"Lead assigned to {agent.full_name} ({assignment_type})",
            subject_type="Lead",
            subject_id=lead.lead_id,
            causer_type="Agent" if actor_id else "System",
            causer_id=actor_id,
            properties={
                "from_agent_id": str(previous_owner) if previous_owner else None,
                "to_agent_id": str(agent.agent_id),
                "assignment_type": assignment_type,
                "loop_guard": loop_guard,
            },
        )
        return assignment

    async def _load_lead(self, lead_id: UUID, guard: Optional[LeadGuard] = None) -> Lead:
        lead = await get_lead_by_id(self.db, lead_id, for_update=True)
        if lead is None:
            raise LeadNotFound(f"Lead {lead_id} not found")
        if guard is not None:
            reason = await guard(self.db, lead)
            if reason:
                raise CandidateChanged(reason)
        return lead

    async def _known_agent(self, agent_id: UUID) -> Agent:
        agent = await get_agent(self.db, agent_id)
        if agent is None:
            raise UnknownAgent(f"Agent {agent_id} not found")
        return agent

    async def _eligible_agent(self, agent_id: UUID) -> Agent:
        agent = await self._known_agent(agent_id)
        if not agent.is_eligible:
            raise AgentExcluded(f"Agent {agent.full_name} is inactive, unavailable or excluded")
        return agent

    async def _pending_assignment(self, lead_id: UUID, agent_id: UUID) -> LeadAssignment:
        assignment = await get_open_assignment(self.db, lead_id, agent_id)
        if assignment is None:
            raise AssignmentNotFound(f"Agent {agent_id} has no open assignment on lead {lead_id}")
        if assignment.acceptance_state != "pending":
            raise InvalidTransition(f"Assignment is already {assignment.acceptance_state}")
        return assignment

    def _notify(self, agent_id: UUID, message: str) -> None:
        if self.notifier is not None:
            self.notifier.notify(agent_id, message)

    async def _commit(self) -> None:
        try:
            await self.db.commit()
        except StaleDataError as e:
            raise ConcurrentModification(str(e)) from e

    async def _rollback(self) -> None:
        try:
            await self.db.rollback()
        except SQLAlchemyError as e:
            logger.error("Rollback failed: %s", e)
