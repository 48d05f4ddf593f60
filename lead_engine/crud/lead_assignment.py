# lead_engine/crud/lead_assignment.py
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession

from lead_engine.db.base_class import utcnow
from lead_engine.models import Lead, LeadAssignment, TERMINAL_STATUSES


# --- Create Assignment ---
async def create_assignment(
    db: AsyncSession,
    lead_id: UUID,
    agent_id: UUID,
    assignment_type: str,
    is_primary: bool = True,
    loop_guard: bool = False,
    reason: Optional[str] = None,
    assigned_at: Optional[datetime] = None,
) -> LeadAssignment:
    assignment = LeadAssignment(
        lead_id=lead_id,
        agent_id=agent_id,
        assignment_type=assignment_type,
        acceptance_state="pending",
        is_primary=is_primary,
        loop_guard=loop_guard,
        reason=reason,
        assigned_at=assigned_at or utcnow(),
    )
    db.add(assignment)
    return assignment


# --- Close Assignment ---
def close_assignment(assignment: LeadAssignment, reason: str, closed_at: Optional[datetime] = None) -> LeadAssignment:
    assignment.closed_at = closed_at or utcnow()
    assignment.close_reason = reason
    return assignment


# --- Fetch Assignment by ID ---
async def get_assignment(db: AsyncSession, assignment_id: UUID, for_update: bool = False) -> Optional[LeadAssignment]:
    stmt = (
        select(LeadAssignment)
        .where(LeadAssignment.assignment_id == assignment_id)
        .execution_options(populate_existing=True)
    )
    if for_update:
        stmt = stmt.with_for_update()
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


# --- Open assignments ---
async def get_open_assignments_by_lead(db: AsyncSession, lead_id: UUID) -> List[LeadAssignment]:
    stmt = (
        select(LeadAssignment)
        .where(LeadAssignment.lead_id == lead_id, LeadAssignment.closed_at.is_(None))
        .order_by(LeadAssignment.assigned_at.asc())
        .execution_options(populate_existing=True)
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def get_open_assignment(db: AsyncSession, lead_id: UUID, agent_id: UUID) -> Optional[LeadAssignment]:
    stmt = (
        select(LeadAssignment)
        .where(
            LeadAssignment.lead_id == lead_id,
            LeadAssignment.agent_id == agent_id,
            LeadAssignment.closed_at.is_(None),
        )
        .execution_options(populate_existing=True)
    )
    result = await db.execute(stmt)
    return result.scalars().first()


async def get_assignments_by_lead(db: AsyncSession, lead_id: UUID) -> List[LeadAssignment]:
    stmt = (
        select(LeadAssignment)
        .where(LeadAssignment.lead_id == lead_id)
        .order_by(LeadAssignment.assigned_at.asc())
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


# --- Pending assignments for an agent ---
async def get_pending_by_agent(db: AsyncSession, agent_id: UUID) -> List[LeadAssignment]:
    stmt = (
        select(LeadAssignment)
        .join(Lead, Lead.lead_id == LeadAssignment.lead_id)
        .where(
            LeadAssignment.agent_id == agent_id,
            LeadAssignment.acceptance_state == "pending",
            LeadAssignment.closed_at.is_(None),
            Lead.deleted_at.is_(None),
        )
        .order_by(LeadAssignment.assigned_at.desc())
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


# --- Stale primary assignments for no-activity rotation ---
async def get_stale_assignments(db: AsyncSession, threshold: datetime, limit: int):
    stmt = (
        select(
            LeadAssignment.assignment_id,
            LeadAssignment.lead_id,
            LeadAssignment.agent_id,
            LeadAssignment.last_activity_at,
            Lead.source_id,
        )
        .join(Lead, Lead.lead_id == LeadAssignment.lead_id)
        .where(
            LeadAssignment.closed_at.is_(None),
            LeadAssignment.is_primary.is_(True),
            LeadAssignment.loop_guard.is_(False),
            or_(
                LeadAssignment.last_activity_at < threshold,
                LeadAssignment.last_activity_at.is_(None),
            ),
            Lead.status.notin_(TERMINAL_STATUSES),
            Lead.deleted_at.is_(None),
        )
        .order_by(LeadAssignment.assigned_at.asc())  # FIFO
        .limit(limit)
    )
    result = await db.execute(stmt)
    return result.mappings().all()
