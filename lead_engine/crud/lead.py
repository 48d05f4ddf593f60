# lead_engine/crud/lead.py
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select, and_, or_
from sqlalchemy.ext.asyncio import AsyncSession

from lead_engine.db.base_class import utcnow
from lead_engine.models import Lead, Source, TERMINAL_STATUSES


# --- Fetch Lead by ID (soft-deleted leads are invisible) ---
async def get_lead_by_id(db: AsyncSession, lead_id: UUID, for_update: bool = False) -> Optional[Lead]:
    stmt = (
        select(Lead)
        .where(Lead.lead_id == lead_id, Lead.deleted_at.is_(None))
        .execution_options(populate_existing=True)
    )
    if for_update:
        stmt = stmt.with_for_update()
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


# --- Insert Lead ---
async def create_lead(
    db: AsyncSession,
    first_name: str,
    phone: str,
    source_id: Optional[UUID] = None,
    last_name: str = "",
    email: Optional[str] = None,
    status: str = "new",
    agent_id: Optional[UUID] = None,
    created_at: Optional[datetime] = None,
) -> Lead:
    now = created_at or utcnow()
    lead = Lead(
        first_name=first_name,
        last_name=last_name,
        phone=phone,
        email=email,
        source_id=source_id,
        status=status,
        agent_id=agent_id,
        created_at=now,
        updated_at=now,
    )
    db.add(lead)
    await db.flush()
    return lead


# --- Candidate queries for the reclamation jobs (rows, oldest first) ---
async def get_no_answer_candidates(db: AsyncSession, created_after: datetime, limit: int):
    stmt = (
        select(Lead.lead_id, Lead.agent_id, Lead.assignment_count, Lead.no_answer_count)
        .where(
            Lead.status == "no_answer",
            Lead.created_at >= created_after,
            Lead.deleted_at.is_(None),
        )
        .order_by(Lead.created_at.asc())
        .limit(limit)
    )
    result = await db.execute(stmt)
    return result.mappings().all()


async def get_not_interested_candidates(db: AsyncSession, max_attempts: int, limit: int):
    stmt = (
        select(Lead.lead_id, Lead.agent_id, Lead.assignment_count)
        .where(
            Lead.status == "not_interested",
            Lead.assignment_count < max_attempts,
            Lead.deleted_at.is_(None),
        )
        .order_by(Lead.created_at.asc())
        .limit(limit)
    )
    result = await db.execute(stmt)
    return result.mappings().all()


async def get_fresh_demotion_candidates(db: AsyncSession, min_assignments: int, limit: int):
    stmt = (
        select(Lead.lead_id, Lead.agent_id, Lead.assignment_count)
        .where(
            Lead.is_fresh.is_(True),
            Lead.assignment_count >= min_assignments,
            Lead.deleted_at.is_(None),
        )
        .order_by(Lead.created_at.asc())
        .limit(limit)
    )
    result = await db.execute(stmt)
    return result.mappings().all()


async def get_queued_leads(db: AsyncSession, source_id: UUID, queue_agent_id: UUID, limit: int):
    """
    Leads of a source waiting for auto-distribution: parked on the queue agent,
    or left without an owner (e.g. after the owner rejected them).
    """
    stmt = (
        select(Lead.lead_id, Lead.source_id, Lead.agent_id)
        .where(
            Lead.source_id == source_id,
            or_(Lead.agent_id == queue_agent_id, Lead.agent_id.is_(None)),
            Lead.status.notin_(TERMINAL_STATUSES),
            Lead.deleted_at.is_(None),
        )
        .order_by(Lead.created_at.asc())
        .limit(limit)
    )
    result = await db.execute(stmt)
    return result.mappings().all()


async def get_auto_distribution_sources(db: AsyncSession) -> List[UUID]:
    result = await db.execute(
        select(Source.source_id)
        .where(and_(Source.is_active.is_(True), Source.auto_distribution.is_(True)))
        .order_by(Source.name.asc())
    )
    return list(result.scalars().all())


# --- Leads not yet marked do-not-call, keyset-paged by id ---
async def get_callable_leads(db: AsyncSession, after_id: Optional[UUID], limit: int):
    stmt = select(Lead.lead_id, Lead.phone, Lead.agent_id).where(
        Lead.do_not_call.is_(False),
        Lead.deleted_at.is_(None),
    )
    if after_id is not None:
        stmt = stmt.where(Lead.lead_id > after_id)
    result = await db.execute(stmt.order_by(Lead.lead_id.asc()).limit(limit))
    return result.mappings().all()
