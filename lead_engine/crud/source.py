# lead_engine/crud/source.py
from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from lead_engine.models import Source


async def get_source(db: AsyncSession, source_id: UUID) -> Optional[Source]:
    result = await db.execute(select(Source).where(Source.source_id == source_id))
    return result.scalar_one_or_none()


async def create_source(
    db: AsyncSession, name: str, is_active: bool = True, auto_distribution: bool = False
) -> Source:
    source = Source(name=name, is_active=is_active, auto_distribution=auto_distribution)
    db.add(source)
    await db.flush()
    return source
