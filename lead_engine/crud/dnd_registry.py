# lead_engine/crud/dnd_registry.py
from typing import FrozenSet, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from lead_engine.models import DndEntry, normalize_phone


async def get_active_numbers(db: AsyncSession) -> FrozenSet[str]:
    result = await db.execute(select(DndEntry.phone_number).where(DndEntry.is_active.is_(True)))
    return frozenset(result.scalars().all())


async def add_number(db: AsyncSession, phone_number: str, reason: Optional[str] = None) -> DndEntry:
    entry = DndEntry(phone_number=normalize_phone(phone_number), reason=reason)
    db.add(entry)
    await db.flush()
    return entry
