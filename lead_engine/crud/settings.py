# lead_engine/crud/settings.py
from typing import Dict, Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from lead_engine.models import Setting


async def get_setting(db: AsyncSession, key: str) -> Optional[Setting]:
    result = await db.execute(select(Setting).where(Setting.key == key))
    return result.scalar_one_or_none()


async def get_settings_many(db: AsyncSession, keys: Iterable[str]) -> Dict[str, Setting]:
    result = await db.execute(select(Setting).where(Setting.key.in_(list(keys))))
    return {s.key: s for s in result.scalars().all()}


async def upsert_setting(
    db: AsyncSession, key: str, value: str, type: str = "string", category: Optional[str] = None
) -> Setting:
    setting = await get_setting(db, key)
    if setting:
        setting.value = value
        setting.type = type
        if category is not None:
            setting.category = category
    else:
        setting = Setting(key=key, value=value, type=type, category=category)
        db.add(setting)
    await db.flush()
    return setting
