# lead_engine/services/settings_gate.py
import json
import logging
from datetime import datetime, time
from typing import Any, Dict, Optional, Tuple
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from lead_engine.core.config import Settings, get_settings
from lead_engine.crud.settings import get_setting, get_settings_many, upsert_setting

logger = logging.getLogger(__name__)

OFFICE_HOURS_KEYS = ("working_from_time", "working_to_time", "working_days")

# key -> (type, category, default); a None default falls back to the process config
KNOWN_SETTINGS: Dict[str, Tuple[str, str, Any]] = {
    "no_activity_rotation_enabled": ("boolean", "automation", False),
    "auto_distribution_enabled": ("boolean", "automation", False),
    "no_answer_rotation_enabled": ("boolean", "automation", True),
    "not_interested_rotation_enabled": ("boolean", "automation", True),
    "fresh_lead_demotion_enabled": ("boolean", "automation", True),
    "call_reminder_enabled": ("boolean", "automation", True),
    "meeting_reminder_enabled": ("boolean", "automation", True),
    "dnd_check_enabled": ("boolean", "automation", True),
    "daily_report_enabled": ("boolean", "automation", True),
    "no_activity_timeout_minutes": ("integer", "lead_assignment", None),
    "no_answer_max_age_days": ("integer", "lead_assignment", None),
    "not_interested_max_attempts": ("integer", "lead_assignment", None),
    "fresh_lead_max_assignments": ("integer", "lead_assignment", None),
    "queue_agent_id": ("string", "lead_assignment", ""),
    "fallback_admin_agent_id": ("string", "lead_assignment", ""),
    "working_from_time": ("string", "office_hours", None),
    "working_to_time": ("string", "office_hours", None),
    "working_days": ("string", "office_hours", None),
}
AGENT_ID_KEYS = ("queue_agent_id", "fallback_admin_agent_id")
SETTING_TYPES = ("string", "boolean", "integer", "float", "json")
BOOLEAN_WORDS = ("1", "true", "yes", "on", "0", "false", "no", "off")


def parse_value(raw: Optional[str], type_: str) -> Any:
    """Convert a stored setting string into its declared type."""
    if raw is None:
        return None
    if type_ == "boolean":
        return raw.strip().lower() in ("1", "true", "yes", "on")
    if type_ == "integer":
        return int(raw)
    if type_ == "float":
        return float(raw)
    if type_ == "json":
        return json.loads(raw)
    return raw


def _parse_clock(value: str) -> time:
    hours, minutes = value.strip().split(":")[:2]
    return time(int(hours), int(minutes))


def _parse_days(value: str) -> Tuple[int, ...]:
    return tuple(int(d) for d in value.split(",") if d.strip() != "")


class SettingsGate:
    """
    Runtime business switches for the engine.

    Values are read from the ``settings`` table on every call so that an admin
    toggle takes effect on the next job tick; when a key is missing the
    environment default from ``Settings`` (or the caller's default) applies.
    """

    def __init__(self, db: AsyncSession, config: Optional[Settings] = None):
        self.db = db
        self.config = config or get_settings()

    async def get(self, key: str, default: Any = None) -> Any:
        setting = await get_setting(self.db, key)
        if setting is None:
            return getattr(self.config, key, default) if default is None else default
        try:
            return parse_value(setting.value, setting.type)
        except (ValueError, TypeError):
            logger.warning("Setting %s has unparseable %s value %r, using default", key, setting.type, setting.value)
            return default

    async def get_bool(self, key: str, default: bool = False) -> bool:
        value = await self.get(key, default)
        if isinstance(value, str):
            return parse_value(value, "boolean")
        return bool(value)

    async def get_int(self, key: str, default: Optional[int] = None) -> int:
        value = await self.get(key, default)
        return int(value)

    async def get_office_hours(self) -> Dict[str, Any]:
        stored = await get_settings_many(self.db, OFFICE_HOURS_KEYS)
        raw = {key: stored[key].value if key in stored else getattr(self.config, key) for key in OFFICE_HOURS_KEYS}
        return {
            "from": _parse_clock(raw["working_from_time"]),
            "to": _parse_clock(raw["working_to_time"]),
            "days": _parse_days(raw["working_days"]),
        }

    async def is_within_office_hours(self, now: datetime) -> bool:
        """
        True when ``now`` (naive UTC) falls on a working day between the
        configured from/to times. Working days use 0 = Sunday ... 6 = Saturday.
        """
        hours = await self.get_office_hours()
        weekday = (now.weekday() + 1) % 7
        if weekday not in hours["days"]:
            return False
        current = now.time()
        return hours["from"] <= current <= hours["to"]

    # ---------------- admin ----------------
    async def get_automation_settings(self) -> Dict[str, Dict[str, Any]]:
        """Effective value of every known switch, grouped by category."""
        stored = await get_settings_many(self.db, KNOWN_SETTINGS)
        grouped: Dict[str, Dict[str, Any]] = {}
        for key, (type_, category, default) in KNOWN_SETTINGS.items():
            value = getattr(self.config, key) if default is None else default
            if key in stored:
                try:
                    value = parse_value(stored[key].value, stored[key].type)
                except (ValueError, TypeError):
                    logger.warning("Setting %s has unparseable value %r, showing default", key, stored[key].value)
            grouped.setdefault(category, {})[key] = value
        return grouped

    async def set(self, key: str, value: str, type_: Optional[str] = None) -> Any:
        """
        Validate and store a switch; it applies from the next job tick.
        Raises ValueError when the value does not parse as its type.
        """
        known = KNOWN_SETTINGS.get(key)
        if known is not None:
            if type_ is not None and type_ != known[0]:
                raise ValueError(f"Setting {key} is of type {known[0]}, not {type_}")
            type_ = known[0]
        type_ = type_ or "string"
        if type_ not in SETTING_TYPES:
            raise ValueError(f"Unknown setting type {type_}")

        try:
            if type_ == "boolean" and value.strip().lower() not in BOOLEAN_WORDS:
                raise ValueError("expected true or false")
            parsed = parse_value(value, type_)
            if key in AGENT_ID_KEYS and value:
                UUID(value)
            if key in ("working_from_time", "working_to_time"):
                _parse_clock(value)
            if key == "working_days":
                _parse_days(value)
        except (ValueError, TypeError) as e:
            raise ValueError(f"Invalid value for {key}: {value!r} ({e})") from e

        await upsert_setting(self.db, key, value, type_, known[1] if known else None)
        await self.db.commit()
        logger.info("Setting %s updated to %r", key, value)
        return parsed
