from typing import Any, Dict, List, Optional, Literal
from pydantic import BaseModel, Field
from uuid import UUID
from datetime import datetime


class ItemError(BaseModel):
    item_id: str
    kind: str
    message: str


# --- Outcome of one job run ---
class JobResult(BaseModel):
    job_name: str
    status: Literal["completed", "skipped", "failed"] = "completed"
    message: Optional[str] = None
    processed: int = 0
    skipped: int = 0
    failed: int = 0
    errors: List[ItemError] = Field(default_factory=list)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    @property
    def duration_ms(self) -> Optional[int]:
        if self.started_at is None or self.finished_at is None:
            return None
        return int((self.finished_at - self.started_at).total_seconds() * 1000)

    def summary(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "message": self.message,
            "processed": self.processed,
            "skipped": self.skipped,
            "failed": self.failed,
            "errors": [e.model_dump() for e in self.errors[:10]],
            "duration_ms": self.duration_ms,
        }


class JobHealth(BaseModel):
    name: str
    schedule: str
    enabled: bool
    running: bool
    next_run: str
    next_run_at: Optional[datetime] = None
    last_run_at: Optional[datetime] = None
    last_status: Optional[str] = None


class SchedulerHealth(BaseModel):
    running: bool
    now: datetime
    jobs: List[JobHealth]


class JobToggleResponse(BaseModel):
    name: str
    enabled: bool


class ActivityLogOut(BaseModel):
    log_id: UUID
    event_type: str
    description: str
    subject_type: Optional[str]
    subject_id: Optional[str]
    causer_type: str
    causer_id: Optional[str]
    properties: Optional[Dict[str, Any]]
    created_at: datetime

    model_config = {"from_attributes": True}


# --- Runtime switches ---
class AutomationSettings(BaseModel):
    automation: Dict[str, Any] = Field(default_factory=dict)
    lead_assignment: Dict[str, Any] = Field(default_factory=dict)
    office_hours: Dict[str, Any] = Field(default_factory=dict)


class SettingUpdate(BaseModel):
    value: str = Field(..., description="Raw value, e.g. 'true', '45' or an agent id")
    type: Optional[Literal["string", "boolean", "integer", "float", "json"]] = None


class SettingOut(BaseModel):
    key: str
    value: Any
    message: str
