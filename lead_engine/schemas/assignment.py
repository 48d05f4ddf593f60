from typing import List, Optional, Literal
from pydantic import BaseModel, Field
from uuid import UUID
from datetime import datetime


# --- Result of every interactive assignment call ---
class AssignmentResult(BaseModel):
    success: bool
    lead_id: UUID
    agent_id: Optional[UUID] = None
    agent_name: Optional[str] = None
    agent_ids: List[UUID] = Field(default_factory=list)
    assignment_type: Optional[str] = None
    message: str
    error_kind: Optional[str] = None


# --- Requests ---
class RoundRobinAssignRequest(BaseModel):
    source_id: UUID
    actor_id: Optional[UUID] = None


class ManualAssignRequest(BaseModel):
    agent_id: UUID
    actor_id: Optional[UUID] = None


class MultiAssignRequest(BaseModel):
    agent_ids: List[UUID] = Field(..., min_length=1)
    actor_id: Optional[UUID] = None


class ReassignRequest(BaseModel):
    from_agent_id: UUID
    to_agent_id: UUID
    reason: str
    actor_id: Optional[UUID] = None


class AcceptRequest(BaseModel):
    agent_id: UUID


class RejectRequest(BaseModel):
    agent_id: UUID
    reason: Optional[str] = None


class ActivityRequest(BaseModel):
    agent_id: UUID
    activity_type: Literal["call", "email", "whatsapp", "viewing", "meeting", "note"] = "note"
    notes: Optional[str] = None


# --- Read models ---
class HistoryEntryOut(BaseModel):
    history_id: UUID
    lead_id: UUID
    from_agent_id: Optional[UUID]
    to_agent_id: UUID
    actor_id: Optional[UUID]
    assignment_type: str
    reason: Optional[str]
    changed_at: datetime

    model_config = {"from_attributes": True}


class AssignmentOut(BaseModel):
    assignment_id: UUID
    lead_id: UUID
    agent_id: UUID
    assignment_type: str
    acceptance_state: str
    is_primary: bool
    assigned_at: datetime
    last_activity_at: Optional[datetime]

    model_config = {"from_attributes": True}
