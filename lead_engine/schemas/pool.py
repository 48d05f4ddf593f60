from typing import List, Optional
from pydantic import BaseModel, Field
from uuid import UUID


class PoolMemberOut(BaseModel):
    agent_id: UUID
    full_name: str
    is_next_in_rotation: bool
    is_eligible: bool


class PoolOut(BaseModel):
    source_id: UUID
    members: List[PoolMemberOut]
    next_agent_id: Optional[UUID] = None


class AddMemberRequest(BaseModel):
    agent_id: UUID


class ReplacePoolRequest(BaseModel):
    agent_ids: List[UUID] = Field(default_factory=list)
