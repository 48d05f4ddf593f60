from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List
from uuid import UUID
import logging
import traceback

from lead_engine.db.session import get_db
from lead_engine.schemas.assignment import (
    AcceptRequest,
    ActivityRequest,
    AssignmentOut,
    AssignmentResult,
    HistoryEntryOut,
    ManualAssignRequest,
    MultiAssignRequest,
    ReassignRequest,
    RejectRequest,
    RoundRobinAssignRequest,
)
from lead_engine.services.lead_assignment import LeadAssignmentManager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/leads", tags=["Lead Assignment"])

NOT_FOUND_KINDS = {"lead_not_found", "unknown_agent", "assignment_not_found", "source_not_found"}
RETRYABLE_KINDS = {"concurrent_modification", "transient_store_error"}


def get_manager(request: Request, db: AsyncSession = Depends(get_db)) -> LeadAssignmentManager:
    scheduler = getattr(request.app.state, "scheduler", None)
    notifier = scheduler.ctx.notifier if scheduler is not None else None
    return LeadAssignmentManager(db, notifier=notifier)


def _respond(result: AssignmentResult) -> JSONResponse:
    if result.success:
        status_code = 200
    elif result.error_kind in NOT_FOUND_KINDS:
        status_code = 404
    elif result.error_kind in RETRYABLE_KINDS:
        status_code = 503
    else:
        status_code = 409
    return JSONResponse(status_code=status_code, content=result.model_dump(mode="json"))


@router.post(
    "/{lead_id}/assign/round-robin",
    response_model=AssignmentResult,
    summary="Assign a lead through the source's round-robin ring",
)
async def assign_round_robin(
    lead_id: UUID,
    request: RoundRobinAssignRequest,
    manager: LeadAssignmentManager = Depends(get_manager),
):
    try:
        return _respond(await manager.assign_round_robin(lead_id, request.source_id, request.actor_id))
    except Exception as e:
        logger.error("Error in assign_round_robin: %s\n%s", e, traceback.format_exc())
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.post("/{lead_id}/assign/manual", response_model=AssignmentResult, summary="Assign a lead to a specific agent")
async def assign_manual(
    lead_id: UUID,
    request: ManualAssignRequest,
    manager: LeadAssignmentManager = Depends(get_manager),
):
    try:
        return _respond(await manager.assign_manual(lead_id, request.agent_id, request.actor_id))
    except Exception as e:
        logger.error("Error in assign_manual: %s\n%s", e, traceback.format_exc())
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.post(
    "/{lead_id}/assign/multiple",
    response_model=AssignmentResult,
    summary="Share a lead between several agents",
    description="Creates one assignment per agent; the first agent becomes the primary owner.",
)
async def assign_multiple(
    lead_id: UUID,
    request: MultiAssignRequest,
    manager: LeadAssignmentManager = Depends(get_manager),
):
    try:
        return _respond(await manager.assign_multiple(lead_id, request.agent_ids, request.actor_id))
    except Exception as e:
        logger.error("Error in assign_multiple: %s\n%s", e, traceback.format_exc())
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.post("/{lead_id}/reassign", response_model=AssignmentResult, summary="Move a lead from one agent to another")
async def reassign(
    lead_id: UUID,
    request: ReassignRequest,
    manager: LeadAssignmentManager = Depends(get_manager),
):
    try:
        return _respond(
            await manager.reassign(lead_id, request.from_agent_id, request.to_agent_id, request.actor_id, request.reason)
        )
    except Exception as e:
        logger.error("Error in reassign: %s\n%s", e, traceback.format_exc())
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.post("/{lead_id}/accept", response_model=AssignmentResult, summary="Agent accepts a pending assignment")
async def accept(
    lead_id: UUID,
    request: AcceptRequest,
    manager: LeadAssignmentManager = Depends(get_manager),
):
    try:
        return _respond(await manager.accept(lead_id, request.agent_id))
    except Exception as e:
        logger.error("Error in accept: %s\n%s", e, traceback.format_exc())
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.post(
    "/{lead_id}/reject",
    response_model=AssignmentResult,
    summary="Agent rejects a pending assignment",
    description="Closes the assignment. The lead is not re-assigned by this call.",
)
async def reject(
    lead_id: UUID,
    request: RejectRequest,
    manager: LeadAssignmentManager = Depends(get_manager),
):
    try:
        return _respond(await manager.reject(lead_id, request.agent_id, request.reason))
    except Exception as e:
        logger.error("Error in reject: %s\n%s", e, traceback.format_exc())
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.post("/{lead_id}/activity", response_model=AssignmentResult, summary="Record agent activity on a lead")
async def record_activity(
    lead_id: UUID,
    request: ActivityRequest,
    manager: LeadAssignmentManager = Depends(get_manager),
):
    try:
        return _respond(await manager.record_activity(lead_id, request.agent_id, request.activity_type, request.notes))
    except Exception as e:
        logger.error("Error in record_activity: %s\n%s", e, traceback.format_exc())
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.get("/{lead_id}/history", response_model=List[HistoryEntryOut], summary="Assignment history of a lead")
async def get_history(lead_id: UUID, manager: LeadAssignmentManager = Depends(get_manager)):
    try:
        return await manager.get_history(lead_id)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error("Error in get_history: %s\n%s", e, traceback.format_exc())
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.get(
    "/pending/{agent_id}",
    response_model=List[AssignmentOut],
    summary="Pending assignments waiting for an agent's answer",
)
async def get_pending(agent_id: UUID, manager: LeadAssignmentManager = Depends(get_manager)):
    try:
        return await manager.get_pending(agent_id)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error("Error in get_pending: %s\n%s", e, traceback.format_exc())
        raise HTTPException(status_code=500, detail="Internal Server Error")
