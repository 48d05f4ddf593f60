from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from uuid import UUID
import logging
import traceback

from lead_engine.db.session import get_db
from lead_engine.schemas.pool import AddMemberRequest, PoolMemberOut, PoolOut, ReplacePoolRequest
from lead_engine.services.round_robin import RoundRobinSelector, pick_from_ring

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/sources", tags=["Agent Pools"])


def _pool_out(source_id: UUID, ring) -> PoolOut:
    next_agent = pick_from_ring(ring)
    return PoolOut(
        source_id=source_id,
        members=[
            PoolMemberOut(
                agent_id=agent.agent_id,
                full_name=agent.full_name,
                is_next_in_rotation=membership.is_next_in_rotation,
                is_eligible=agent.is_eligible,
            )
            for membership, agent in ring
        ],
        next_agent_id=next_agent.agent_id if next_agent else None,
    )


@router.get("/{source_id}/pool", response_model=PoolOut, summary="Pool members of a source in ring order")
async def get_pool(source_id: UUID, db: AsyncSession = Depends(get_db)):
    try:
        ring = await RoundRobinSelector(db).get_pool(source_id)
        return _pool_out(source_id, ring)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error("Error in get_pool: %s\n%s", e, traceback.format_exc())
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.post("/{source_id}/pool", response_model=PoolOut, status_code=201, summary="Add an agent to a source pool")
async def add_member(source_id: UUID, request: AddMemberRequest, db: AsyncSession = Depends(get_db)):
    selector = RoundRobinSelector(db)
    try:
        await selector.add_member(source_id, request.agent_id)
        return _pool_out(source_id, await selector.get_pool(source_id))
    except ValueError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error("Error in add_member: %s\n%s", e, traceback.format_exc())
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.delete("/{source_id}/pool/{agent_id}", response_model=PoolOut, summary="Remove an agent from a source pool")
async def remove_member(source_id: UUID, agent_id: UUID, db: AsyncSession = Depends(get_db)):
    selector = RoundRobinSelector(db)
    try:
        await selector.remove_member(source_id, agent_id)
        return _pool_out(source_id, await selector.get_pool(source_id))
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error("Error in remove_member: %s\n%s", e, traceback.format_exc())
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.put("/{source_id}/pool", response_model=PoolOut, summary="Replace the whole pool of a source")
async def replace_pool(source_id: UUID, request: ReplacePoolRequest, db: AsyncSession = Depends(get_db)):
    try:
        ring = await RoundRobinSelector(db).replace_pool(source_id, request.agent_ids)
        return _pool_out(source_id, ring)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error("Error in replace_pool: %s\n%s", e, traceback.format_exc())
        raise HTTPException(status_code=500, detail="Internal Server Error")
