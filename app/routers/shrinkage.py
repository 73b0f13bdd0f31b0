"""
UnitTrack - Shrinkage Router

Manual write-offs and read access to the shrinkage ledger.
"""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_async_session
from app.dependencies import require_admin_or_manager
from app.models.shrinkage import ShrinkageSource
from app.schemas.auth import SessionUser
from app.schemas.shrinkage import (
    ManualWriteOffRequest,
    ManualWriteOffResponse,
    ShrinkageEventResponse,
)
from app.services.shrinkage_service import ShrinkageService


router = APIRouter()


@router.post(
    "/writeoffs",
    response_model=ManualWriteOffResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Write off units",
)
async def create_write_off(
    request: ManualWriteOffRequest,
    current_user: SessionUser = Depends(require_admin_or_manager),
    db: AsyncSession = Depends(get_async_session),
):
    """
    Record a manual write-off.
    
    - consumed: unit is kept as empty
    - damaged / other: unit is soft-deleted (other requires notes)
    """
    service = ShrinkageService(db)
    events = await service.record_manual_write_off(request, current_user)
    return ManualWriteOffResponse(
        events=[ShrinkageEventResponse.model_validate(event) for event in events],
    )


@router.get(
    "/events",
    response_model=List[ShrinkageEventResponse],
    summary="List shrinkage events",
)
async def list_events(
    warehouse_id: Optional[UUID] = Query(None),
    transfer_id: Optional[UUID] = Query(None),
    source: Optional[ShrinkageSource] = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    current_user: SessionUser = Depends(require_admin_or_manager),
    db: AsyncSession = Depends(get_async_session),
):
    service = ShrinkageService(db)
    events = await service.list_events(
        warehouse_id=warehouse_id,
        transfer_id=transfer_id,
        source=source,
        skip=skip,
        limit=limit,
    )
    return [ShrinkageEventResponse.model_validate(event) for event in events]
