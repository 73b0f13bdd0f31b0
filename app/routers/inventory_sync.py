"""
UnitTrack - Inventory Sync Router

Admin endpoint that reconciles local units with remote stock.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_async_session
from app.dependencies import require_admin
from app.schemas.auth import SessionUser
from app.schemas.inventory_sync import InventorySyncRequest, InventorySyncResponse
from app.services.inventory_sync_service import InventorySyncService


router = APIRouter()


@router.post(
    "/inventory-sync",
    response_model=InventorySyncResponse,
    summary="Sync local units with remote stock",
)
async def sync_inventory(
    request: InventorySyncRequest,
    current_user: SessionUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_session),
):
    """
    Insert placeholder units wherever the remote consumables storage reports
    more stock than exists locally.
    
    - warehouse_id: limit the run to one warehouse (errors are raised, not summarized)
    - dry_run: compute the plan without inserting
    """
    service = InventorySyncService(db)
    result = await service.sync(warehouse_id=request.warehouse_id, dry_run=request.dry_run)
    return InventorySyncResponse(success=True, **result.to_dict())
