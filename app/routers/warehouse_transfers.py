"""
UnitTrack - Warehouse Transfers Router

API endpoints for creating, receiving, completing and cancelling transfers.
"""

from uuid import UUID

from fastapi import APIRouter, Body, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.database import get_async_session
from app.dependencies import get_session_user, require_admin
from app.schemas.auth import SessionUser
from app.schemas.warehouse_transfer import (
    ReplicationRetryRequest,
    TransferCreate,
    TransferDetailResponse,
    TransferItemPatch,
    TransferResponse,
    TransferStatusPatch,
    TransferStatusResponse,
)
from app.services.warehouse_transfer_service import WarehouseTransferService


router = APIRouter()


def get_transfer_service(db: AsyncSession = Depends(get_async_session)) -> WarehouseTransferService:
    return WarehouseTransferService(
        db,
        replication_enabled=settings.enable_remote_replication,
    )


@router.post(
    "",
    response_model=TransferResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a transfer",
)
async def create_transfer(
    data: TransferCreate = Body(...),
    current_user: SessionUser = Depends(get_session_user),
    service: WarehouseTransferService = Depends(get_transfer_service),
):
    """
    Create an internal (cabinet) or external (warehouse-to-warehouse) transfer.
    
    Internal transfers are completed immediately.
    """
    transfer = await service.create_transfer(data, current_user)
    return TransferResponse.model_validate(transfer)


@router.get(
    "/{transfer_id}",
    response_model=TransferResponse,
    summary="Get transfer with details",
)
async def get_transfer(
    transfer_id: UUID,
    current_user: SessionUser = Depends(get_session_user),
    service: WarehouseTransferService = Depends(get_transfer_service),
):
    transfer = await service.get_transfer(transfer_id)
    return TransferResponse.model_validate(transfer)


@router.patch(
    "/{transfer_id}/status",
    response_model=TransferStatusResponse,
    summary="Complete, cancel or annotate a transfer",
)
async def update_transfer_status(
    transfer_id: UUID,
    patch: TransferStatusPatch,
    current_user: SessionUser = Depends(get_session_user),
    service: WarehouseTransferService = Depends(get_transfer_service),
):
    """
    Completion of an external transfer books unreceived units as shrinkage.
    
    The local completion is committed before replication runs; ``replication``
    reports ``rejected`` (fix the totals) or ``failed`` (retry) separately.
    """
    result = await service.update_transfer_status(transfer_id, patch, current_user)
    return TransferStatusResponse(
        success=True,
        transfer=TransferResponse.model_validate(result.transfer),
        shrinkage_events_created=result.shrinkage_events_created,
        replication=result.replication.to_dict() if result.replication else None,
    )


@router.patch(
    "/details/{detail_id}",
    response_model=TransferDetailResponse,
    summary="Receive or annotate a transfer item",
)
async def update_item_status(
    detail_id: UUID,
    patch: TransferItemPatch,
    current_user: SessionUser = Depends(get_session_user),
    service: WarehouseTransferService = Depends(get_transfer_service),
):
    detail = await service.update_item_status(detail_id, patch, current_user)
    return TransferDetailResponse.model_validate(detail)


@router.post(
    "/{transfer_id}/replicate",
    summary="Retry remote replication",
)
async def retry_replication(
    transfer_id: UUID,
    request: ReplicationRetryRequest,
    current_user: SessionUser = Depends(require_admin),
    service: WarehouseTransferService = Depends(get_transfer_service),
):
    result = await service.retry_replication(transfer_id, request.replication_totals)
    return {"success": result.succeeded, "replication": result.to_dict()}
