"""
UnitTrack - Shrinkage Service

Append-only shrinkage ledger. Two producers write to it:
- transfer completion, one transfer_missing event per unreceived unit
  (inside the completion transaction, see WarehouseTransferService)
- manual write-offs by admins and managers
"""

import logging
import uuid
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.product_stock import ProductStockUnit
from app.models.shrinkage import ShrinkageEvent, ShrinkageReason, ShrinkageSource
from app.models.warehouse_transfer import WarehouseTransfer, WarehouseTransferDetail
from app.schemas.auth import SessionUser
from app.schemas.shrinkage import ManualWriteOffRequest
from app.services.product_stock_service import ProductStockService
from app.utils.error_handling import (
    BadRequestException,
    ConflictException,
    ErrorCode,
    NotFoundException,
    classify_integrity_error,
)

logger = logging.getLogger(__name__)


class ShrinkageService:
    """Service for recording inventory losses."""
    
    def __init__(self, db: AsyncSession):
        self.db = db
        self.stock = ProductStockService(db)
    
    def record_transfer_shortfall(
        self,
        transfer: WarehouseTransfer,
        detail: WarehouseTransferDetail,
        unit: ProductStockUnit,
        user_id: str,
    ) -> ShrinkageEvent:
        """
        Book one unreceived unit as missing and soft-delete it.
        
        Adds to the session only; the caller commits together with the
        completion flag.
        """
        event = ShrinkageEvent(
            id=uuid.uuid4(),
            source=ShrinkageSource.TRANSFER_MISSING,
            reason=ShrinkageReason.OTHER,
            quantity=detail.quantity_transferred,
            notes=f"Missing when completing transfer {transfer.transfer_number}",
            product_stock_unit_id=unit.id,
            product_barcode=unit.barcode,
            product_description=unit.description,
            warehouse_id=transfer.destination_warehouse_id,
            transfer_id=transfer.id,
            transfer_number=transfer.transfer_number,
            source_warehouse_id=transfer.source_warehouse_id,
            destination_warehouse_id=transfer.destination_warehouse_id,
            created_by_user_id=user_id,
        )
        self.db.add(event)
        self.stock.write_off(
            unit,
            user_id=user_id,
            warehouse_transfer_id=transfer.id,
            notes=event.notes,
        )
        return event
    
    async def record_manual_write_off(
        self,
        request: ManualWriteOffRequest,
        actor: SessionUser,
    ) -> List[ShrinkageEvent]:
        """
        Write off units by hand.
        
        'consumed' marks units empty; 'damaged' and 'other' soft-delete them.
        """
        notes = request.notes.strip() if request.notes else None
        if request.reason == ShrinkageReason.OTHER and not notes:
            raise BadRequestException(
                "Notes are required when the write-off reason is 'other'",
                field="notes",
                code=ErrorCode.MISSING_FIELD,
            )
        
        unit_ids = request.product_stock_unit_ids
        units = await self.stock.get_units(unit_ids, for_update=True)
        missing = [str(unit_id) for unit_id in unit_ids if unit_id not in units]
        if missing:
            raise NotFoundException(
                resource_type="ProductStockUnit",
                message=f"Product stock units not found: {', '.join(missing)}",
            )
        
        unavailable = [
            str(unit_id) for unit_id in unit_ids
            if units[unit_id].is_deleted or units[unit_id].is_empty
        ]
        if unavailable:
            raise ConflictException(
                "Units have already been written off",
                resource_type="ProductStockUnit",
                details={"unit_ids": unavailable},
            )
        
        duplicates = await self.db.execute(
            select(ShrinkageEvent.product_stock_unit_id)
            .where(ShrinkageEvent.product_stock_unit_id.in_(unit_ids))
            .where(ShrinkageEvent.source == ShrinkageSource.MANUAL)
            .where(ShrinkageEvent.reason == request.reason)
        )
        duplicate_ids = [str(unit_id) for unit_id in duplicates.scalars().all()]
        if duplicate_ids:
            raise ConflictException(
                "A write-off with this reason already exists for these units",
                resource_type="ShrinkageEvent",
                code=ErrorCode.DUPLICATE_ENTRY,
                details={"unit_ids": duplicate_ids},
            )
        
        events: List[ShrinkageEvent] = []
        for unit_id in unit_ids:
            unit = units[unit_id]
            event = ShrinkageEvent(
                id=uuid.uuid4(),
                source=ShrinkageSource.MANUAL,
                reason=request.reason,
                quantity=1,
                notes=notes,
                product_stock_unit_id=unit.id,
                product_barcode=unit.barcode,
                product_description=unit.description,
                warehouse_id=request.warehouse_id or unit.current_warehouse_id,
                created_by_user_id=actor.user_id,
            )
            self.db.add(event)
            self.stock.write_off(
                unit,
                user_id=actor.user_id,
                mark_empty=request.reason == ShrinkageReason.CONSUMED,
                notes=notes,
            )
            events.append(event)
        
        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            raise classify_integrity_error(e)
        
        logger.info(
            f"Manual write-off by {actor.user_id}: {len(events)} units, reason={request.reason.value}"
        )
        return events
    
    async def list_events(
        self,
        warehouse_id: Optional[uuid.UUID] = None,
        transfer_id: Optional[uuid.UUID] = None,
        source: Optional[ShrinkageSource] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[ShrinkageEvent]:
        query = select(ShrinkageEvent)
        if warehouse_id:
            query = query.where(ShrinkageEvent.warehouse_id == warehouse_id)
        if transfer_id:
            query = query.where(ShrinkageEvent.transfer_id == transfer_id)
        if source:
            query = query.where(ShrinkageEvent.source == source)
        query = query.order_by(ShrinkageEvent.created_at.desc()).offset(skip).limit(limit)
        
        result = await self.db.execute(query)
        return list(result.scalars().all())
