"""
UnitTrack - Product Stock Service

Read and write helpers for individual stock units. Every location change or
write-off goes through here so the matching usage-history row is added in the
same session (and therefore the same transaction) as the unit update.
Methods flush but never commit; the calling service owns the transaction.
"""

import logging
import uuid
from typing import Any, Dict, Iterable, List, Optional, Sequence

from sqlalchemy import func, insert, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.product_stock import (
    MovementType,
    ProductStockUnit,
    ProductStockUsageHistory,
    UsageAction,
)
from app.utils.error_handling import ConflictException, NotFoundException

logger = logging.getLogger(__name__)


class ProductStockService:
    """Service for the per-unit stock ledger."""
    
    def __init__(self, db: AsyncSession):
        self.db = db
    
    # ===========================================
    # QUERIES
    # ===========================================
    
    async def count_active_by_barcode(
        self,
        warehouse_id: uuid.UUID,
        barcodes: Iterable[int],
    ) -> Dict[int, int]:
        """Non-deleted unit counts per barcode for one warehouse, in one grouped query."""
        barcode_list = list(barcodes)
        if not barcode_list:
            return {}
        
        result = await self.db.execute(
            select(ProductStockUnit.barcode, func.count(ProductStockUnit.id))
            .where(ProductStockUnit.current_warehouse_id == warehouse_id)
            .where(ProductStockUnit.is_deleted.is_(False))
            .where(ProductStockUnit.barcode.in_(barcode_list))
            .group_by(ProductStockUnit.barcode)
        )
        return {barcode: count for barcode, count in result.all()}
    
    async def get_units(
        self,
        unit_ids: Sequence[uuid.UUID],
        for_update: bool = False,
    ) -> Dict[uuid.UUID, ProductStockUnit]:
        if not unit_ids:
            return {}
        query = select(ProductStockUnit).where(ProductStockUnit.id.in_(list(unit_ids)))
        if for_update:
            query = query.with_for_update()
        result = await self.db.execute(query)
        return {unit.id: unit for unit in result.scalars().all()}
    
    async def get_movable_units(
        self,
        unit_ids: Sequence[uuid.UUID],
    ) -> List[ProductStockUnit]:
        """
        Load and lock units that are about to change location.
        
        Raises NotFoundException for unknown ids and ConflictException for
        units that are already written off.
        """
        units = await self.get_units(unit_ids, for_update=True)
        missing = [str(unit_id) for unit_id in unit_ids if unit_id not in units]
        if missing:
            raise NotFoundException(
                resource_type="ProductStockUnit",
                message=f"Product stock units not found: {', '.join(missing)}",
            )
        deleted = [str(unit_id) for unit_id in unit_ids if units[unit_id].is_deleted]
        if deleted:
            raise ConflictException(
                "Deleted product stock units cannot be moved",
                resource_type="ProductStockUnit",
                details={"unit_ids": deleted},
            )
        return [units[unit_id] for unit_id in unit_ids]
    
    # ===========================================
    # WRITES
    # ===========================================
    
    async def insert_units(
        self,
        rows: List[Dict[str, Any]],
        chunk_size: int,
    ) -> List[uuid.UUID]:
        """Bulk insert unit rows, ``chunk_size`` rows per statement. Returns new ids."""
        inserted: List[uuid.UUID] = []
        for start in range(0, len(rows), chunk_size):
            chunk = rows[start:start + chunk_size]
            result = await self.db.execute(
                insert(ProductStockUnit).returning(ProductStockUnit.id),
                chunk,
            )
            inserted.extend(result.scalars().all())
        return inserted
    
    def record_history(
        self,
        unit: ProductStockUnit,
        user_id: Optional[str],
        movement_type: MovementType,
        action: UsageAction,
        previous_warehouse_id: Optional[uuid.UUID] = None,
        new_warehouse_id: Optional[uuid.UUID] = None,
        warehouse_transfer_id: Optional[uuid.UUID] = None,
        notes: Optional[str] = None,
    ) -> ProductStockUsageHistory:
        entry = ProductStockUsageHistory(
            id=uuid.uuid4(),
            product_stock_unit_id=unit.id,
            user_id=user_id,
            warehouse_id=new_warehouse_id or unit.current_warehouse_id,
            warehouse_transfer_id=warehouse_transfer_id,
            movement_type=movement_type,
            action=action,
            previous_warehouse_id=previous_warehouse_id,
            new_warehouse_id=new_warehouse_id,
            notes=notes,
        )
        self.db.add(entry)
        return entry
    
    def relocate(
        self,
        unit: ProductStockUnit,
        warehouse_id: uuid.UUID,
        cabinet_id: Optional[uuid.UUID],
        user_id: Optional[str],
        movement_type: MovementType,
        action: UsageAction,
        warehouse_transfer_id: Optional[uuid.UUID] = None,
        notes: Optional[str] = None,
    ) -> ProductStockUsageHistory:
        """Move a unit and append its history row."""
        if unit.is_deleted:
            raise ConflictException(
                f"Product stock unit {unit.id} is deleted and cannot be moved",
                resource_type="ProductStockUnit",
            )
        previous_warehouse_id = unit.current_warehouse_id
        unit.current_warehouse_id = warehouse_id
        unit.current_cabinet_id = cabinet_id
        return self.record_history(
            unit,
            user_id=user_id,
            movement_type=movement_type,
            action=action,
            previous_warehouse_id=previous_warehouse_id,
            new_warehouse_id=warehouse_id,
            warehouse_transfer_id=warehouse_transfer_id,
            notes=notes,
        )
    
    def write_off(
        self,
        unit: ProductStockUnit,
        user_id: Optional[str],
        mark_empty: bool = False,
        warehouse_transfer_id: Optional[uuid.UUID] = None,
        notes: Optional[str] = None,
    ) -> ProductStockUsageHistory:
        """
        Take a unit out of circulation.
        
        ``mark_empty`` keeps the unit on record as consumed; otherwise the unit
        is soft-deleted. Either way it stops being in use.
        """
        if mark_empty:
            unit.is_empty = True
        else:
            unit.is_deleted = True
        unit.is_being_used = False
        return self.record_history(
            unit,
            user_id=user_id,
            movement_type=MovementType.OTHER,
            action=UsageAction.WRITE_OFF,
            previous_warehouse_id=unit.current_warehouse_id,
            warehouse_transfer_id=warehouse_transfer_id,
            notes=notes,
        )
