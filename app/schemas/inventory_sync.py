"""
UnitTrack - Inventory Sync Schemas
"""

from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class InventorySyncRequest(BaseModel):
    """Limit the run to one warehouse, or preview without inserting."""
    warehouse_id: Optional[UUID] = None
    dry_run: bool = False


class CappedProductResponse(BaseModel):
    barcode: int
    requested: int
    applied: int


class WarehouseSyncSummaryResponse(BaseModel):
    warehouse_id: UUID
    warehouse_name: str
    external_location_id: int
    consumables_storage_id: int
    products_processed: int
    fetched: int
    existing: int
    to_insert: int
    inserted: int
    skipped_invalid: int
    over_target_existing: int
    capped_products: List[CappedProductResponse] = Field(default_factory=list)
    inserted_unit_ids: List[UUID] = Field(default_factory=list)
    error: Optional[Dict[str, Any]] = None


class InventorySyncResponse(BaseModel):
    success: bool = True
    warehouses: List[WarehouseSyncSummaryResponse]
    totals: Dict[str, int]
    meta: Dict[str, Any]
