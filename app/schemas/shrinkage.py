"""
UnitTrack - Shrinkage Schemas
"""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.models.shrinkage import ShrinkageReason, ShrinkageSource


class ManualWriteOffRequest(BaseModel):
    """Write off units by hand. Reason 'other' needs notes."""
    product_stock_unit_ids: List[UUID] = Field(..., min_length=1, max_length=100)
    reason: ShrinkageReason
    notes: Optional[str] = Field(None, max_length=2000)
    warehouse_id: Optional[UUID] = None
    
    @field_validator("product_stock_unit_ids")
    @classmethod
    def ids_are_unique(cls, value: List[UUID]) -> List[UUID]:
        if len(set(value)) != len(value):
            raise ValueError("product_stock_unit_ids must not repeat")
        return value


class ShrinkageEventResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    
    id: UUID
    source: ShrinkageSource
    reason: ShrinkageReason
    quantity: int
    notes: Optional[str] = None
    product_stock_unit_id: Optional[UUID] = None
    product_barcode: Optional[int] = None
    product_description: Optional[str] = None
    warehouse_id: Optional[UUID] = None
    transfer_id: Optional[UUID] = None
    transfer_number: Optional[str] = None
    source_warehouse_id: Optional[UUID] = None
    destination_warehouse_id: Optional[UUID] = None
    created_by_user_id: str
    created_at: datetime


class ManualWriteOffResponse(BaseModel):
    success: bool = True
    events: List[ShrinkageEventResponse]
