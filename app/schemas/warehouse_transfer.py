"""
UnitTrack - Warehouse Transfer Schemas

Request variants are tagged by ``transfer_type`` and validated here, so the
transfer service only ever sees well-formed input.
"""

from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from app.models.warehouse_transfer import ItemCondition, TransferPriority, TransferType


MAX_TRANSFER_DETAILS = 100


# ===========================================
# CREATE
# ===========================================

class TransferDetailInput(BaseModel):
    """One unit to move."""
    product_stock_unit_id: UUID
    quantity_transferred: int = Field(1, ge=1)
    item_condition: ItemCondition = ItemCondition.GOOD
    notes: Optional[str] = None


class TransferCreateBase(BaseModel):
    transfer_number: Optional[str] = Field(None, min_length=1, max_length=100)
    source_warehouse_id: UUID
    priority: TransferPriority = TransferPriority.NORMAL
    notes: Optional[str] = None
    details: List[TransferDetailInput] = Field(..., min_length=1, max_length=MAX_TRANSFER_DETAILS)
    
    @field_validator("details")
    @classmethod
    def units_are_unique(cls, details: List[TransferDetailInput]) -> List[TransferDetailInput]:
        seen = set()
        for detail in details:
            if detail.product_stock_unit_id in seen:
                raise ValueError(f"Unit {detail.product_stock_unit_id} is listed more than once")
            seen.add(detail.product_stock_unit_id)
        return details


class InternalTransferCreate(TransferCreateBase):
    """
    Cabinet move inside the source warehouse.
    
    Completed on creation. ``is_cabinet_to_warehouse`` takes units out of
    their cabinet instead of into ``cabinet_id``.
    """
    transfer_type: Literal["internal"] = "internal"
    cabinet_id: Optional[UUID] = None
    is_cabinet_to_warehouse: bool = False
    
    @model_validator(mode="after")
    def cabinet_required_for_cabinet_moves(self) -> "InternalTransferCreate":
        if not self.is_cabinet_to_warehouse and self.cabinet_id is None:
            raise ValueError("cabinet_id is required for internal transfers into a cabinet")
        return self
    
    @property
    def destination_warehouse_id(self) -> UUID:
        return self.source_warehouse_id


class ExternalTransferCreate(TransferCreateBase):
    """Warehouse-to-warehouse move, received item by item."""
    transfer_type: Literal["external"] = "external"
    destination_warehouse_id: UUID
    
    @model_validator(mode="after")
    def warehouses_differ(self) -> "ExternalTransferCreate":
        if self.source_warehouse_id == self.destination_warehouse_id:
            raise ValueError("Source and destination warehouses must differ for external transfers")
        return self


TransferCreate = Annotated[
    Union[InternalTransferCreate, ExternalTransferCreate],
    Field(discriminator="transfer_type"),
]


# ===========================================
# PATCHES
# ===========================================

class ReplicationTotal(BaseModel):
    """Caller-supplied totals that price one barcode for the remote system."""
    barcode: int
    total_quantity: float = Field(..., ge=0)
    total_cost: float = Field(..., ge=0)


class TransferStatusPatch(BaseModel):
    """
    Status update for a transfer.
    
    - is_completed=True: stamps completed_at/completed_by, clears is_pending,
      books shrinkage for unreceived units (external only)
    - is_cancelled=True: clears is_pending
    - notes: always allowed, even after completion
    - replicate_to_remote=False: skip remote replication for this completion
    """
    is_completed: Optional[bool] = None
    is_cancelled: Optional[bool] = None
    is_pending: Optional[bool] = None
    notes: Optional[str] = None
    replicate_to_remote: Optional[bool] = None
    replication_totals: List[ReplicationTotal] = Field(default_factory=list)
    
    @model_validator(mode="after")
    def flags_are_consistent(self) -> "TransferStatusPatch":
        if self.is_completed and self.is_cancelled:
            raise ValueError("A transfer cannot be completed and cancelled at the same time")
        if self.is_completed and self.is_pending:
            raise ValueError("A completed transfer cannot remain pending")
        return self
    
    @property
    def changes_state(self) -> bool:
        return any(
            flag is not None
            for flag in (self.is_completed, self.is_cancelled, self.is_pending)
        )


class TransferItemPatch(BaseModel):
    is_received: Optional[bool] = None
    item_condition: Optional[ItemCondition] = None
    notes: Optional[str] = None


class ReplicationRetryRequest(BaseModel):
    replication_totals: List[ReplicationTotal] = Field(..., min_length=1)


# ===========================================
# RESPONSES
# ===========================================

class TransferDetailResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    
    id: UUID
    transfer_id: UUID
    product_stock_unit_id: UUID
    quantity_transferred: int
    item_condition: ItemCondition
    is_received: bool
    received_by: Optional[str] = None
    received_at: Optional[datetime] = None
    notes: Optional[str] = None


class TransferResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    
    id: UUID
    transfer_number: str
    transfer_type: TransferType
    source_warehouse_id: UUID
    destination_warehouse_id: UUID
    cabinet_id: Optional[UUID] = None
    initiated_by: str
    total_items: int
    priority: TransferPriority
    notes: Optional[str] = None
    is_completed: bool
    is_pending: bool
    is_cancelled: bool
    completed_by: Optional[str] = None
    completed_at: Optional[datetime] = None
    remote_replicated_at: Optional[datetime] = None
    created_at: datetime
    details: List[TransferDetailResponse] = Field(default_factory=list)


class TransferStatusResponse(BaseModel):
    success: bool = True
    transfer: TransferResponse
    shrinkage_events_created: int = 0
    replication: Optional[Dict[str, Any]] = None
