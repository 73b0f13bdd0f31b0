"""
UnitTrack - Warehouse Transfer Models

Transfer headers and their per-unit detail rows.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import List, Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text, Enum as SQLEnum
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import BaseModel


class TransferType(str, Enum):
    """Internal moves stay inside one warehouse (cabinet changes only)."""
    INTERNAL = "internal"
    EXTERNAL = "external"


class TransferPriority(str, Enum):
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class ItemCondition(str, Enum):
    GOOD = "good"
    DAMAGED = "damaged"
    NEEDS_INSPECTION = "needs_inspection"


class WarehouseTransfer(BaseModel):
    """
    Movement of one or more units.
    
    States: internal transfers are created completed; external transfers go
    pending -> completed or pending -> cancelled. After completion only notes
    may change.
    """
    
    __tablename__ = "warehouse_transfers"
    
    transfer_number: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    transfer_type: Mapped[TransferType] = mapped_column(
        SQLEnum(TransferType, name="transfer_type", values_callable=lambda x: [e.value for e in x]),
        nullable=False,
    )
    source_warehouse_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("warehouses.id"),
        nullable=False,
        index=True,
    )
    destination_warehouse_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("warehouses.id"),
        nullable=False,
        index=True,
    )
    cabinet_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("cabinets.id", ondelete="SET NULL"),
        nullable=True,
    )
    initiated_by: Mapped[str] = mapped_column(String(255), nullable=False)
    total_items: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    priority: Mapped[TransferPriority] = mapped_column(
        SQLEnum(TransferPriority, name="transfer_priority", values_callable=lambda x: [e.value for e in x]),
        default=TransferPriority.NORMAL,
        nullable=False,
    )
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    
    # State
    is_completed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_pending: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_cancelled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    completed_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    remote_replicated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="Set once documents were posted to the remote inventory API",
    )
    
    details: Mapped[List["WarehouseTransferDetail"]] = relationship(
        "WarehouseTransferDetail",
        back_populates="transfer",
        cascade="all, delete-orphan",
        order_by="WarehouseTransferDetail.created_at",
    )
    
    @property
    def is_external(self) -> bool:
        return self.transfer_type == TransferType.EXTERNAL


class WarehouseTransferDetail(BaseModel):
    """One unit inside a transfer."""
    
    __tablename__ = "warehouse_transfer_details"
    
    transfer_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("warehouse_transfers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    product_stock_unit_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("product_stock_units.id"),
        nullable=False,
        index=True,
    )
    quantity_transferred: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    item_condition: Mapped[ItemCondition] = mapped_column(
        SQLEnum(ItemCondition, name="item_condition", values_callable=lambda x: [e.value for e in x]),
        default=ItemCondition.GOOD,
        nullable=False,
    )
    is_received: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    received_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    received_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    
    transfer: Mapped["WarehouseTransfer"] = relationship(
        "WarehouseTransfer",
        back_populates="details",
    )
