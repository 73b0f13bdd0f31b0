"""
UnitTrack - Product Stock Models

One row per physical unit, plus the usage history that records every
location change or write-off applied to a unit.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text, Enum as SQLEnum
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import BaseModel, utc_now


class MovementType(str, Enum):
    """Kind of movement recorded in usage history."""
    TRANSFER = "transfer"
    CHECKIN = "checkin"
    CHECKOUT = "checkout"
    OTHER = "other"


class UsageAction(str, Enum):
    """Action recorded in usage history."""
    TRANSFER = "transfer"
    CHECKIN = "checkin"
    CHECKOUT = "checkout"
    WRITE_OFF = "write_off"


class ProductStockUnit(BaseModel):
    """
    A single trackable inventory item.
    
    Units are never hard-deleted. Once is_deleted is set the unit drops out of
    every count and no longer moves. current_cabinet_id, when set, always
    points at a cabinet inside current_warehouse_id.
    """
    
    __tablename__ = "product_stock_units"
    __table_args__ = (
        Index("ix_product_stock_units_warehouse_barcode", "current_warehouse_id", "barcode"),
    )
    
    barcode: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    
    # Location
    current_warehouse_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("warehouses.id", ondelete="SET NULL"),
        nullable=True,
    )
    current_cabinet_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("cabinets.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    
    # State
    is_being_used: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_kit: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_empty: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    
    # Usage
    number_of_uses: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    first_used_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    last_used_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    last_used_by_employee_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        nullable=True,
    )
    
    @property
    def is_active_unit(self) -> bool:
        """Counted and movable."""
        return not self.is_deleted


class ProductStockUsageHistory(BaseModel):
    """Audit row written in the same transaction as every unit mutation."""
    
    __tablename__ = "product_stock_usage_history"
    
    product_stock_unit_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("product_stock_units.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    warehouse_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("warehouses.id", ondelete="SET NULL"),
        nullable=True,
    )
    warehouse_transfer_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("warehouse_transfers.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    movement_type: Mapped[MovementType] = mapped_column(
        SQLEnum(MovementType, name="movement_type", values_callable=lambda x: [e.value for e in x]),
        nullable=False,
    )
    action: Mapped[UsageAction] = mapped_column(
        SQLEnum(UsageAction, name="usage_action", values_callable=lambda x: [e.value for e in x]),
        nullable=False,
    )
    previous_warehouse_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), nullable=True)
    new_warehouse_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    usage_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        nullable=False,
    )
