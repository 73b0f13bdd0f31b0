"""
UnitTrack - Shrinkage Ledger Model

Append-only record of inventory losses. Rows are written by manual
write-offs and by transfer completion; they are never edited or removed.
"""

import uuid
from enum import Enum
from typing import Optional

from sqlalchemy import ForeignKey, Index, Integer, String, Text, event, text, Enum as SQLEnum
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import BaseModel


class ShrinkageSource(str, Enum):
    MANUAL = "manual"
    TRANSFER_MISSING = "transfer_missing"


class ShrinkageReason(str, Enum):
    CONSUMED = "consumed"
    DAMAGED = "damaged"
    OTHER = "other"


class ShrinkageEvent(BaseModel):
    """Immutable write-off entry with full provenance."""
    
    __tablename__ = "shrinkage_events"
    __table_args__ = (
        Index(
            "uq_shrinkage_events_unit_source_reason",
            "product_stock_unit_id",
            "source",
            "reason",
            unique=True,
            postgresql_where=text("product_stock_unit_id IS NOT NULL"),
            sqlite_where=text("product_stock_unit_id IS NOT NULL"),
        ),
    )
    
    source: Mapped[ShrinkageSource] = mapped_column(
        SQLEnum(ShrinkageSource, name="shrinkage_source", values_callable=lambda x: [e.value for e in x]),
        nullable=False,
        index=True,
    )
    reason: Mapped[ShrinkageReason] = mapped_column(
        SQLEnum(ShrinkageReason, name="shrinkage_reason", values_callable=lambda x: [e.value for e in x]),
        nullable=False,
    )
    quantity: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    
    # Product snapshot
    product_stock_unit_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("product_stock_units.id", ondelete="SET NULL"),
        nullable=True,
    )
    product_barcode: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    product_description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    
    # Provenance
    warehouse_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("warehouses.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    transfer_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("warehouse_transfers.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    transfer_number: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    source_warehouse_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), nullable=True)
    destination_warehouse_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), nullable=True)
    created_by_user_id: Mapped[str] = mapped_column(String(255), nullable=False)


class ShrinkageLedgerViolation(RuntimeError):
    """Raised when code tries to edit or remove a shrinkage event."""


@event.listens_for(ShrinkageEvent, "before_update")
def _refuse_update(mapper, connection, target):
    raise ShrinkageLedgerViolation(f"Shrinkage event {target.id} is append-only")


@event.listens_for(ShrinkageEvent, "before_delete")
def _refuse_delete(mapper, connection, target):
    raise ShrinkageLedgerViolation(f"Shrinkage event {target.id} is append-only")
