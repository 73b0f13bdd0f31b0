"""
UnitTrack - Warehouse Models

Warehouses, their cabinets, and the mapping of each warehouse onto the
remote inventory system (company/location id and storage ids).
"""

import uuid
from typing import List, Optional

from sqlalchemy import Boolean, ForeignKey, Integer, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import BaseModel


class Warehouse(BaseModel):
    """
    Physical stock location.
    
    A warehouse takes part in remote operations only when both the remote
    location (company) id and the consumables storage id are set and positive.
    """
    
    __tablename__ = "warehouses"
    
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    code: Mapped[Optional[str]] = mapped_column(String(50), nullable=True, unique=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    timezone: Mapped[str] = mapped_column(
        String(64),
        default="UTC",
        server_default="UTC",
        nullable=False,
        comment="IANA zone used for remote document dates",
    )
    
    # Remote inventory mapping
    external_location_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        comment="Remote company/location id",
    )
    external_consumables_storage_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    external_sales_storage_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    is_distribution_center: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
        comment="Central stock pool; no remote documents are created for it",
    )
    
    cabinets: Mapped[List["Cabinet"]] = relationship(
        "Cabinet",
        back_populates="warehouse",
        cascade="all, delete-orphan",
    )
    
    @property
    def is_remote_eligible(self) -> bool:
        return bool(
            self.external_location_id
            and self.external_location_id > 0
            and self.external_consumables_storage_id
            and self.external_consumables_storage_id > 0
        )


class Cabinet(BaseModel):
    """Sub-location inside a single warehouse."""
    
    __tablename__ = "cabinets"
    
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    warehouse_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("warehouses.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    
    warehouse: Mapped["Warehouse"] = relationship(
        "Warehouse",
        back_populates="cabinets",
    )
