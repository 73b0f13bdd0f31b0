"""
UnitTrack - SQLAlchemy Models Package

This package contains all database models for the application.
"""

from app.models.base import BaseModel, TimestampMixin
from app.models.warehouse import Warehouse, Cabinet
from app.models.product_stock import (
    ProductStockUnit,
    ProductStockUsageHistory,
    MovementType,
    UsageAction,
)
from app.models.warehouse_transfer import (
    WarehouseTransfer,
    WarehouseTransferDetail,
    TransferType,
    TransferPriority,
    ItemCondition,
)
from app.models.shrinkage import (
    ShrinkageEvent,
    ShrinkageSource,
    ShrinkageReason,
    ShrinkageLedgerViolation,
)

__all__ = [
    "BaseModel",
    "TimestampMixin",
    "Warehouse",
    "Cabinet",
    "ProductStockUnit",
    "ProductStockUsageHistory",
    "MovementType",
    "UsageAction",
    "WarehouseTransfer",
    "WarehouseTransferDetail",
    "TransferType",
    "TransferPriority",
    "ItemCondition",
    "ShrinkageEvent",
    "ShrinkageSource",
    "ShrinkageReason",
    "ShrinkageLedgerViolation",
]
