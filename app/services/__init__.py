"""
UnitTrack - Services Package

Business logic services.
"""

from app.services.remote_inventory_client import RemoteInventoryClient
from app.services.product_stock_service import ProductStockService
from app.services.shrinkage_service import ShrinkageService
from app.services.transfer_replication_service import (
    ReplicationResult,
    ReplicationStatus,
    TransferReplicationService,
)
from app.services.warehouse_transfer_service import WarehouseTransferService
from app.services.inventory_sync_service import InventorySyncService

__all__ = [
    "RemoteInventoryClient",
    "ProductStockService",
    "ShrinkageService",
    "TransferReplicationService",
    "ReplicationResult",
    "ReplicationStatus",
    "WarehouseTransferService",
    "InventorySyncService",
]
