"""
UnitTrack - Routers Package

FastAPI route handlers.

Routers:
- inventory_sync: Remote stock reconciliation (admin)
- warehouse_transfers: Internal and external transfers
- shrinkage: Manual write-offs and the shrinkage ledger
"""

from app.routers import (
    inventory_sync,
    warehouse_transfers,
    shrinkage,
)

__all__ = [
    "inventory_sync",
    "warehouse_transfers",
    "shrinkage",
]
