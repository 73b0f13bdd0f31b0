"""
UnitTrack - Celery Tasks

Background entry point for the inventory sync. Nothing is scheduled here;
operators trigger runs from their own scheduler.
"""

import asyncio
import logging
from typing import Any, Dict, Optional
from uuid import UUID

from celery import shared_task

from app.database import async_session_factory

logger = logging.getLogger(__name__)


def run_async(coro):
    """Helper to run async functions in Celery tasks."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


# ===========================================
# INVENTORY SYNC
# ===========================================

@shared_task(name='app.tasks.celery_tasks.inventory_sync_task')
def inventory_sync_task(warehouse_id: Optional[str] = None, dry_run: bool = False) -> Dict[str, Any]:
    """Reconcile local units with remote stock for one or all mapped warehouses."""
    return run_async(_inventory_sync(warehouse_id, dry_run))


async def _inventory_sync(warehouse_id: Optional[str], dry_run: bool) -> Dict[str, Any]:
    """Async implementation of the inventory sync."""
    from app.services.inventory_sync_service import InventorySyncService
    
    async with async_session_factory() as db:
        service = InventorySyncService(db)
        result = await service.sync(
            warehouse_id=UUID(warehouse_id) if warehouse_id else None,
            dry_run=dry_run,
        )
    
    totals = result.totals
    logger.info(
        f"Inventory sync task finished: warehouses={totals['warehouses']} "
        f"inserted={totals['inserted']} failed={totals['failed_warehouses']} dry_run={dry_run}"
    )
    return result.to_dict()
