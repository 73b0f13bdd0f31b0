"""
UnitTrack - Background Tasks Package

Celery background tasks.
"""

from app.tasks.celery_tasks import inventory_sync_task

__all__ = [
    "inventory_sync_task",
]
