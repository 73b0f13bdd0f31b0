"""
UnitTrack - Inventory Sync Service

Reconciles locally tracked units against the stock the remote inventory API
reports for each warehouse's consumables storage.

For every eligible warehouse:
1. Page through remote goods sequentially (100 per page) until a short page.
2. Resolve a canonical barcode per good and read its target count.
3. Compare against non-deleted local units per barcode.
4. Insert placeholder units for the shortfall, capped per product.

Local units beyond the remote target are only counted. Each barcode's
shortfall is inserted in chunks and committed before the next barcode, and
warehouses run one after another, so a failure leaves earlier work intact.
"""

import logging
import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.warehouse import Warehouse
from app.schemas.remote_inventory import RemoteGood
from app.services.product_stock_service import ProductStockService
from app.services.remote_inventory_client import GOODS_PAGE_SIZE, RemoteInventoryClient
from app.utils.error_handling import (
    BadRequestException,
    ConfigurationException,
    ErrorCode,
    NotFoundException,
    RemoteInventoryError,
)

logger = logging.getLogger(__name__)


INSERT_CHUNK_SIZE = 500
MAX_INSERT_PER_PRODUCT = 2000
INT32_MAX = 2_147_483_647

_LEADING_INTEGER = re.compile(r"^[+-]?\d+")


# ===========================================
# BARCODE / TARGET RESOLUTION
# ===========================================

def _parse_leading_int(value: Any) -> Optional[int]:
    match = _LEADING_INTEGER.match(str(value).strip())
    return int(match.group(0)) if match else None


def _in_int32_range(value: Optional[int]) -> bool:
    return value is not None and 0 <= value <= INT32_MAX


def resolve_barcode(good: RemoteGood) -> Optional[int]:
    """
    Canonical integer barcode for a remote good.
    
    The explicit barcode wins when it parses into [0, INT32_MAX]; otherwise the
    remote good id is used if it fits; otherwise the good is unusable.
    """
    if good.barcode is not None and good.barcode.strip():
        parsed = _parse_leading_int(good.barcode)
        if _in_int32_range(parsed):
            return parsed
    
    if _in_int32_range(good.good_id):
        return good.good_id
    return None


def extract_target_count(good: RemoteGood, storage_id: int) -> int:
    """Amount held in ``storage_id``; 0 when absent, negative or non-numeric."""
    for entry in good.actual_amounts:
        if entry.storage_id != storage_id:
            continue
        if entry.amount is None or isinstance(entry.amount, bool):
            return 0
        try:
            amount = int(float(entry.amount))
        except (TypeError, ValueError, OverflowError):
            return 0
        return amount if amount > 0 else 0
    return 0


# ===========================================
# RESULT TYPES
# ===========================================

@dataclass
class CappedProduct:
    barcode: int
    requested: int
    applied: int
    
    def to_dict(self) -> Dict[str, Any]:
        return {"barcode": self.barcode, "requested": self.requested, "applied": self.applied}


@dataclass
class BarcodeTarget:
    """Remote stock aggregated for one barcode."""
    target: int = 0
    description: Optional[str] = None
    products: int = 0


@dataclass
class WarehouseSyncSummary:
    """Outcome of one warehouse pass."""
    warehouse_id: uuid.UUID
    warehouse_name: str
    external_location_id: int
    consumables_storage_id: int
    products_processed: int = 0
    fetched: int = 0
    existing: int = 0
    to_insert: int = 0
    inserted: int = 0
    skipped_invalid: int = 0
    over_target_existing: int = 0
    capped_products: List[CappedProduct] = field(default_factory=list)
    inserted_unit_ids: List[uuid.UUID] = field(default_factory=list)
    error: Optional[Dict[str, Any]] = None
    
    @property
    def failed(self) -> bool:
        return self.error is not None
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "warehouse_id": str(self.warehouse_id),
            "warehouse_name": self.warehouse_name,
            "external_location_id": self.external_location_id,
            "consumables_storage_id": self.consumables_storage_id,
            "products_processed": self.products_processed,
            "fetched": self.fetched,
            "existing": self.existing,
            "to_insert": self.to_insert,
            "inserted": self.inserted,
            "skipped_invalid": self.skipped_invalid,
            "over_target_existing": self.over_target_existing,
            "capped_products": [capped.to_dict() for capped in self.capped_products],
            "inserted_unit_ids": [str(unit_id) for unit_id in self.inserted_unit_ids],
            "error": self.error,
        }


@dataclass
class InventorySyncResult:
    warehouses: List[WarehouseSyncSummary]
    dry_run: bool
    fetched_at: datetime
    
    @property
    def totals(self) -> Dict[str, int]:
        totals = {
            "warehouses": len(self.warehouses),
            "failed_warehouses": sum(1 for summary in self.warehouses if summary.failed),
            "products_processed": 0,
            "fetched": 0,
            "existing": 0,
            "to_insert": 0,
            "inserted": 0,
            "skipped_invalid": 0,
            "over_target_existing": 0,
            "capped_products": 0,
        }
        for summary in self.warehouses:
            totals["products_processed"] += summary.products_processed
            totals["fetched"] += summary.fetched
            totals["existing"] += summary.existing
            totals["to_insert"] += summary.to_insert
            totals["inserted"] += summary.inserted
            totals["skipped_invalid"] += summary.skipped_invalid
            totals["over_target_existing"] += summary.over_target_existing
            totals["capped_products"] += len(summary.capped_products)
        return totals
    
    @property
    def meta(self) -> Dict[str, Any]:
        return {
            "dry_run": self.dry_run,
            "fetched_at": self.fetched_at.isoformat(),
            "page_size": GOODS_PAGE_SIZE,
            "insert_chunk_size": INSERT_CHUNK_SIZE,
            "per_product_cap": MAX_INSERT_PER_PRODUCT,
        }
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "warehouses": [summary.to_dict() for summary in self.warehouses],
            "totals": self.totals,
            "meta": self.meta,
        }


# ===========================================
# SERVICE
# ===========================================

class InventorySyncService:
    """Service for reconciling local units against remote stock."""
    
    def __init__(
        self,
        db: AsyncSession,
        client: Optional[RemoteInventoryClient] = None,
    ):
        self.db = db
        self.client = client or RemoteInventoryClient()
        self.stock = ProductStockService(db)
    
    async def sync(
        self,
        warehouse_id: Optional[uuid.UUID] = None,
        dry_run: bool = False,
    ) -> InventorySyncResult:
        """
        Run a sync over one warehouse or every eligible warehouse.
        
        Raises:
            ConfigurationException: Remote credentials are missing
            NotFoundException: The requested warehouse is missing or inactive
            BadRequestException: No warehouse is mapped to the remote system
            RemoteInventoryError: A single-warehouse run failed upstream
        """
        if not self.client.has_credentials:
            raise ConfigurationException(
                "Remote inventory credentials are not configured",
                details={"required": ["REMOTE_AUTH_HEADER", "REMOTE_ACCEPT_HEADER"]},
            )
        
        warehouses = await self._load_warehouses(warehouse_id)
        result = InventorySyncResult(
            warehouses=[],
            dry_run=dry_run,
            fetched_at=datetime.now(timezone.utc),
        )
        
        for warehouse in warehouses:
            try:
                summary = await self.sync_warehouse(warehouse, dry_run=dry_run)
            except RemoteInventoryError as e:
                if warehouse_id is not None:
                    raise
                summary = self._new_summary(warehouse)
                summary.error = {
                    "message": e.message,
                    "stage": e.stage,
                    "page": e.details.get("page"),
                    "upstream_status": e.upstream_status,
                }
                logger.warning(
                    f"Inventory sync failed for warehouse {warehouse.name} ({warehouse.id}): {e.message}"
                )
            result.warehouses.append(summary)
        
        totals = result.totals
        logger.info(
            f"Inventory sync finished: warehouses={totals['warehouses']} "
            f"failed={totals['failed_warehouses']} to_insert={totals['to_insert']} "
            f"inserted={totals['inserted']} dry_run={dry_run}"
        )
        return result
    
    async def _load_warehouses(self, warehouse_id: Optional[uuid.UUID]) -> List[Warehouse]:
        query = select(Warehouse).where(Warehouse.is_active.is_(True))
        if warehouse_id is not None:
            query = query.where(Warehouse.id == warehouse_id)
        query = query.order_by(Warehouse.name)
        
        result = await self.db.execute(query)
        warehouses = list(result.scalars().all())
        
        if warehouse_id is not None and not warehouses:
            raise NotFoundException(
                resource_type="Warehouse",
                resource_id=warehouse_id,
                message="Warehouse not found or inactive",
                code=ErrorCode.WAREHOUSE_NOT_FOUND,
            )
        
        eligible = [warehouse for warehouse in warehouses if warehouse.is_remote_eligible]
        if not eligible:
            raise BadRequestException(
                "No warehouses are mapped to the remote inventory system",
                details={"requested_warehouse_id": str(warehouse_id) if warehouse_id else None},
            )
        return eligible
    
    @staticmethod
    def _new_summary(warehouse: Warehouse) -> WarehouseSyncSummary:
        return WarehouseSyncSummary(
            warehouse_id=warehouse.id,
            warehouse_name=warehouse.name,
            external_location_id=warehouse.external_location_id,
            consumables_storage_id=warehouse.external_consumables_storage_id,
        )
    
    async def fetch_all_goods(self, warehouse: Warehouse) -> List[RemoteGood]:
        """Sequential pagination; stops at the first page shorter than the page size."""
        goods: List[RemoteGood] = []
        page = 1
        while True:
            batch = await self.client.fetch_goods_page(
                warehouse.external_location_id,
                page=page,
                count=GOODS_PAGE_SIZE,
            )
            goods.extend(batch)
            if len(batch) < GOODS_PAGE_SIZE:
                break
            page += 1
        return goods
    
    @staticmethod
    def aggregate_targets(
        goods: List[RemoteGood],
        storage_id: int,
        summary: WarehouseSyncSummary,
    ) -> Dict[int, BarcodeTarget]:
        targets: Dict[int, BarcodeTarget] = {}
        for good in goods:
            summary.products_processed += 1
            target_count = extract_target_count(good, storage_id)
            summary.fetched += target_count
            
            barcode = resolve_barcode(good)
            if barcode is None:
                summary.skipped_invalid += target_count if target_count > 0 else 1
                continue
            
            entry = targets.setdefault(barcode, BarcodeTarget())
            entry.target += target_count
            entry.products += 1
            if entry.description is None and good.title:
                entry.description = good.title
        return targets
    
    async def sync_warehouse(
        self,
        warehouse: Warehouse,
        dry_run: bool = False,
    ) -> WarehouseSyncSummary:
        summary = self._new_summary(warehouse)
        logger.info(
            f"Inventory sync started for warehouse {warehouse.name} "
            f"(location={warehouse.external_location_id}, storage={warehouse.external_consumables_storage_id})"
        )
        
        goods = await self.fetch_all_goods(warehouse)
        targets = self.aggregate_targets(goods, warehouse.external_consumables_storage_id, summary)
        existing_counts = await self.stock.count_active_by_barcode(warehouse.id, targets.keys())
        
        for barcode, entry in targets.items():
            existing = existing_counts.get(barcode, 0)
            summary.existing += existing
            difference = entry.target - existing
            
            if difference > 0:
                allowed = min(difference, MAX_INSERT_PER_PRODUCT)
                summary.to_insert += allowed
                if difference > allowed:
                    excess = difference - allowed
                    summary.skipped_invalid += excess
                    summary.capped_products.append(
                        CappedProduct(barcode=barcode, requested=difference, applied=allowed)
                    )
                    logger.warning(
                        f"Inventory sync capped barcode {barcode} in warehouse {warehouse.name}: "
                        f"requested={difference} applied={allowed}"
                    )
                if not dry_run:
                    inserted_ids = await self._insert_placeholders(
                        barcode, entry.description, warehouse.id, allowed
                    )
                    summary.inserted_unit_ids.extend(inserted_ids)
                    summary.inserted += len(inserted_ids)
            elif difference < 0:
                summary.over_target_existing += -difference

        logger.info(
            f"Inventory sync for warehouse {warehouse.name}: processed={summary.products_processed} "
            f"to_insert={summary.to_insert} inserted={summary.inserted} "
            f"over_target={summary.over_target_existing} skipped={summary.skipped_invalid}"
        )
        return summary
    
    async def _insert_placeholders(
        self,
        barcode: int,
        description: Optional[str],
        warehouse_id: uuid.UUID,
        count: int,
    ) -> List[uuid.UUID]:
        """Insert one barcode's shortfall, one chunk at a time, committed per barcode."""
        inserted: List[uuid.UUID] = []
        try:
            for start in range(0, count, INSERT_CHUNK_SIZE):
                rows = self._placeholder_rows(
                    barcode, description, warehouse_id, min(INSERT_CHUNK_SIZE, count - start)
                )
                inserted.extend(await self.stock.insert_units(rows, INSERT_CHUNK_SIZE))
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise
        return inserted
    
    @staticmethod
    def _placeholder_rows(
        barcode: int,
        description: Optional[str],
        warehouse_id: uuid.UUID,
        count: int,
    ) -> List[Dict[str, Any]]:
        return [
            {
                "id": uuid.uuid4(),
                "barcode": barcode,
                "description": description,
                "current_warehouse_id": warehouse_id,
                "current_cabinet_id": None,
                "is_being_used": False,
                "is_kit": False,
                "is_deleted": False,
                "is_empty": False,
                "number_of_uses": 0,
                "first_used_at": None,
                "last_used_at": None,
                "last_used_by_employee_id": None,
            }
            for _ in range(count)
        ]
