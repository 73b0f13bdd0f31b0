"""
UnitTrack - Transfer Replication Service

Mirrors a completed external transfer into the remote inventory system.

Only received units are replicated, aggregated per barcode and priced from
caller-supplied totals (cost per unit = total cost / total quantity). For each
side of the transfer that is not the distribution center, one document and
one operation are posted:

- source:      departure document (type 7) + departure operation (type 4)
- destination: arrival document (type 3) + arrival operation (type 3)

Outcomes are returned as a ReplicationResult and never raised, so the caller
can report a committed local completion together with a failed replication.
"""

import logging
import uuid
from datetime import datetime
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

from pydantic import ValidationError
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.base import utc_now
from app.models.product_stock import ProductStockUnit
from app.models.warehouse import Warehouse
from app.models.warehouse_transfer import WarehouseTransfer, WarehouseTransferDetail
from app.schemas.remote_inventory import (
    DOCUMENT_TYPE_ARRIVAL,
    DOCUMENT_TYPE_DEPARTURE,
    OPERATION_TYPE_ARRIVAL,
    OPERATION_TYPE_DEPARTURE,
    OPERATION_UNIT_TYPE_AGGREGATED,
    GoodsTransactionLine,
    StorageDocumentRequest,
    StorageOperationRequest,
)
from app.schemas.warehouse_transfer import ReplicationTotal
from app.services.remote_inventory_client import RemoteInventoryClient
from app.utils.error_handling import ConfigurationException, RemoteInventoryError

logger = logging.getLogger(__name__)


class ReplicationStatus(str, Enum):
    SUCCEEDED = "succeeded"
    SKIPPED = "skipped"
    REJECTED = "rejected"  # caller input must be fixed
    FAILED = "failed"      # configuration or upstream problem; retry later


@dataclass
class ReplicationLine:
    """Received quantity and pricing for one barcode."""
    barcode: int
    quantity: int
    cost_per_unit: float
    
    @property
    def total_cost(self) -> float:
        return self.cost_per_unit * self.quantity


@dataclass
class ReplicationResult:
    status: ReplicationStatus
    message: str
    stage: Optional[str] = None
    upstream_status: Optional[int] = None
    documents_created: int = 0
    transactions_created: int = 0
    document_ids: List[int] = field(default_factory=list)
    details: Dict[str, Any] = field(default_factory=dict)
    
    @property
    def succeeded(self) -> bool:
        return self.status == ReplicationStatus.SUCCEEDED
    
    @property
    def retriable(self) -> bool:
        return self.status == ReplicationStatus.FAILED
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "message": self.message,
            "stage": self.stage,
            "upstream_status": self.upstream_status,
            "retriable": self.retriable,
            "documents_created": self.documents_created,
            "transactions_created": self.transactions_created,
            "document_ids": self.document_ids,
            "details": self.details,
        }


def plan_replication(
    received: Dict[int, int],
    totals: Sequence[ReplicationTotal],
) -> Tuple[List[ReplicationLine], Optional[ReplicationResult]]:
    """
    Price received quantities from caller totals.
    
    Returns the lines to post, or a REJECTED result explaining why nothing
    can be posted.
    """
    def reject(message: str, **details: Any) -> Tuple[List[ReplicationLine], ReplicationResult]:
        return [], ReplicationResult(
            status=ReplicationStatus.REJECTED,
            message=message,
            stage="validation",
            details=details,
        )
    
    if not received:
        return reject("Transfer has no received items to replicate")
    
    invalid_barcodes = sorted(barcode for barcode in received if barcode <= 0)
    if invalid_barcodes:
        return reject("Received items have invalid barcodes", barcodes=invalid_barcodes)
    
    cost_per_unit: Dict[int, float] = {}
    seen: set = set()
    for total in totals:
        if total.barcode in seen:
            return reject("Replication totals list a barcode more than once", barcode=total.barcode)
        seen.add(total.barcode)
        if total.total_quantity <= 0 and total.total_cost > 0:
            return reject(
                "Replication totals have a cost without a quantity",
                barcode=total.barcode,
            )
        if total.total_quantity <= 0:
            # unpriced; reported as missing below
            continue
        cost_per_unit[total.barcode] = total.total_cost / total.total_quantity
    
    missing = sorted(barcode for barcode in received if barcode not in cost_per_unit)
    if missing:
        return reject("Missing cost totals for received barcodes", barcodes=missing)
    
    lines = [
        ReplicationLine(barcode=barcode, quantity=quantity, cost_per_unit=cost_per_unit[barcode])
        for barcode, quantity in sorted(received.items())
    ]
    return lines, None


@dataclass
class _Side:
    warehouse: Warehouse
    label: str
    document_type: int
    operation_type: int


class TransferReplicationService:
    """Service for posting completed transfers to the remote inventory API."""
    
    def __init__(
        self,
        db: AsyncSession,
        client: Optional[RemoteInventoryClient] = None,
    ):
        self.db = db
        self.client = client or RemoteInventoryClient()
    
    async def load_received_quantities(self, transfer_id: uuid.UUID) -> Dict[int, int]:
        """SUM(quantity_transferred) of received details grouped by unit barcode."""
        result = await self.db.execute(
            select(
                ProductStockUnit.barcode,
                func.sum(WarehouseTransferDetail.quantity_transferred),
            )
            .join(ProductStockUnit, WarehouseTransferDetail.product_stock_unit_id == ProductStockUnit.id)
            .where(WarehouseTransferDetail.transfer_id == transfer_id)
            .where(WarehouseTransferDetail.is_received.is_(True))
            .group_by(ProductStockUnit.barcode)
        )
        return {barcode: int(quantity or 0) for barcode, quantity in result.all()}
    
    async def prepare(
        self,
        transfer: WarehouseTransfer,
        totals: Sequence[ReplicationTotal],
    ) -> Tuple[List[ReplicationLine], Optional[ReplicationResult]]:
        received = await self.load_received_quantities(transfer.id)
        return plan_replication(received, totals)
    
    async def _resolve_sides(self, transfer: WarehouseTransfer) -> List[_Side]:
        source = await self.db.get(Warehouse, transfer.source_warehouse_id)
        destination = await self.db.get(Warehouse, transfer.destination_warehouse_id)
        sides = [
            _Side(source, "departure", DOCUMENT_TYPE_DEPARTURE, OPERATION_TYPE_DEPARTURE),
            _Side(destination, "arrival", DOCUMENT_TYPE_ARRIVAL, OPERATION_TYPE_ARRIVAL),
        ]
        sides = [side for side in sides if not side.warehouse.is_distribution_center]
        
        unmapped = [side.warehouse for side in sides if not side.warehouse.is_remote_eligible]
        if unmapped:
            raise ConfigurationException(
                "Warehouses are missing their remote inventory mapping",
                details={"warehouse_ids": [str(warehouse.id) for warehouse in unmapped]},
            )
        return sides
    
    async def replicate(
        self,
        transfer: WarehouseTransfer,
        lines: Sequence[ReplicationLine],
    ) -> ReplicationResult:
        """Post documents and operations for every non distribution-center side."""
        result = ReplicationResult(status=ReplicationStatus.SUCCEEDED, message="")
        created_at = utc_now()
        
        try:
            if not self.client.has_credentials:
                raise ConfigurationException("Remote inventory credentials are not configured")
            master_id = self.client.require_master_id()
            sides = await self._resolve_sides(transfer)
            documents = [self._document_request(transfer, side, created_at) for side in sides]
        except ConfigurationException as e:
            return self._not_attempted(transfer, result, e.message, e.details)
        except ValidationError as e:
            return self._not_attempted(
                transfer,
                result,
                "Warehouse settings are not valid for the remote inventory API",
                {"errors": [{"loc": list(error["loc"]), "msg": error["msg"]} for error in e.errors()]},
            )
        
        if not sides:
            result.status = ReplicationStatus.SKIPPED
            result.message = "Both warehouses are distribution centers; nothing to replicate"
            return result
        
        try:
            for side, document in zip(sides, documents):
                await self._replicate_side(transfer, side, document, lines, master_id, created_at, result)
        except RemoteInventoryError as e:
            logger.error(
                f"Replication of transfer {transfer.transfer_number} failed at {e.stage}: {e.message}"
            )
            result.status = ReplicationStatus.FAILED
            result.message = e.message
            result.stage = e.stage
            result.upstream_status = e.upstream_status
            result.details = e.details
            return result
        
        transfer.remote_replicated_at = utc_now()
        await self.db.commit()
        
        result.message = (
            f"Replicated transfer {transfer.transfer_number}: "
            f"{result.documents_created} documents, {result.transactions_created} transactions"
        )
        logger.info(f"{result.message} (document ids: {result.document_ids})")
        return result
    
    def _not_attempted(
        self,
        transfer: WarehouseTransfer,
        result: ReplicationResult,
        message: str,
        details: Dict[str, Any],
    ) -> ReplicationResult:
        logger.error(f"Replication of transfer {transfer.transfer_number} not attempted: {message}")
        result.status = ReplicationStatus.FAILED
        result.message = message
        result.stage = "configuration"
        result.details = details
        return result
    
    @staticmethod
    def _document_request(
        transfer: WarehouseTransfer,
        side: _Side,
        created_at: datetime,
    ) -> StorageDocumentRequest:
        return StorageDocumentRequest(
            type_id=side.document_type,
            comment=f"Transfer {transfer.transfer_number} {side.label}",
            storage_id=side.warehouse.external_consumables_storage_id,
            create_date=created_at,
            time_zone=side.warehouse.timezone,
        )
    
    async def _replicate_side(
        self,
        transfer: WarehouseTransfer,
        side: _Side,
        document_request: StorageDocumentRequest,
        lines: Sequence[ReplicationLine],
        master_id: int,
        created_at: datetime,
        result: ReplicationResult,
    ) -> None:
        warehouse = side.warehouse
        
        document = await self.client.post_document(warehouse.external_location_id, document_request)
        result.documents_created += 1
        result.document_ids.append(document.id)
        
        operation = await self.client.post_operation(
            warehouse.external_location_id,
            StorageOperationRequest(
                type_id=side.operation_type,
                comment=f"Storage operation for transfer {transfer.transfer_number}",
                create_date=created_at,
                storage_id=document_request.storage_id,
                master_id=master_id,
                time_zone=warehouse.timezone,
                goods_transactions=[
                    GoodsTransactionLine(
                        document_id=document.id,
                        good_id=line.barcode,
                        amount=line.quantity,
                        cost_per_unit=line.cost_per_unit,
                        discount=0,
                        cost=line.total_cost,
                        operation_unit_type=OPERATION_UNIT_TYPE_AGGREGATED,
                        master_id=master_id,
                    )
                    for line in lines
                ],
            ),
        )
        result.transactions_created += len(operation.transactions) or len(lines)
