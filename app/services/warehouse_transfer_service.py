"""
UnitTrack - Warehouse Transfer Service

Transfer state machine:

    internal:  created -> completed (one transaction; units change cabinet)
    external:  pending -> completed | cancelled

Completing an external transfer flips the flag with a conditional UPDATE,
books every unreceived unit as transfer_missing shrinkage and soft-deletes it,
all in one transaction. Remote replication runs after that commit and its
outcome is reported next to the committed transfer, never rolled back into it.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Sequence, Union

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.models.base import utc_now
from app.models.product_stock import MovementType, ProductStockUnit, UsageAction
from app.models.warehouse import Cabinet, Warehouse
from app.models.warehouse_transfer import (
    TransferType,
    WarehouseTransfer,
    WarehouseTransferDetail,
)
from app.schemas.auth import SessionUser
from app.schemas.warehouse_transfer import (
    ExternalTransferCreate,
    InternalTransferCreate,
    ReplicationTotal,
    TransferItemPatch,
    TransferStatusPatch,
)
from app.services.product_stock_service import ProductStockService
from app.services.shrinkage_service import ShrinkageService
from app.services.transfer_replication_service import (
    ReplicationResult,
    ReplicationStatus,
    TransferReplicationService,
)
from app.utils.error_handling import (
    AuthorizationException,
    BadRequestException,
    ConfigurationException,
    ConflictException,
    DuplicateEntryException,
    ErrorCode,
    NotFoundException,
    TransferLockedException,
    classify_integrity_error,
)

logger = logging.getLogger(__name__)


@dataclass
class TransferStatusResult:
    transfer: WarehouseTransfer
    shrinkage_events_created: int = 0
    replication: Optional[ReplicationResult] = None


class WarehouseTransferService:
    """
    Service for creating, receiving, completing and cancelling transfers.
    
    ``replication_enabled`` comes from configuration at construction time.
    """
    
    def __init__(
        self,
        db: AsyncSession,
        replication_enabled: bool = False,
        replication_service: Optional[TransferReplicationService] = None,
    ):
        self.db = db
        self.replication_enabled = replication_enabled
        self._replication_service = replication_service
        self.stock = ProductStockService(db)
        self.shrinkage = ShrinkageService(db)
    
    @property
    def replication(self) -> TransferReplicationService:
        if self._replication_service is None:
            self._replication_service = TransferReplicationService(self.db)
        return self._replication_service
    
    @staticmethod
    def generate_transfer_number() -> str:
        """Generate unique transfer number."""
        timestamp = datetime.utcnow().strftime("%Y%m%d%H%M")
        unique_id = uuid.uuid4().hex[:4].upper()
        return f"TRF-{timestamp}-{unique_id}"
    
    # ===========================================
    # LOOKUPS
    # ===========================================
    
    async def get_transfer(
        self,
        transfer_id: uuid.UUID,
        for_update: bool = False,
        with_details: bool = True,
    ) -> WarehouseTransfer:
        query = select(WarehouseTransfer).where(WarehouseTransfer.id == transfer_id)
        if with_details:
            query = query.options(selectinload(WarehouseTransfer.details))
        if for_update:
            query = query.with_for_update()
        query = query.execution_options(populate_existing=True)
        
        transfer = (await self.db.execute(query)).scalar_one_or_none()
        if not transfer:
            raise NotFoundException(
                resource_type="WarehouseTransfer",
                resource_id=transfer_id,
                code=ErrorCode.TRANSFER_NOT_FOUND,
            )
        return transfer
    
    async def _get_warehouse(self, warehouse_id: uuid.UUID) -> Warehouse:
        warehouse = await self.db.get(Warehouse, warehouse_id)
        if not warehouse:
            raise NotFoundException(
                resource_type="Warehouse",
                resource_id=warehouse_id,
                code=ErrorCode.WAREHOUSE_NOT_FOUND,
            )
        return warehouse
    
    @staticmethod
    def _ensure_destination_access(actor: SessionUser, transfer: WarehouseTransfer, action: str) -> None:
        if not actor.can_act_for_warehouse(transfer.destination_warehouse_id):
            raise AuthorizationException(
                f"Only destination warehouse users or admins can {action}",
                required_permission="destination_warehouse",
            )
    
    # ===========================================
    # CREATE
    # ===========================================
    
    async def create_transfer(
        self,
        data: Union[InternalTransferCreate, ExternalTransferCreate],
        actor: SessionUser,
    ) -> WarehouseTransfer:
        """
        Create a transfer with one detail per unit.
        
        Internal transfers relocate their units and complete immediately.
        External transfers stay pending and leave units at the source until
        each one is received.
        """
        is_internal = isinstance(data, InternalTransferCreate)
        source = await self._get_warehouse(data.source_warehouse_id)
        destination = source if is_internal else await self._get_warehouse(data.destination_warehouse_id)
        
        cabinet_id: Optional[uuid.UUID] = None
        if is_internal and data.cabinet_id is not None:
            cabinet = await self.db.get(Cabinet, data.cabinet_id)
            if not cabinet:
                raise NotFoundException(resource_type="Cabinet", resource_id=data.cabinet_id)
            if cabinet.warehouse_id != source.id:
                raise BadRequestException(
                    "Cabinet does not belong to the source warehouse",
                    field="cabinet_id",
                )
            cabinet_id = cabinet.id
        
        transfer_number = data.transfer_number or self.generate_transfer_number()
        existing = await self.db.execute(
            select(WarehouseTransfer.id).where(WarehouseTransfer.transfer_number == transfer_number)
        )
        if existing.scalar_one_or_none():
            raise DuplicateEntryException("WarehouseTransfer", "transfer_number", transfer_number)
        
        units = await self.stock.get_movable_units(
            [detail.product_stock_unit_id for detail in data.details]
        )
        
        now = utc_now()
        transfer = WarehouseTransfer(
            id=uuid.uuid4(),
            transfer_number=transfer_number,
            transfer_type=TransferType.INTERNAL if is_internal else TransferType.EXTERNAL,
            source_warehouse_id=source.id,
            destination_warehouse_id=destination.id,
            cabinet_id=cabinet_id,
            initiated_by=actor.user_id,
            total_items=len(data.details),
            priority=data.priority,
            notes=data.notes,
            is_completed=is_internal,
            is_pending=not is_internal,
            is_cancelled=False,
            completed_by=actor.user_id if is_internal else None,
            completed_at=now if is_internal else None,
        )
        
        try:
            self.db.add(transfer)
            await self.db.flush()
            
            for detail_input, unit in zip(data.details, units):
                self.db.add(WarehouseTransferDetail(
                    id=uuid.uuid4(),
                    transfer_id=transfer.id,
                    product_stock_unit_id=unit.id,
                    quantity_transferred=detail_input.quantity_transferred,
                    item_condition=detail_input.item_condition,
                    notes=detail_input.notes,
                    is_received=is_internal,
                    received_by=actor.user_id if is_internal else None,
                    received_at=now if is_internal else None,
                ))
                
                if is_internal:
                    target_cabinet = None if data.is_cabinet_to_warehouse else cabinet_id
                    self.stock.relocate(
                        unit,
                        warehouse_id=source.id,
                        cabinet_id=target_cabinet,
                        user_id=actor.user_id,
                        movement_type=MovementType.TRANSFER,
                        action=UsageAction.TRANSFER,
                        warehouse_transfer_id=transfer.id,
                        notes=f"Internal transfer {transfer_number}",
                    )
                else:
                    self.stock.record_history(
                        unit,
                        user_id=actor.user_id,
                        movement_type=MovementType.TRANSFER,
                        action=UsageAction.TRANSFER,
                        previous_warehouse_id=unit.current_warehouse_id,
                        new_warehouse_id=destination.id,
                        warehouse_transfer_id=transfer.id,
                        notes=f"Dispatched on transfer {transfer_number}",
                    )
            
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            raise classify_integrity_error(e)
        except Exception:
            await self.db.rollback()
            raise
        
        logger.info(
            f"Transfer {transfer_number} created: type={transfer.transfer_type.value} "
            f"items={transfer.total_items} by={actor.user_id}"
        )
        return await self.get_transfer(transfer.id)
    
    # ===========================================
    # ITEM RECEIPT
    # ===========================================
    
    async def update_item_status(
        self,
        detail_id: uuid.UUID,
        patch: TransferItemPatch,
        actor: SessionUser,
    ) -> WarehouseTransferDetail:
        """Receive a single unit or edit its condition/notes."""
        try:
            detail = (await self.db.execute(
                select(WarehouseTransferDetail)
                .where(WarehouseTransferDetail.id == detail_id)
                .with_for_update()
            )).scalar_one_or_none()
            if not detail:
                raise NotFoundException(resource_type="WarehouseTransferDetail", resource_id=detail_id)
            
            transfer = await self.get_transfer(detail.transfer_id, for_update=True, with_details=False)
            if transfer.is_completed:
                raise TransferLockedException(
                    transfer.id,
                    "Completed transfers are locked. Item updates are not allowed.",
                )
            if transfer.is_cancelled:
                raise ConflictException(
                    "Cancelled transfers cannot be updated",
                    resource_type="WarehouseTransfer",
                )
            
            if patch.is_received is False and detail.is_received:
                raise ConflictException(
                    "Received items cannot be marked as not received",
                    resource_type="WarehouseTransferDetail",
                )
            if patch.is_received and transfer.is_external:
                self._ensure_destination_access(actor, transfer, "receive transfer items")
            
            if patch.item_condition is not None:
                detail.item_condition = patch.item_condition
            if patch.notes is not None:
                detail.notes = patch.notes
            
            if patch.is_received and not detail.is_received:
                unit = (await self.stock.get_movable_units([detail.product_stock_unit_id]))[0]
                detail.is_received = True
                detail.received_by = actor.user_id
                detail.received_at = utc_now()
                self.stock.relocate(
                    unit,
                    warehouse_id=transfer.destination_warehouse_id,
                    cabinet_id=None,
                    user_id=actor.user_id,
                    movement_type=MovementType.CHECKIN,
                    action=UsageAction.CHECKIN,
                    warehouse_transfer_id=transfer.id,
                    notes=f"Received from transfer {transfer.transfer_number}",
                )
            
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            raise classify_integrity_error(e)
        except Exception:
            await self.db.rollback()
            raise
        
        await self.db.refresh(detail)
        return detail
    
    # ===========================================
    # STATUS
    # ===========================================
    
    async def update_transfer_status(
        self,
        transfer_id: uuid.UUID,
        patch: TransferStatusPatch,
        actor: SessionUser,
    ) -> TransferStatusResult:
        """
        Apply a status patch.
        
        Raises:
            NotFoundException: Unknown transfer
            TransferLockedException: Flag change on a completed transfer
            ConflictException: Flag change on a cancelled transfer
            AuthorizationException: Non-destination user completing an external transfer
        """
        shrinkage_created = 0
        try:
            transfer = await self.get_transfer(transfer_id, for_update=True, with_details=False)
            
            if patch.changes_state and transfer.is_completed:
                raise TransferLockedException(transfer.id)
            if patch.changes_state and transfer.is_cancelled:
                raise ConflictException(
                    "Cancelled transfers are closed. Only notes updates are allowed.",
                    resource_type="WarehouseTransfer",
                )
            
            completing = bool(patch.is_completed)
            cancelling = bool(patch.is_cancelled)
            if completing and transfer.is_external:
                self._ensure_destination_access(actor, transfer, "complete external transfers")
            
            should_replicate = (
                self.replication_enabled
                and patch.replicate_to_remote is not False
                and completing
                and transfer.is_external
            )
            
            if completing:
                await self._mark_completed(transfer, actor)
                if transfer.is_external:
                    shrinkage_created = await self._convert_missing_items(transfer, actor)
            elif cancelling:
                transfer.is_cancelled = True
                transfer.is_pending = False
            elif patch.is_pending is not None:
                transfer.is_pending = patch.is_pending
            
            if patch.notes is not None:
                transfer.notes = patch.notes
            
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            raise classify_integrity_error(e)
        except Exception:
            await self.db.rollback()
            raise
        
        transfer = await self.get_transfer(transfer_id)
        if completing:
            logger.info(
                f"Transfer {transfer.transfer_number} completed by {actor.user_id}; "
                f"missing units booked as shrinkage: {shrinkage_created}"
            )
        elif cancelling:
            logger.info(f"Transfer {transfer.transfer_number} cancelled by {actor.user_id}")
        
        replication = None
        if should_replicate:
            replication = await self._replicate(transfer, patch.replication_totals)
        elif completing and transfer.is_external:
            replication = ReplicationResult(
                status=ReplicationStatus.SKIPPED,
                message="Remote replication is disabled" if not self.replication_enabled
                else "Remote replication was not requested",
            )
        
        return TransferStatusResult(
            transfer=transfer,
            shrinkage_events_created=shrinkage_created,
            replication=replication,
        )
    
    async def _mark_completed(self, transfer: WarehouseTransfer, actor: SessionUser) -> None:
        """Flip is_completed only if nobody else did; the losing request gets a conflict."""
        now = utc_now()
        result = await self.db.execute(
            update(WarehouseTransfer)
            .where(WarehouseTransfer.id == transfer.id)
            .where(WarehouseTransfer.is_completed.is_(False))
            .where(WarehouseTransfer.is_cancelled.is_(False))
            .values(
                is_completed=True,
                is_pending=False,
                completed_at=now,
                completed_by=actor.user_id,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise TransferLockedException(transfer.id)
    
    async def _convert_missing_items(self, transfer: WarehouseTransfer, actor: SessionUser) -> int:
        rows = (await self.db.execute(
            select(WarehouseTransferDetail, ProductStockUnit)
            .join(ProductStockUnit, WarehouseTransferDetail.product_stock_unit_id == ProductStockUnit.id)
            .where(WarehouseTransferDetail.transfer_id == transfer.id)
            .where(WarehouseTransferDetail.is_received.is_(False))
            .where(ProductStockUnit.is_deleted.is_(False))
            .where(ProductStockUnit.is_empty.is_(False))
            .with_for_update()
        )).all()
        
        for detail, unit in rows:
            self.shrinkage.record_transfer_shortfall(transfer, detail, unit, actor.user_id)
        return len(rows)
    
    # ===========================================
    # REPLICATION
    # ===========================================
    
    async def _replicate(
        self,
        transfer: WarehouseTransfer,
        totals: Sequence[ReplicationTotal],
    ) -> ReplicationResult:
        lines, rejection = await self.replication.prepare(transfer, totals)
        if rejection is not None:
            logger.warning(
                f"Replication of transfer {transfer.transfer_number} rejected: {rejection.message}"
            )
            return rejection
        return await self.replication.replicate(transfer, lines)
    
    async def retry_replication(
        self,
        transfer_id: uuid.UUID,
        totals: Sequence[ReplicationTotal],
    ) -> ReplicationResult:
        """Replicate a completed external transfer that has not reached the remote system yet."""
        if not self.replication_enabled:
            raise ConfigurationException("Remote replication is disabled")
        
        transfer = await self.get_transfer(transfer_id, with_details=False)
        if not transfer.is_external or not transfer.is_completed:
            raise ConflictException(
                "Only completed external transfers can be replicated",
                resource_type="WarehouseTransfer",
            )
        if transfer.remote_replicated_at is not None:
            raise ConflictException(
                "Transfer has already been replicated to the remote inventory system",
                resource_type="WarehouseTransfer",
                details={"replicated_at": transfer.remote_replicated_at.isoformat()},
            )
        return await self._replicate(transfer, totals)
