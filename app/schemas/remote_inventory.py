"""
UnitTrack - Remote Inventory API Schemas

Pydantic models for outbound storage document/operation requests and for the
envelopes returned by the remote inventory API ({success, data, meta}).
Outbound models are strict; inbound models require only the fields this
service reads and keep the rest.
"""

from datetime import datetime
from typing import Any, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


DOCUMENT_TYPE_ARRIVAL = 3
DOCUMENT_TYPE_DEPARTURE = 7
OPERATION_TYPE_ARRIVAL = 3
OPERATION_TYPE_DEPARTURE = 4
OPERATION_UNIT_TYPE_UNIT = 1
OPERATION_UNIT_TYPE_AGGREGATED = 2


# ===========================================
# OUTBOUND REQUESTS
# ===========================================

class StorageDocumentRequest(BaseModel):
    """Arrival/departure document header."""
    model_config = ConfigDict(extra="forbid")
    
    type_id: Literal[3, 7]
    comment: str = Field(..., min_length=1)
    storage_id: int = Field(..., gt=0)
    create_date: datetime
    time_zone: Optional[str] = Field(None, min_length=1)


class GoodsTransactionLine(BaseModel):
    """Quantity and cost line for a single good inside an operation."""
    model_config = ConfigDict(extra="forbid")
    
    document_id: int = Field(..., gt=0)
    good_id: int = Field(..., gt=0)
    amount: float
    cost_per_unit: float
    discount: float = 0
    cost: float
    operation_unit_type: int = OPERATION_UNIT_TYPE_UNIT
    master_id: Optional[int] = None
    client_id: Optional[int] = None
    supplier_id: Optional[int] = None
    comment: Optional[str] = None


class StorageOperationRequest(BaseModel):
    """Storage operation posting one or more goods transactions."""
    model_config = ConfigDict(extra="forbid")
    
    type_id: Literal[3, 4]
    comment: str = Field(..., min_length=1)
    create_date: datetime
    storage_id: int = Field(..., gt=0)
    goods_transactions: List[GoodsTransactionLine] = Field(..., min_length=1)
    master_id: Optional[int] = None
    time_zone: Optional[str] = Field(None, min_length=1)


# ===========================================
# INBOUND RESPONSES
# ===========================================

class RemoteModel(BaseModel):
    model_config = ConfigDict(extra="allow")


class RemoteStorageAmount(RemoteModel):
    storage_id: int
    # Left untyped: amounts arrive as numbers, numeric strings, or junk
    amount: Any = None


class RemoteGood(RemoteModel):
    good_id: int
    title: str = ""
    barcode: Optional[str] = None
    actual_amounts: List[RemoteStorageAmount] = Field(default_factory=list)


class RemoteGoodsPage(RemoteModel):
    success: bool
    data: List[RemoteGood]
    meta: Any = None


class RemoteDocument(RemoteModel):
    id: int
    type_id: Optional[int] = None
    storage_id: Optional[int] = None
    number: Optional[int] = None
    comment: Optional[str] = None
    create_date: Optional[str] = None


class RemoteDocumentResponse(RemoteModel):
    success: bool
    data: RemoteDocument
    meta: Any = None


class RemoteTransaction(RemoteModel):
    id: int
    document_id: Optional[int] = None
    good_id: Optional[int] = None
    amount: Optional[float] = None
    cost: Optional[float] = None


class RemoteOperation(RemoteModel):
    document: Optional[RemoteDocument] = None
    transactions: List[RemoteTransaction] = Field(default_factory=list)


class RemoteOperationResponse(RemoteModel):
    success: bool
    data: RemoteOperation
    meta: Any = None
