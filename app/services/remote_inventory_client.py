"""
UnitTrack - Remote Inventory API Client

HTTP adapter for the remote point-of-sale/ERP inventory API.

API Documentation:
- GET  /api/v1/goods/{company_id}?count=&page=          - Goods with per-storage amounts
- POST /api/v1/storage_operations/documents/{company_id}  - Arrival/departure document
- POST /api/v1/storage_operations/operations/{company_id} - Goods transactions for a document

Every call is authenticated with two static headers (Authorization and a
vendor Accept header). Non-2xx responses, transport errors and payloads that
do not match the expected envelope raise RemoteInventoryError; callers decide
how a failure affects their own result. Nothing here retries.
"""

import logging
import re
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Any, Dict, List, Optional, Type, TypeVar
from zoneinfo import ZoneInfo

import httpx
from pydantic import BaseModel, ValidationError

from app.config import settings
from app.schemas.remote_inventory import (
    RemoteDocument,
    RemoteDocumentResponse,
    RemoteGood,
    RemoteGoodsPage,
    RemoteOperation,
    RemoteOperationResponse,
    StorageDocumentRequest,
    StorageOperationRequest,
)
from app.utils.error_handling import ConfigurationException, RemoteInventoryError

logger = logging.getLogger(__name__)

ResponseModel = TypeVar("ResponseModel", bound=BaseModel)

GOODS_PAGE_SIZE = 100
REMOTE_DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"
DEFAULT_TIME_ZONE = "UTC"
DEFAULT_TIME_ZONE_OFFSET = "+00:00"

_OFFSET_PATTERN = re.compile(r"^([+-])(\d{2}):(\d{2})$")


# ===========================================
# DATE / TIMEZONE FORMATTING
# ===========================================

def _as_aware(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def _resolve_zone(time_zone: Optional[str]) -> tzinfo:
    name = time_zone or DEFAULT_TIME_ZONE
    match = _OFFSET_PATTERN.match(name)
    if match:
        sign, hours, minutes = match.groups()
        delta = timedelta(hours=int(hours), minutes=int(minutes))
        return timezone(-delta if sign == "-" else delta)
    return ZoneInfo(name)


def format_create_date(moment: datetime, time_zone: Optional[str] = None) -> str:
    """
    Render a datetime in the remote API's wall-clock format for a zone.
    
    Naive datetimes are treated as UTC. An unknown zone falls back to UTC.
    """
    try:
        zone = _resolve_zone(time_zone)
    except Exception as e:
        logger.error(f"Unknown time zone {time_zone!r} for remote create_date, using UTC: {e}")
        zone = timezone.utc
    return _as_aware(moment).astimezone(zone).strftime(REMOTE_DATETIME_FORMAT)


def format_time_zone_offset(time_zone: Optional[str] = None, moment: Optional[datetime] = None) -> str:
    """
    Return the ``+HH:MM`` offset of a zone at the given instant.
    
    Offsets that are already in ``+HH:MM`` form pass through. Any failure to
    resolve the zone yields ``+00:00``; this function never raises.
    """
    if not time_zone:
        return DEFAULT_TIME_ZONE_OFFSET
    if _OFFSET_PATTERN.match(time_zone):
        return time_zone
    
    try:
        instant = _as_aware(moment or datetime.now(timezone.utc))
        offset = instant.astimezone(ZoneInfo(time_zone)).utcoffset()
        total_minutes = int(offset.total_seconds() // 60)
        sign = "+" if total_minutes >= 0 else "-"
        hours, minutes = divmod(abs(total_minutes), 60)
        return f"{sign}{hours:02d}:{minutes:02d}"
    except Exception as e:
        logger.error(f"Failed to derive remote time zone offset for {time_zone!r}: {e}")
        return DEFAULT_TIME_ZONE_OFFSET


# ===========================================
# PAYLOAD BUILDERS
# ===========================================

def build_document_payload(request: StorageDocumentRequest) -> Dict[str, Any]:
    time_zone = request.time_zone or DEFAULT_TIME_ZONE
    return {
        "type_id": request.type_id,
        "comment": request.comment,
        "storage_id": request.storage_id,
        "create_date": format_create_date(request.create_date, time_zone),
        "time_zone": format_time_zone_offset(time_zone, request.create_date),
    }


def build_operation_payload(request: StorageOperationRequest) -> Dict[str, Any]:
    time_zone = request.time_zone or DEFAULT_TIME_ZONE
    payload: Dict[str, Any] = {
        "type_id": request.type_id,
        "comment": request.comment,
        "create_date": format_create_date(request.create_date, time_zone),
        "storage_id": request.storage_id,
        "time_zone": format_time_zone_offset(time_zone, request.create_date),
        "goods_transactions": [
            line.model_dump(exclude_none=True) for line in request.goods_transactions
        ],
    }
    if request.master_id is not None:
        payload["master_id"] = request.master_id
    return payload


# ===========================================
# CLIENT
# ===========================================

class RemoteInventoryClient:
    """
    Async client for the remote inventory API.
    
    Uses credentials from settings unless explicit values are passed.
    """
    
    GOODS_PATH = "/api/v1/goods"
    DOCUMENT_PATH = "/api/v1/storage_operations/documents"
    OPERATION_PATH = "/api/v1/storage_operations/operations"
    
    def __init__(
        self,
        auth_header: Optional[str] = None,
        accept_header: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        default_master_id: Optional[int] = None,
    ):
        self.auth_header = settings.remote_auth_header if auth_header is None else auth_header
        self.accept_header = settings.remote_accept_header if accept_header is None else accept_header
        self.base_url = (base_url or settings.remote_api_base_url).rstrip("/")
        self.timeout = timeout or settings.remote_timeout_seconds
        self.default_master_id = (
            settings.remote_default_master_id if default_master_id is None else default_master_id
        )
    
    @property
    def has_credentials(self) -> bool:
        return bool(self.auth_header and self.auth_header.strip()
                    and self.accept_header and self.accept_header.strip())
    
    def _get_headers(self) -> Dict[str, str]:
        if not self.has_credentials:
            raise ConfigurationException(
                "Remote inventory credentials are not configured",
                details={"required": ["REMOTE_AUTH_HEADER", "REMOTE_ACCEPT_HEADER"]},
            )
        return {
            "Authorization": self.auth_header,
            "Accept": self.accept_header,
            "Content-Type": "application/json",
        }
    
    def require_master_id(self) -> int:
        """Storage operations must name a staff member on the remote side."""
        if self.default_master_id is None or self.default_master_id <= 0:
            raise ConfigurationException(
                "A default remote master id must be configured before posting storage operations",
                details={"required": ["REMOTE_DEFAULT_MASTER_ID"]},
            )
        return self.default_master_id
    
    @staticmethod
    def _validate_company_id(company_id: Any) -> int:
        if isinstance(company_id, bool) or not isinstance(company_id, int) or company_id <= 0:
            raise ConfigurationException(
                f"Invalid remote company id: {company_id!r}",
                details={"company_id": company_id},
            )
        return company_id
    
    async def _request(
        self,
        method: str,
        path: str,
        stage: str,
        data: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """
        Make an HTTP request to the remote inventory API.
        
        Args:
            method: HTTP method
            path: API path including the company id
            stage: Short label used in logs and errors (e.g. "goods fetch")
            data: JSON body for POST
            params: Query parameters
            context: Extra diagnostic fields attached to any error
            
        Returns:
            Decoded JSON body
            
        Raises:
            RemoteInventoryError: On transport failure, non-2xx status, or a body that is not JSON
        """
        url = f"{self.base_url}{path}"
        headers = self._get_headers()
        context = {"url": url, **(context or {})}
        
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.request(
                    method=method,
                    url=url,
                    headers=headers,
                    json=data,
                    params=params,
                )
        except httpx.TimeoutException as e:
            logger.error(f"Remote inventory {stage} timed out: {url}")
            raise RemoteInventoryError(
                f"Remote inventory {stage} timed out",
                stage=stage,
                details=context,
                original_error=e,
            )
        except httpx.RequestError as e:
            logger.error(f"Remote inventory {stage} request error: {e}")
            raise RemoteInventoryError(
                f"Remote inventory {stage} request failed",
                stage=stage,
                details=context,
                original_error=e,
            )
        
        logger.debug(f"Remote inventory {method} {path}: status={response.status_code}")
        
        if not response.is_success:
            body = response.text
            logger.error(
                f"Remote inventory {stage} request failed: status={response.status_code} "
                f"body={RemoteInventoryError.truncate_body(body)}"
            )
            raise RemoteInventoryError(
                f"Remote inventory {stage} failed with status {response.status_code}",
                stage=stage,
                upstream_status=response.status_code,
                body=body,
                details=context,
            )
        
        try:
            return response.json()
        except ValueError as e:
            raise RemoteInventoryError(
                f"Remote inventory {stage} returned a body that is not JSON",
                stage=stage,
                upstream_status=response.status_code,
                body=response.text,
                details=context,
                original_error=e,
            )
    
    @staticmethod
    def _parse(
        model: Type[ResponseModel],
        payload: Any,
        stage: str,
        context: Optional[Dict[str, Any]] = None,
    ) -> ResponseModel:
        try:
            parsed = model.model_validate(payload)
        except ValidationError as e:
            raise RemoteInventoryError(
                f"Remote inventory {stage} returned an unexpected payload",
                stage=stage,
                details={**(context or {}), "errors": [
                    {"loc": ".".join(str(part) for part in err["loc"]), "message": err["msg"]}
                    for err in e.errors()[:5]
                ]},
                original_error=e,
            )
        if getattr(parsed, "success", True) is False:
            raise RemoteInventoryError(
                f"Remote inventory {stage} reported success=false",
                stage=stage,
                details=context,
            )
        return parsed
    
    async def fetch_goods_page(
        self,
        company_id: int,
        page: int,
        count: int = GOODS_PAGE_SIZE,
    ) -> List[RemoteGood]:
        """Fetch one page of goods (1-based) for a remote company/location."""
        company_id = self._validate_company_id(company_id)
        stage = "goods fetch"
        context = {"company_id": company_id, "page": page}
        payload = await self._request(
            "GET",
            f"{self.GOODS_PATH}/{company_id}",
            stage=stage,
            params={"count": count, "page": page},
            context=context,
        )
        return self._parse(RemoteGoodsPage, payload, stage, context).data
    
    async def post_document(
        self,
        company_id: int,
        request: StorageDocumentRequest,
    ) -> RemoteDocument:
        """Create an arrival or departure document header."""
        company_id = self._validate_company_id(company_id)
        stage = "storage document creation"
        context = {"company_id": company_id, "document_type": request.type_id}
        payload = await self._request(
            "POST",
            f"{self.DOCUMENT_PATH}/{company_id}",
            stage=stage,
            data=build_document_payload(request),
            context=context,
        )
        document = self._parse(RemoteDocumentResponse, payload, stage, context).data
        logger.info(f"Remote storage document {document.id} created for company {company_id}")
        return document
    
    async def post_operation(
        self,
        company_id: int,
        request: StorageOperationRequest,
    ) -> RemoteOperation:
        """Post goods transactions against an existing document."""
        company_id = self._validate_company_id(company_id)
        stage = "storage operation creation"
        context = {
            "company_id": company_id,
            "operation_type": request.type_id,
            "transactions": len(request.goods_transactions),
        }
        payload = await self._request(
            "POST",
            f"{self.OPERATION_PATH}/{company_id}",
            stage=stage,
            data=build_operation_payload(request),
            context=context,
        )
        return self._parse(RemoteOperationResponse, payload, stage, context).data
