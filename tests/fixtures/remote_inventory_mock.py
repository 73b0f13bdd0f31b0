"""
Mock Remote Inventory Server for Testing

Configurable stand-in for the remote inventory API built on respx. Goods are
served per company id with real pagination; posted documents and operations
are recorded so tests can assert on the exact payloads.
"""

import json
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import httpx
import respx
from respx import MockRouter


AUTH_HEADER = "Bearer partner-token, User user-token"
ACCEPT_HEADER = "application/vnd.api.v2+json"


def make_good(
    good_id: int,
    storage_id: int,
    amount: Any,
    barcode: Optional[str] = None,
    title: str = "",
) -> Dict[str, Any]:
    """Build a goods entry the way the remote API returns it."""
    return {
        "good_id": good_id,
        "title": title or f"Good {good_id}",
        "barcode": barcode,
        "unit_id": 1,
        "actual_amounts": [{"storage_id": storage_id, "amount": amount}],
    }


@dataclass
class RecordedCall:
    company_id: int
    body: Dict[str, Any]
    headers: Dict[str, str] = field(default_factory=dict)


class MockRemoteInventoryServer:
    """
    Usage:
        server = MockRemoteInventoryServer()
        server.add_goods(company_id=501, goods=[make_good(1, 9001, 3, barcode="7501")])

        with server.activate():
            ...  # code that calls the remote API

        server.documents[0].body["type_id"]
    """

    BASE_URL = "https://remote-inventory.test"

    _COMPANY = re.compile(r"/(\d+)$")

    def __init__(self):
        self.goods: Dict[int, List[Dict[str, Any]]] = {}
        self.documents: List[RecordedCall] = []
        self.operations: List[RecordedCall] = []
        self.goods_requests: List[Tuple[int, int, int]] = []

        # Failure knobs: (status, body, first failing page)
        self.goods_failures: Dict[int, Tuple[int, str, int]] = {}
        self.document_failure: Optional[Tuple[int, str]] = None
        self.operation_failure: Optional[Tuple[int, str]] = None
        self.raise_timeout = False

        self._document_id = 70000
        self._transaction_id = 900000
        self._router: Optional[MockRouter] = None

    # ===========================================
    # Configuration
    # ===========================================

    def add_goods(self, company_id: int, goods: List[Dict[str, Any]]) -> None:
        self.goods.setdefault(company_id, []).extend(goods)

    def fail_goods(
        self,
        company_id: int,
        status: int = 500,
        body: str = "upstream exploded",
        from_page: int = 1,
    ) -> None:
        self.goods_failures[company_id] = (status, body, from_page)

    def fail_documents(self, status: int = 422, body: str = '{"success":false,"meta":{"message":"bad storage"}}') -> None:
        self.document_failure = (status, body)

    def fail_operations(self, status: int = 500, body: str = "operation failed") -> None:
        self.operation_failure = (status, body)

    # ===========================================
    # Mock Router Setup
    # ===========================================

    @property
    def router(self) -> MockRouter:
        return self._router

    def activate(self) -> MockRouter:
        """Activate the mock server and return the router."""
        self._router = respx.mock(base_url=self.BASE_URL, assert_all_called=False)
        self._setup_routes()
        return self._router

    def _setup_routes(self):
        self._router.get(path__regex=r"/api/v1/goods/\d+").mock(
            side_effect=self._handle_goods
        )
        self._router.post(path__regex=r"/api/v1/storage_operations/documents/\d+").mock(
            side_effect=self._handle_document
        )
        self._router.post(path__regex=r"/api/v1/storage_operations/operations/\d+").mock(
            side_effect=self._handle_operation
        )

    def _company_id(self, request: httpx.Request) -> int:
        return int(self._COMPANY.search(request.url.path).group(1))

    def _handle_goods(self, request: httpx.Request) -> httpx.Response:
        if self.raise_timeout:
            raise httpx.ReadTimeout("timed out", request=request)

        company_id = self._company_id(request)
        page = int(request.url.params.get("page", "1"))
        count = int(request.url.params.get("count", "100"))
        self.goods_requests.append((company_id, page, count))

        failure = self.goods_failures.get(company_id)
        if failure and page >= failure[2]:
            status, body, _ = failure
            return httpx.Response(status, text=body)

        goods = self.goods.get(company_id, [])
        start = (page - 1) * count
        return httpx.Response(200, json={
            "success": True,
            "data": goods[start:start + count],
            "meta": {"count": len(goods)},
        })

    def _handle_document(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        self.documents.append(RecordedCall(self._company_id(request), body, dict(request.headers)))

        if self.document_failure:
            status, text = self.document_failure
            return httpx.Response(status, text=text)

        self._document_id += 1
        return httpx.Response(201, json={
            "success": True,
            "data": {
                "id": self._document_id,
                "type_id": body["type_id"],
                "storage_id": body["storage_id"],
                "comment": body["comment"],
                "create_date": body["create_date"],
            },
            "meta": [],
        })

    def _handle_operation(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        self.operations.append(RecordedCall(self._company_id(request), body, dict(request.headers)))

        if self.operation_failure:
            status, text = self.operation_failure
            return httpx.Response(status, text=text)

        transactions = []
        for line in body["goods_transactions"]:
            self._transaction_id += 1
            transactions.append({
                "id": self._transaction_id,
                "document_id": line["document_id"],
                "good_id": line["good_id"],
                "amount": line["amount"],
                "cost": line["cost"],
            })
        return httpx.Response(201, json={
            "success": True,
            "data": {"document": {"id": body["goods_transactions"][0]["document_id"]}, "transactions": transactions},
            "meta": [],
        })
