"""
UnitTrack - Remote Inventory Client Tests

Date/time-zone formatting, payload building and HTTP error mapping for the
remote inventory API client. HTTP traffic is served by respx.
"""

from datetime import datetime, timezone

import httpx
import pytest
import respx

from app.schemas.remote_inventory import (
    GoodsTransactionLine,
    StorageDocumentRequest,
    StorageOperationRequest,
)
from app.services.remote_inventory_client import (
    RemoteInventoryClient,
    build_document_payload,
    build_operation_payload,
    format_create_date,
    format_time_zone_offset,
)
from app.utils.error_handling import ConfigurationException, RemoteInventoryError
from tests.fixtures.remote_inventory_mock import (
    ACCEPT_HEADER,
    AUTH_HEADER,
    MockRemoteInventoryServer,
    make_good,
)


WINTER_NOON_UTC = datetime(2024, 1, 15, 18, 30, 0, tzinfo=timezone.utc)


# =============================================================================
# DATE / TIME ZONE FORMATTING
# =============================================================================

class TestDateFormatting:
    """Wall-clock dates and offsets sent to the remote API."""

    def test_create_date_in_warehouse_zone(self):
        assert format_create_date(WINTER_NOON_UTC, "America/Mexico_City") == "2024-01-15 12:30:00"

    def test_create_date_defaults_to_utc(self):
        assert format_create_date(WINTER_NOON_UTC) == "2024-01-15 18:30:00"

    def test_naive_datetime_is_treated_as_utc(self):
        naive = datetime(2024, 1, 15, 18, 30, 0)
        assert format_create_date(naive, "UTC") == "2024-01-15 18:30:00"

    def test_unknown_zone_falls_back_to_utc(self):
        assert format_create_date(WINTER_NOON_UTC, "Mars/Olympus_Mons") == "2024-01-15 18:30:00"

    def test_explicit_offset_zone(self):
        assert format_create_date(WINTER_NOON_UTC, "+02:00") == "2024-01-15 20:30:00"

    def test_offset_for_named_zone(self):
        assert format_time_zone_offset("America/Mexico_City", WINTER_NOON_UTC) == "-06:00"
        assert format_time_zone_offset("Asia/Kolkata", WINTER_NOON_UTC) == "+05:30"

    def test_offset_passthrough_and_defaults(self):
        assert format_time_zone_offset("+03:00") == "+03:00"
        assert format_time_zone_offset(None) == "+00:00"
        assert format_time_zone_offset("") == "+00:00"

    def test_offset_never_raises_on_bad_zone(self):
        assert format_time_zone_offset("Not/A_Zone", WINTER_NOON_UTC) == "+00:00"


# =============================================================================
# PAYLOADS
# =============================================================================

class TestPayloadBuilders:
    """Outbound request bodies."""

    def test_document_payload(self):
        payload = build_document_payload(StorageDocumentRequest(
            type_id=7,
            comment="Transfer TRF-1 departure",
            storage_id=9001,
            create_date=WINTER_NOON_UTC,
            time_zone="America/Mexico_City",
        ))

        assert payload == {
            "type_id": 7,
            "comment": "Transfer TRF-1 departure",
            "storage_id": 9001,
            "create_date": "2024-01-15 12:30:00",
            "time_zone": "-06:00",
        }

    def test_operation_payload_drops_unset_line_fields(self):
        payload = build_operation_payload(StorageOperationRequest(
            type_id=4,
            comment="Storage operation for transfer TRF-1",
            create_date=WINTER_NOON_UTC,
            storage_id=9001,
            master_id=77,
            goods_transactions=[
                GoodsTransactionLine(
                    document_id=70001,
                    good_id=7501,
                    amount=3,
                    cost_per_unit=12.5,
                    cost=37.5,
                    operation_unit_type=2,
                    master_id=77,
                ),
            ],
        ))

        assert payload["master_id"] == 77
        assert payload["time_zone"] == "+00:00"
        line = payload["goods_transactions"][0]
        assert line == {
            "document_id": 70001,
            "good_id": 7501,
            "amount": 3,
            "cost_per_unit": 12.5,
            "discount": 0,
            "cost": 37.5,
            "operation_unit_type": 2,
            "master_id": 77,
        }

    def test_operation_without_master_id_omits_it(self):
        payload = build_operation_payload(StorageOperationRequest(
            type_id=3,
            comment="arrival",
            create_date=WINTER_NOON_UTC,
            storage_id=9002,
            goods_transactions=[
                GoodsTransactionLine(document_id=1, good_id=1, amount=1, cost_per_unit=0, cost=0),
            ],
        ))
        assert "master_id" not in payload

    def test_outbound_models_are_strict(self):
        with pytest.raises(ValueError):
            StorageDocumentRequest(
                type_id=5,
                comment="wrong type",
                storage_id=9001,
                create_date=WINTER_NOON_UTC,
            )
        with pytest.raises(ValueError):
            StorageDocumentRequest(
                type_id=3,
                comment="extra field",
                storage_id=9001,
                create_date=WINTER_NOON_UTC,
                unexpected=True,
            )


# =============================================================================
# HTTP CLIENT
# =============================================================================

class TestRemoteInventoryClient:
    """HTTP behavior against the mock remote API."""

    @pytest.mark.asyncio
    async def test_fetch_goods_page(self, remote_server, remote_client):
        remote_server.add_goods(501, [
            make_good(1, 9001, 3, barcode="7501"),
            make_good(2, 9001, "4.0", barcode=None),
        ])

        goods = await remote_client.fetch_goods_page(501, page=1)

        assert [good.good_id for good in goods] == [1, 2]
        assert goods[0].barcode == "7501"
        assert remote_server.goods_requests == [(501, 1, 100)]

        request = remote_server.router.calls.last.request
        assert request.headers["authorization"] == AUTH_HEADER
        assert request.headers["accept"] == ACCEPT_HEADER

    @pytest.mark.asyncio
    async def test_non_2xx_raises_with_truncated_body(self, remote_server, remote_client):
        remote_server.fail_goods(501, status=503, body="x" * 2000)

        with pytest.raises(RemoteInventoryError) as exc_info:
            await remote_client.fetch_goods_page(501, page=2)

        error = exc_info.value
        assert error.status_code == 502
        assert error.stage == "goods fetch"
        assert error.upstream_status == 503
        assert len(error.body_excerpt) == 503
        assert error.body_excerpt.endswith("...")
        assert error.details["page"] == 2
        assert error.details["company_id"] == 501

    @pytest.mark.asyncio
    async def test_timeout_raises_remote_error(self, remote_server, remote_client):
        remote_server.raise_timeout = True

        with pytest.raises(RemoteInventoryError) as exc_info:
            await remote_client.fetch_goods_page(501, page=1)

        assert exc_info.value.stage == "goods fetch"
        assert exc_info.value.upstream_status is None

    @pytest.mark.asyncio
    async def test_success_false_envelope_is_an_error(self, remote_client):
        with respx.mock(base_url=MockRemoteInventoryServer.BASE_URL) as router:
            router.get(path__regex=r"/api/v1/goods/\d+").mock(
                return_value=httpx.Response(200, json={"success": False, "data": [], "meta": []})
            )
            with pytest.raises(RemoteInventoryError) as exc_info:
                await remote_client.fetch_goods_page(501, page=1)

        assert "success=false" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_unexpected_payload_is_an_error(self, remote_client):
        with respx.mock(base_url=MockRemoteInventoryServer.BASE_URL) as router:
            router.get(path__regex=r"/api/v1/goods/\d+").mock(
                return_value=httpx.Response(200, json={"success": True, "data": [{"title": "no id"}]})
            )
            with pytest.raises(RemoteInventoryError) as exc_info:
                await remote_client.fetch_goods_page(501, page=1)

        assert exc_info.value.details["errors"]

    @pytest.mark.asyncio
    async def test_non_json_body_is_an_error(self, remote_client):
        with respx.mock(base_url=MockRemoteInventoryServer.BASE_URL) as router:
            router.get(path__regex=r"/api/v1/goods/\d+").mock(
                return_value=httpx.Response(200, text="<html>maintenance</html>")
            )
            with pytest.raises(RemoteInventoryError) as exc_info:
                await remote_client.fetch_goods_page(501, page=1)

        assert exc_info.value.body_excerpt == "<html>maintenance</html>"

    @pytest.mark.asyncio
    async def test_missing_credentials_fail_before_any_request(self, remote_server):
        client = RemoteInventoryClient(
            auth_header="",
            accept_header=ACCEPT_HEADER,
            base_url=MockRemoteInventoryServer.BASE_URL,
        )

        assert client.has_credentials is False
        with pytest.raises(ConfigurationException):
            await client.fetch_goods_page(501, page=1)
        assert remote_server.goods_requests == []

    @pytest.mark.asyncio
    async def test_invalid_company_id(self, remote_server, remote_client):
        with pytest.raises(ConfigurationException):
            await remote_client.fetch_goods_page(0, page=1)
        assert remote_server.goods_requests == []

    def test_master_id_is_required_for_operations(self):
        client = RemoteInventoryClient(
            auth_header=AUTH_HEADER,
            accept_header=ACCEPT_HEADER,
            base_url=MockRemoteInventoryServer.BASE_URL,
            default_master_id=0,
        )
        with pytest.raises(ConfigurationException):
            client.require_master_id()

    @pytest.mark.asyncio
    async def test_post_document_and_operation(self, remote_server, remote_client):
        document = await remote_client.post_document(
            501,
            StorageDocumentRequest(
                type_id=3,
                comment="Transfer TRF-1 arrival",
                storage_id=9001,
                create_date=WINTER_NOON_UTC,
                time_zone="America/Mexico_City",
            ),
        )
        operation = await remote_client.post_operation(
            501,
            StorageOperationRequest(
                type_id=3,
                comment="Storage operation for transfer TRF-1",
                create_date=WINTER_NOON_UTC,
                storage_id=9001,
                master_id=77,
                time_zone="America/Mexico_City",
                goods_transactions=[
                    GoodsTransactionLine(
                        document_id=document.id,
                        good_id=7501,
                        amount=2,
                        cost_per_unit=10,
                        cost=20,
                        operation_unit_type=2,
                        master_id=77,
                    ),
                ],
            ),
        )

        assert document.id == 70001
        assert len(operation.transactions) == 1
        assert remote_server.documents[0].company_id == 501
        assert remote_server.documents[0].body["create_date"] == "2024-01-15 12:30:00"
        assert remote_server.operations[0].body["goods_transactions"][0]["document_id"] == 70001

    @pytest.mark.asyncio
    async def test_document_rejection_surfaces_upstream_status(self, remote_server, remote_client):
        remote_server.fail_documents(status=422)

        with pytest.raises(RemoteInventoryError) as exc_info:
            await remote_client.post_document(
                501,
                StorageDocumentRequest(
                    type_id=7,
                    comment="departure",
                    storage_id=9001,
                    create_date=WINTER_NOON_UTC,
                ),
            )

        assert exc_info.value.stage == "storage document creation"
        assert exc_info.value.upstream_status == 422
        assert "bad storage" in exc_info.value.body_excerpt
