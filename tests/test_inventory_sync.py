"""
UnitTrack - Inventory Sync Tests

Reconciliation of local units against remote consumables stock.
"""

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.models.product_stock import ProductStockUnit, ProductStockUsageHistory
from app.schemas.remote_inventory import RemoteGood
from app.services.inventory_sync_service import (
    INSERT_CHUNK_SIZE,
    INT32_MAX,
    MAX_INSERT_PER_PRODUCT,
    InventorySyncService,
    extract_target_count,
    resolve_barcode,
)
from app.services.remote_inventory_client import RemoteInventoryClient
from app.tasks import celery_tasks
from app.utils.error_handling import (
    BadRequestException,
    ConfigurationException,
    NotFoundException,
    RemoteInventoryError,
)
from tests.fixtures.factories import (
    CONSUMABLES_STORAGE_A,
    CONSUMABLES_STORAGE_B,
    create_units,
    create_warehouse,
)
from tests.fixtures.remote_inventory_mock import MockRemoteInventoryServer, make_good


async def count_units(db, warehouse_id, barcode, include_deleted=False):
    query = (
        select(func.count(ProductStockUnit.id))
        .where(ProductStockUnit.current_warehouse_id == warehouse_id)
        .where(ProductStockUnit.barcode == barcode)
    )
    if not include_deleted:
        query = query.where(ProductStockUnit.is_deleted.is_(False))
    return (await db.execute(query)).scalar_one()


def good(good_id, amount, barcode=None, storage_id=CONSUMABLES_STORAGE_A, title=""):
    return RemoteGood.model_validate(make_good(good_id, storage_id, amount, barcode=barcode, title=title))


# =============================================================================
# BARCODE / TARGET RESOLUTION
# =============================================================================

class TestBarcodeResolution:
    """Canonical barcode for a remote good."""

    def test_numeric_barcode_wins(self):
        assert resolve_barcode(good(10, 1, barcode="7501")) == 7501

    def test_leading_integer_is_parsed(self):
        assert resolve_barcode(good(10, 1, barcode=" 123abc")) == 123

    def test_non_numeric_barcode_falls_back_to_good_id(self):
        assert resolve_barcode(good(10, 1, barcode="ABC-1")) == 10

    def test_out_of_range_barcode_falls_back_to_good_id(self):
        assert resolve_barcode(good(10, 1, barcode="99999999999")) == 10
        assert resolve_barcode(good(10, 1, barcode="-5")) == 10

    def test_blank_barcode_uses_good_id(self):
        assert resolve_barcode(good(10, 1, barcode="   ")) == 10

    def test_unusable_good(self):
        assert resolve_barcode(good(INT32_MAX + 1, 1, barcode="n/a")) is None


class TestTargetCount:
    """Amount held in the consumables storage."""

    def test_numeric_string_is_floored(self):
        assert extract_target_count(good(1, "4.7"), CONSUMABLES_STORAGE_A) == 4

    def test_negative_and_junk_become_zero(self):
        assert extract_target_count(good(1, -3), CONSUMABLES_STORAGE_A) == 0
        assert extract_target_count(good(1, "junk"), CONSUMABLES_STORAGE_A) == 0
        assert extract_target_count(good(1, None), CONSUMABLES_STORAGE_A) == 0

    def test_other_storage_is_ignored(self):
        assert extract_target_count(good(1, 9, storage_id=CONSUMABLES_STORAGE_B), CONSUMABLES_STORAGE_A) == 0


# =============================================================================
# SYNC SERVICE
# =============================================================================

class TestInventorySync:
    """End-to-end sync against the mock remote API and SQLite."""

    @pytest.mark.asyncio
    async def test_inserts_shortfall_and_counts_excess(self, db_session, remote_server, remote_client, warehouse_a):
        await create_units(db_session, warehouse_a, barcode=7501, count=2)
        await create_units(db_session, warehouse_a, barcode=7501, count=1, is_deleted=True)
        await create_units(db_session, warehouse_a, barcode=7503, count=3)
        remote_server.add_goods(501, [
            make_good(1, CONSUMABLES_STORAGE_A, 5, barcode="7501", title="Nitrile gloves"),
            make_good(2, CONSUMABLES_STORAGE_A, 0, barcode="7502"),
            make_good(3, CONSUMABLES_STORAGE_A, 1, barcode="7503"),
        ])

        result = await InventorySyncService(db_session, remote_client).sync()

        summary = result.warehouses[0]
        assert summary.products_processed == 3
        assert summary.fetched == 6
        assert summary.existing == 5
        assert summary.to_insert == 3
        assert summary.inserted == 3
        assert summary.over_target_existing == 2
        assert len(summary.inserted_unit_ids) == 3
        assert await count_units(db_session, warehouse_a.id, 7501) == 5
        assert await count_units(db_session, warehouse_a.id, 7503) == 3

        inserted = (await db_session.execute(
            select(ProductStockUnit).where(ProductStockUnit.id.in_(summary.inserted_unit_ids))
        )).scalars().all()
        assert {unit.description for unit in inserted} == {"Nitrile gloves"}
        assert all(unit.current_cabinet_id is None for unit in inserted)
        assert not any(unit.is_deleted or unit.is_empty or unit.is_being_used for unit in inserted)

    @pytest.mark.asyncio
    async def test_second_run_is_idempotent(self, db_session, remote_server, remote_client, warehouse_a):
        remote_server.add_goods(501, [make_good(1, CONSUMABLES_STORAGE_A, 4, barcode="7501")])
        service = InventorySyncService(db_session, remote_client)

        first = await service.sync()
        second = await service.sync()

        assert first.totals["inserted"] == 4
        assert second.totals["inserted"] == 0
        assert second.totals["existing"] == 4
        assert await count_units(db_session, warehouse_a.id, 7501) == 4

    @pytest.mark.asyncio
    async def test_goods_sharing_a_barcode_are_summed(self, db_session, remote_server, remote_client, warehouse_a):
        remote_server.add_goods(501, [
            make_good(1, CONSUMABLES_STORAGE_A, 2, barcode="7501"),
            make_good(2, CONSUMABLES_STORAGE_A, "3", barcode="7501"),
        ])

        result = await InventorySyncService(db_session, remote_client).sync()

        assert result.totals["inserted"] == 5
        assert await count_units(db_session, warehouse_a.id, 7501) == 5

    @pytest.mark.asyncio
    async def test_pages_until_short_page(self, db_session, remote_server, remote_client, warehouse_a):
        remote_server.add_goods(501, [
            make_good(good_id, CONSUMABLES_STORAGE_A, 0) for good_id in range(1, 151)
        ])

        result = await InventorySyncService(db_session, remote_client).sync()

        assert remote_server.goods_requests == [(501, 1, 100), (501, 2, 100)]
        assert result.totals["products_processed"] == 150

    @pytest.mark.asyncio
    async def test_full_last_page_triggers_one_more_request(self, db_session, remote_server, remote_client, warehouse_a):
        remote_server.add_goods(501, [
            make_good(good_id, CONSUMABLES_STORAGE_A, 0) for good_id in range(1, 101)
        ])

        await InventorySyncService(db_session, remote_client).sync()

        assert [page for _, page, _ in remote_server.goods_requests] == [1, 2]

    @pytest.mark.asyncio
    async def test_dry_run_writes_nothing(self, db_session, remote_server, remote_client, warehouse_a):
        remote_server.add_goods(501, [make_good(1, CONSUMABLES_STORAGE_A, 7, barcode="7501")])

        result = await InventorySyncService(db_session, remote_client).sync(dry_run=True)

        assert result.totals["to_insert"] == 7
        assert result.totals["inserted"] == 0
        assert result.meta["dry_run"] is True
        assert await count_units(db_session, warehouse_a.id, 7501) == 0

    @pytest.mark.asyncio
    async def test_per_product_cap(self, db_session, remote_server, remote_client, warehouse_a):
        remote_server.add_goods(501, [make_good(1, CONSUMABLES_STORAGE_A, 2500, barcode="7501")])

        result = await InventorySyncService(db_session, remote_client).sync()

        summary = result.warehouses[0]
        assert summary.inserted == MAX_INSERT_PER_PRODUCT
        assert summary.skipped_invalid == 500
        assert [capped.to_dict() for capped in summary.capped_products] == [
            {"barcode": 7501, "requested": 2500, "applied": MAX_INSERT_PER_PRODUCT},
        ]
        assert result.totals["capped_products"] == 1
        assert await count_units(db_session, warehouse_a.id, 7501) == MAX_INSERT_PER_PRODUCT

    @pytest.mark.asyncio
    async def test_unusable_goods_are_skipped(self, db_session, remote_server, remote_client, warehouse_a):
        remote_server.add_goods(501, [
            make_good(INT32_MAX + 10, CONSUMABLES_STORAGE_A, 4, barcode="not-a-number"),
            make_good(INT32_MAX + 11, CONSUMABLES_STORAGE_A, 0, barcode=None),
        ])

        result = await InventorySyncService(db_session, remote_client).sync()

        assert result.totals["skipped_invalid"] == 5
        assert result.totals["inserted"] == 0

    @pytest.mark.asyncio
    async def test_sync_writes_no_usage_history(self, db_session, remote_server, remote_client, warehouse_a):
        remote_server.add_goods(501, [make_good(1, CONSUMABLES_STORAGE_A, 3, barcode="7501")])

        await InventorySyncService(db_session, remote_client).sync()

        history = (await db_session.execute(select(func.count(ProductStockUsageHistory.id)))).scalar_one()
        assert history == 0

    @pytest.mark.asyncio
    async def test_failed_warehouse_does_not_stop_others(
        self, db_session, remote_server, remote_client, warehouse_a, warehouse_b
    ):
        remote_server.add_goods(501, [make_good(1, CONSUMABLES_STORAGE_A, 2, barcode="7501")])
        remote_server.fail_goods(502, status=500)

        result = await InventorySyncService(db_session, remote_client).sync()

        by_name = {summary.warehouse_name: summary for summary in result.warehouses}
        assert by_name["Branch North"].inserted == 2
        assert by_name["Branch North"].error is None
        failed = by_name["Branch South"]
        assert failed.inserted == 0
        assert failed.error["stage"] == "goods fetch"
        assert failed.error["page"] == 1
        assert failed.error["upstream_status"] == 500
        assert result.totals["failed_warehouses"] == 1
        assert await count_units(db_session, warehouse_a.id, 7501) == 2

    @pytest.mark.asyncio
    async def test_failure_on_second_page(
        self, db_session, remote_server, remote_client, warehouse_a, warehouse_b
    ):
        remote_server.add_goods(501, [make_good(1, CONSUMABLES_STORAGE_A, 1, barcode="7501")])
        remote_server.add_goods(502, [
            make_good(index, CONSUMABLES_STORAGE_B, 1) for index in range(1, 101)
        ])
        remote_server.fail_goods(502, status=500, from_page=2)

        result = await InventorySyncService(db_session, remote_client).sync()

        by_name = {summary.warehouse_name: summary for summary in result.warehouses}
        failed = by_name["Branch South"]
        assert failed.error["page"] == 2
        assert failed.error["upstream_status"] == 500
        assert failed.inserted == 0
        assert [request for request in remote_server.goods_requests if request[0] == 502] == [
            (502, 1, 100),
            (502, 2, 100),
        ]
        assert by_name["Branch North"].inserted == 1
        assert await count_units(db_session, warehouse_b.id, 1) == 0

    @pytest.mark.asyncio
    async def test_inserts_are_chunked(self, db_session, remote_server, remote_client, warehouse_a):
        remote_server.add_goods(501, [make_good(1, CONSUMABLES_STORAGE_A, 1200, barcode="7501")])
        service = InventorySyncService(db_session, remote_client)
        insert_units = service.stock.insert_units
        chunk_sizes = []

        async def recording_insert(rows, chunk_size):
            chunk_sizes.append(len(rows))
            return await insert_units(rows, chunk_size)

        service.stock.insert_units = recording_insert

        result = await service.sync()

        assert chunk_sizes == [INSERT_CHUNK_SIZE, INSERT_CHUNK_SIZE, 200]
        assert result.totals["inserted"] == 1200
        assert await count_units(db_session, warehouse_a.id, 7501) == 1200

    @pytest.mark.asyncio
    async def test_each_barcode_commits_on_its_own(self, db_session, remote_server, remote_client, warehouse_a):
        remote_server.add_goods(501, [
            make_good(1, CONSUMABLES_STORAGE_A, 3, barcode="7501"),
            make_good(2, CONSUMABLES_STORAGE_A, 2, barcode="7502"),
        ])
        service = InventorySyncService(db_session, remote_client)
        insert_units = service.stock.insert_units

        async def failing_insert(rows, chunk_size):
            if rows[0]["barcode"] == 7502:
                raise RuntimeError("connection dropped")
            return await insert_units(rows, chunk_size)

        service.stock.insert_units = failing_insert

        with pytest.raises(RuntimeError):
            await service.sync(warehouse_id=warehouse_a.id)

        assert await count_units(db_session, warehouse_a.id, 7501) == 3
        assert await count_units(db_session, warehouse_a.id, 7502) == 0

    @pytest.mark.asyncio
    async def test_single_warehouse_failure_is_raised(self, db_session, remote_server, remote_client, warehouse_a):
        remote_server.fail_goods(501, status=503)

        with pytest.raises(RemoteInventoryError) as exc_info:
            await InventorySyncService(db_session, remote_client).sync(warehouse_id=warehouse_a.id)

        assert exc_info.value.upstream_status == 503

    @pytest.mark.asyncio
    async def test_only_requested_warehouse_is_synced(
        self, db_session, remote_server, remote_client, warehouse_a, warehouse_b
    ):
        remote_server.add_goods(501, [make_good(1, CONSUMABLES_STORAGE_A, 1, barcode="7501")])
        remote_server.add_goods(502, [make_good(1, CONSUMABLES_STORAGE_B, 1, barcode="7501")])

        result = await InventorySyncService(db_session, remote_client).sync(warehouse_id=warehouse_b.id)

        assert [summary.warehouse_id for summary in result.warehouses] == [warehouse_b.id]
        assert {company for company, _, _ in remote_server.goods_requests} == {502}

    @pytest.mark.asyncio
    async def test_unknown_or_inactive_warehouse(self, db_session, remote_server, remote_client):
        inactive = await create_warehouse(db_session, "Closed", location_id=600, storage_id=1, is_active=False)

        with pytest.raises(NotFoundException):
            await InventorySyncService(db_session, remote_client).sync(warehouse_id=inactive.id)

    @pytest.mark.asyncio
    async def test_no_mapped_warehouses(self, db_session, remote_server, remote_client):
        await create_warehouse(db_session, "Unmapped")

        with pytest.raises(BadRequestException):
            await InventorySyncService(db_session, remote_client).sync()
        assert remote_server.goods_requests == []

    @pytest.mark.asyncio
    async def test_missing_credentials(self, db_session, remote_server, warehouse_a):
        client = RemoteInventoryClient(
            auth_header="",
            accept_header="",
            base_url=MockRemoteInventoryServer.BASE_URL,
        )

        with pytest.raises(ConfigurationException):
            await InventorySyncService(db_session, client).sync()
        assert remote_server.goods_requests == []


class TestInventorySyncTask:
    """Celery entry point."""

    @pytest.mark.asyncio
    async def test_task_body_runs_sync(self, db_session, remote_server, warehouse_a, monkeypatch):
        monkeypatch.setattr(
            celery_tasks,
            "async_session_factory",
            async_sessionmaker(db_session.bind, expire_on_commit=False),
        )
        remote_server.add_goods(501, [make_good(1, CONSUMABLES_STORAGE_A, 2, barcode="7501")])

        result = await celery_tasks._inventory_sync(str(warehouse_a.id), True)

        assert result["totals"]["to_insert"] == 2
        assert result["meta"]["dry_run"] is True
        assert result["warehouses"][0]["warehouse_id"] == str(warehouse_a.id)
