"""Tests for IntervalStore persistence against in-memory SQLite."""

import math

import pytest

from conftest import EPOCH, HOUR, make_depth, make_earnings, make_runepool, make_swap
from midgard_history.data.models import ResourceType
from midgard_history.data.store import IntervalStore
from midgard_history.exceptions import StorageError
from midgard_history.query.builder import ParameterizedQuery, QueryBuilder
from midgard_history.query.schema import SCHEMAS
from midgard_history.query.spec import QuerySpecification


async def _all(store: IntervalStore, resource: ResourceType) -> list:
    query = QueryBuilder().build(QuerySpecification(order="asc"), SCHEMAS[resource])
    return await store.fetch_intervals(resource, query)


class TestInsert:
    @pytest.mark.asyncio
    async def test_insert_and_read_back(self, store: IntervalStore) -> None:
        interval = make_depth(EPOCH)
        assert await store.insert_interval(ResourceType.DEPTH, interval) is True

        rows = await _all(store, ResourceType.DEPTH)
        assert rows == [interval]

    @pytest.mark.asyncio
    async def test_duplicate_is_ignored(self, store: IntervalStore) -> None:
        interval = make_swap(EPOCH)
        assert await store.insert_interval(ResourceType.SWAP, interval) is True
        assert await store.insert_interval(ResourceType.SWAP, interval) is False
        assert await store.count_intervals(ResourceType.SWAP) == 1

    @pytest.mark.asyncio
    async def test_insert_intervals_counts_new_rows(self, store: IntervalStore) -> None:
        first = [make_runepool(EPOCH), make_runepool(EPOCH + HOUR)]
        assert await store.insert_intervals(ResourceType.RUNEPOOL, first) == 2

        overlapping = [make_runepool(EPOCH + HOUR), make_runepool(EPOCH + 2 * HOUR)]
        assert await store.insert_intervals(ResourceType.RUNEPOOL, overlapping) == 1
        assert await store.count_intervals(ResourceType.RUNEPOOL) == 3

    @pytest.mark.asyncio
    async def test_nan_round_trip(self, store: IntervalStore) -> None:
        await store.insert_interval(
            ResourceType.DEPTH, make_depth(EPOCH, asset_price_usd=math.nan, luvi=math.nan)
        )

        (row,) = await _all(store, ResourceType.DEPTH)
        assert math.isnan(row.asset_price_usd)
        assert math.isnan(row.luvi)
        assert row.asset_price == 25.5

    @pytest.mark.asyncio
    async def test_earnings_pools_round_trip_in_order(self, store: IntervalStore) -> None:
        interval = make_earnings(EPOCH, pools=("ETH.ETH", "BTC.BTC", "BNB.BNB"))
        await store.insert_interval(ResourceType.EARNINGS, interval)

        (row,) = await _all(store, ResourceType.EARNINGS)
        assert row == interval
        assert row.pool_names == ["ETH.ETH", "BTC.BTC", "BNB.BNB"]

    @pytest.mark.asyncio
    async def test_duplicate_earnings_does_not_duplicate_pools(
        self, store: IntervalStore
    ) -> None:
        interval = make_earnings(EPOCH, pools=("BTC.BTC",))
        await store.insert_interval(ResourceType.EARNINGS, interval)
        await store.insert_interval(ResourceType.EARNINGS, interval)

        (row,) = await _all(store, ResourceType.EARNINGS)
        assert len(row.pools) == 1

    @pytest.mark.asyncio
    async def test_out_of_range_integer_raises_storage_error(
        self, store: IntervalStore
    ) -> None:
        with pytest.raises(StorageError):
            await store.insert_interval(ResourceType.RUNEPOOL, make_runepool(EPOCH, units=2**64))
        assert await store.count_intervals(ResourceType.RUNEPOOL) == 0


class TestReadHelpers:
    @pytest.mark.asyncio
    async def test_latest_end_time(self, store: IntervalStore) -> None:
        assert await store.latest_end_time(ResourceType.SWAP) is None
        await store.insert_intervals(
            ResourceType.SWAP, [make_swap(EPOCH), make_swap(EPOCH + HOUR)]
        )
        assert await store.latest_end_time(ResourceType.SWAP) == EPOCH + 2 * HOUR

    @pytest.mark.asyncio
    async def test_bad_sql_raises_storage_error(self, store: IntervalStore) -> None:
        query = ParameterizedQuery(sql="SELECT id FROM no_such_table", params=())
        with pytest.raises(StorageError):
            await store.fetch_intervals(ResourceType.DEPTH, query)
