"""End-to-end query tests: built SQL executed against a populated store."""

import pytest
import pytest_asyncio

from conftest import EPOCH, HOUR, make_depth, make_earnings, make_runepool, make_swap
from midgard_history.data.models import ResourceType
from midgard_history.data.store import IntervalStore
from midgard_history.exceptions import StorageError
from midgard_history.query.builder import QueryBuilder
from midgard_history.query.schema import SCHEMAS
from midgard_history.query.spec import QuerySpecification

DAY = 24 * HOUR


async def _query(store: IntervalStore, resource: ResourceType, params: dict) -> list:
    schema = SCHEMAS[resource]
    spec = QuerySpecification.from_params(params, schema)
    return await store.fetch_intervals(resource, QueryBuilder().build(spec, schema))


@pytest_asyncio.fixture
async def populated(store: IntervalStore) -> IntervalStore:
    await store.insert_intervals(
        ResourceType.SWAP,
        [make_swap(EPOCH + i * HOUR, total_volume=100 * (i + 1)) for i in range(10)],
    )
    await store.insert_intervals(
        ResourceType.EARNINGS,
        [
            make_earnings(EPOCH, pools=("BTC.BTC", "ETH.ETH")),
            make_earnings(EPOCH + HOUR, pools=("BTC/BTC",)),
            make_earnings(EPOCH + 2 * HOUR, pools=("ETH.ETH",)),
        ],
    )
    await store.insert_intervals(
        ResourceType.RUNEPOOL, [make_runepool(EPOCH + i * HOUR, units=i) for i in range(3)]
    )
    await store.insert_intervals(
        ResourceType.DEPTH,
        [make_depth(EPOCH), make_depth(EPOCH + DAY), make_depth(EPOCH + 2 * DAY)],
    )
    return store


class TestQueryExecution:
    @pytest.mark.asyncio
    async def test_threshold_filter(self, populated: IntervalStore) -> None:
        rows = await _query(populated, ResourceType.SWAP, {"volume_gt": "800"})
        assert [r.total_volume for r in rows] == [900, 1000]

    @pytest.mark.asyncio
    async def test_pool_containment_is_exact(self, populated: IntervalStore) -> None:
        rows = await _query(populated, ResourceType.EARNINGS, {"pool": "BTC.BTC"})
        assert [r.start_time.timestamp() for r in rows] == [EPOCH]

        assert await _query(populated, ResourceType.EARNINGS, {"pool": "BTC"}) == []

    @pytest.mark.asyncio
    async def test_pool_containment_returns_full_pool_list(
        self, populated: IntervalStore
    ) -> None:
        (row,) = await _query(populated, ResourceType.EARNINGS, {"pool": "BTC.BTC"})
        assert row.pool_names == ["BTC.BTC", "ETH.ETH"]

    @pytest.mark.asyncio
    async def test_date_range_is_inclusive_by_day(self, populated: IntervalStore) -> None:
        # EPOCH is 2022-04-01; the third depth interval starts on 2022-04-03
        rows = await _query(
            populated, ResourceType.DEPTH, {"date_range": "2022-04-01,2022-04-02"}
        )
        assert [r.start_time.timestamp() for r in rows] == [EPOCH, EPOCH + DAY]

    @pytest.mark.asyncio
    async def test_page_beyond_data_is_empty(self, populated: IntervalStore) -> None:
        assert await _query(populated, ResourceType.SWAP, {"page": "9999"}) == []

    @pytest.mark.asyncio
    async def test_limit_clamped_to_cap(self, store: IntervalStore) -> None:
        await store.insert_intervals(
            ResourceType.RUNEPOOL, [make_runepool(EPOCH + i * HOUR) for i in range(450)]
        )
        rows = await _query(store, ResourceType.RUNEPOOL, {"limit": "1000"})
        assert len(rows) == 400

    @pytest.mark.asyncio
    async def test_pagination(self, populated: IntervalStore) -> None:
        rows = await _query(
            populated, ResourceType.SWAP, {"limit": "3", "page": "1", "order": "asc"}
        )
        assert [r.total_volume for r in rows] == [400, 500, 600]

    @pytest.mark.asyncio
    async def test_timestamp_alias_matches_start_time(self, populated: IntervalStore) -> None:
        by_alias = await _query(
            populated, ResourceType.SWAP, {"sort_by": "timestamp", "order": "desc"}
        )
        by_column = await _query(
            populated, ResourceType.SWAP, {"sort_by": "start_time", "order": "desc"}
        )
        assert by_alias == by_column
        assert by_alias[0].total_volume == 1000

    @pytest.mark.asyncio
    async def test_runepool_newest_first_by_default(self, populated: IntervalStore) -> None:
        rows = await _query(populated, ResourceType.RUNEPOOL, {})
        assert [r.units for r in rows] == [2, 1, 0]

    @pytest.mark.asyncio
    async def test_unknown_sort_column_raises(self, populated: IntervalStore) -> None:
        with pytest.raises(StorageError):
            await _query(populated, ResourceType.SWAP, {"sort_by": "no_such_column"})
