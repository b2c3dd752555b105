"""Shared test fixtures for the interval history service."""

import json
from datetime import datetime, timezone

import pytest
import pytest_asyncio

from midgard_history.config import AppSettings, IngestionSettings, SourceSettings
from midgard_history.data.database import HistoryDatabase
from midgard_history.data.models import (
    DepthInterval,
    EarningsInterval,
    EarningsPool,
    RunepoolUnitsInterval,
    SwapInterval,
)
from midgard_history.data.store import IntervalStore
from midgard_history.data.watermark import WatermarkStore

EPOCH = 1648771200
HOUR = 3600


def ts(seconds: int) -> datetime:
    return datetime.fromtimestamp(seconds, tz=timezone.utc)


# ---------------------------------------------------------------------------
# Interval factories
# ---------------------------------------------------------------------------


def make_depth(start: int, **overrides) -> DepthInterval:
    values = dict(
        start_time=ts(start),
        end_time=ts(start + HOUR),
        asset_depth=1_000,
        asset_price=25.5,
        asset_price_usd=1800.25,
        liquidity_units=500,
        luvi=0.75,
        members_count=10,
        rune_depth=25_500,
        synth_supply=0,
        synth_units=0,
        units=500,
    )
    values.update(overrides)
    return DepthInterval(**values)


def make_swap(start: int, **overrides) -> SwapInterval:
    values = dict(
        start_time=ts(start),
        end_time=ts(start + HOUR),
        to_asset_count=3,
        to_asset_volume=300,
        to_asset_fees=3,
        to_rune_count=2,
        to_rune_volume=200,
        to_rune_fees=2,
        synth_mint_count=0,
        synth_mint_volume=0,
        synth_mint_fees=0,
        synth_redeem_count=0,
        synth_redeem_volume=0,
        synth_redeem_fees=0,
        total_count=5,
        total_volume=500,
        total_fees=5,
        total_volume_usd=1_000,
        average_slip=1.5,
        rune_price_usd=2.0,
    )
    values.update(overrides)
    return SwapInterval(**values)


def make_pool(name: str, **overrides) -> EarningsPool:
    values = dict(
        pool=name,
        asset_liquidity_fees=10,
        earnings=100,
        rewards=-5,
        rune_liquidity_fees=20,
        saver_earning=1,
        total_liquidity_fees_rune=30,
    )
    values.update(overrides)
    return EarningsPool(**values)


def make_earnings(start: int, pools=("BTC.BTC",), **overrides) -> EarningsInterval:
    values = dict(
        start_time=ts(start),
        end_time=ts(start + HOUR),
        avg_node_count=95.5,
        block_rewards=1_000,
        bonding_earnings=800,
        earnings=2_000,
        liquidity_earnings=1_200,
        liquidity_fees=1_000,
        rune_price_usd=2.0,
        pools=tuple(make_pool(name) for name in pools),
    )
    values.update(overrides)
    return EarningsInterval(**values)


def make_runepool(start: int, **overrides) -> RunepoolUnitsInterval:
    values = dict(start_time=ts(start), end_time=ts(start + HOUR), count=7, units=1_000)
    values.update(overrides)
    return RunepoolUnitsInterval(**values)


def runepool_body(starts: list[int]) -> str:
    """Upstream runepool page containing one interval per start time."""
    intervals = [
        {
            "startTime": str(start),
            "endTime": str(start + HOUR),
            "count": "7",
            "units": "1000",
        }
        for start in starts
    ]
    meta_start = starts[0] if starts else EPOCH
    meta_end = starts[-1] + HOUR if starts else EPOCH + HOUR
    return json.dumps(
        {
            "intervals": intervals,
            "meta": {
                "startTime": str(meta_start),
                "endTime": str(meta_end),
                "count": "7",
                "units": "1000",
            },
        }
    )


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_settings() -> AppSettings:
    """Return AppSettings with test defaults and zero ingestion delays."""
    return AppSettings(
        log_level="DEBUG",
        source=SourceSettings(base_url="https://midgard.test/v2"),
        ingestion=IngestionSettings(
            page_delay=0.0,
            transport_retry_delay=0.0,
            rate_limit_delay=0.0,
            malformed_retry_delay=0.0,
        ),
    )


@pytest_asyncio.fixture
async def database():
    """Connected in-memory HistoryDatabase."""
    async with HistoryDatabase(":memory:") as db:
        yield db


@pytest_asyncio.fixture
async def store(database: HistoryDatabase) -> IntervalStore:
    return IntervalStore(database)


@pytest_asyncio.fixture
async def watermarks(store: IntervalStore) -> WatermarkStore:
    return WatermarkStore(store, epoch=EPOCH)
