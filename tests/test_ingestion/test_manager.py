"""Tests for IngestionManager task lifecycle."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from conftest import EPOCH, runepool_body
from midgard_history.config import IngestionSettings
from midgard_history.data.store import IntervalStore
from midgard_history.data.watermark import WatermarkStore
from midgard_history.ingestion.engine import EngineState
from midgard_history.ingestion.manager import IngestionManager
from midgard_history.ingestion.writer import IngestionWriter


@pytest.fixture
def manager(store: IntervalStore, watermarks: WatermarkStore) -> IngestionManager:
    client = AsyncMock()
    client.fetch_page = AsyncMock(return_value=runepool_body([]))
    # Long page delay: each engine performs one step then parks in sleep
    settings = IngestionSettings(resources=["runepool", "swap"], page_delay=60.0)
    return IngestionManager.from_settings(
        settings, client, IngestionWriter(store, watermarks), watermarks
    )


class TestIngestionManager:
    @pytest.mark.asyncio
    async def test_one_engine_per_resource(self, manager: IngestionManager) -> None:
        assert [e.resource.value for e in manager.engines] == ["runepool", "swap"]

    @pytest.mark.asyncio
    async def test_start_and_stop(self, manager: IngestionManager) -> None:
        await manager.start()
        assert manager.is_running

        for _ in range(200):
            if all(e.state is EngineState.SUCCESS for e in manager.engines):
                break
            await asyncio.sleep(0.01)

        status = manager.status()
        assert status["runepool"] == {"state": "success", "watermark": EPOCH}
        assert status["swap"]["state"] == "success"

        await manager.stop()
        assert not manager.is_running

    @pytest.mark.asyncio
    async def test_stop_without_start(self, manager: IngestionManager) -> None:
        await manager.stop()
        assert manager.status()["runepool"] == {"state": "idle", "watermark": None}
