"""Ingestion manager -- runs one fetch-retry engine per enabled resource.

Engines are independent: each owns its watermark and its backoff, so a
throttled or failing resource never delays the others.
"""

import asyncio

from midgard_history.config import IngestionSettings
from midgard_history.data.models import ResourceType
from midgard_history.data.watermark import WatermarkStore
from midgard_history.ingestion.client import SourceClient
from midgard_history.ingestion.engine import FetchRetryEngine
from midgard_history.ingestion.writer import IngestionWriter
from midgard_history.logging import get_logger

logger = get_logger(__name__)


class IngestionManager:
    """Starts and stops the background ingestion tasks."""

    def __init__(self, engines: list[FetchRetryEngine]) -> None:
        self._engines = engines
        self._tasks: dict[ResourceType, asyncio.Task] = {}  # type: ignore[type-arg]
        self._running = False

    @classmethod
    def from_settings(
        cls,
        settings: IngestionSettings,
        client: SourceClient,
        writer: IngestionWriter,
        watermarks: WatermarkStore,
    ) -> "IngestionManager":
        """One engine per resource listed in ``settings.resources``."""
        engines = [
            FetchRetryEngine(
                resource=ResourceType(name),
                client=client,
                writer=writer,
                watermarks=watermarks,
                settings=settings,
            )
            for name in dict.fromkeys(settings.resources)
        ]
        return cls(engines)

    @property
    def engines(self) -> list[FetchRetryEngine]:
        return list(self._engines)

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        if self._running:
            logger.warning("ingestion_already_running")
            return
        self._running = True
        for engine in self._engines:
            self._tasks[engine.resource] = asyncio.create_task(
                engine.run(), name=f"ingest-{engine.resource.value}"
            )
        logger.info(
            "ingestion_started",
            resources=[engine.resource.value for engine in self._engines],
        )

    async def stop(self) -> None:
        """Cancel every engine task and wait for them to finish."""
        self._running = False
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        results = await asyncio.gather(*tasks, return_exceptions=True)
        for resource, result in zip(self._tasks, results):
            if isinstance(result, Exception):
                logger.error(
                    "ingestion_task_failed",
                    resource=resource.value,
                    error=repr(result),
                )
        self._tasks.clear()
        logger.info("ingestion_stopped")

    def status(self) -> dict[str, dict]:
        """Engine state and in-memory watermark per resource."""
        return {
            engine.resource.value: {
                "state": engine.state.value,
                "watermark": (
                    int(engine.watermark.timestamp()) if engine.watermark else None
                ),
            }
            for engine in self._engines
        }
