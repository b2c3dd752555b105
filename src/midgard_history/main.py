"""Entry point for the Midgard interval history service.

Wires all components together, optionally embeds the FastAPI query API,
and starts one ingestion engine per enabled resource. When the API is
enabled (default), ingestion and the API share a single asyncio event loop
via uvicorn's programmatic API and FastAPI's lifespan context manager.

Handles SIGINT/SIGTERM for graceful shutdown when running ingestion alone.

Component wiring order (in _build_components):
1. HistoryDatabase (SQLite connection, not yet opened)
2. IntervalStore (typed read/write access)
3. WatermarkStore (per-resource resume points)
4. IngestionWriter (page persistence + watermark advance)
5. MidgardClient (upstream HTTP client, not yet connected)
6. IngestionManager (one fetch-retry engine per enabled resource)
7. QueryBuilder (parameterized SQL for the API)
"""

import asyncio
import signal
from contextlib import asynccontextmanager
from typing import Any

import uvicorn
from fastapi import FastAPI

from midgard_history.config import AppSettings
from midgard_history.data.database import HistoryDatabase
from midgard_history.data.store import IntervalStore
from midgard_history.data.watermark import WatermarkStore
from midgard_history.ingestion.client import MidgardClient
from midgard_history.ingestion.manager import IngestionManager
from midgard_history.ingestion.writer import IngestionWriter
from midgard_history.logging import get_logger, setup_logging
from midgard_history.query.builder import QueryBuilder


def _build_components(settings: AppSettings) -> dict[str, Any]:
    """Build all service components from settings.

    Note: Does NOT open the database or the HTTP session -- that happens in
    _start_components, called from the lifespan (API mode) or run().
    """
    database = HistoryDatabase(settings.database.path)
    store = IntervalStore(database)
    watermarks = WatermarkStore(store, epoch=settings.ingestion.epoch)
    writer = IngestionWriter(store, watermarks)
    client = MidgardClient(settings.source)
    ingestion = IngestionManager.from_settings(
        settings.ingestion, client, writer, watermarks
    )
    query_builder = QueryBuilder(
        default_page_size=settings.api.default_page_size,
        max_page_size=settings.api.max_page_size,
    )

    return {
        "database": database,
        "store": store,
        "watermarks": watermarks,
        "writer": writer,
        "client": client,
        "ingestion": ingestion,
        "query_builder": query_builder,
    }


async def _start_components(settings: AppSettings, components: dict[str, Any]) -> None:
    """Open storage and, when ingestion is enabled, the client and engines."""
    await components["database"].connect()
    if settings.ingestion.enabled:
        await components["client"].connect()
        await components["ingestion"].start()


async def _stop_components(components: dict[str, Any]) -> None:
    """Stop engines first so no write is in flight when storage closes."""
    await components["ingestion"].stop()
    await components["client"].close()
    await components["database"].close()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage component lifecycle within the FastAPI application.

    On startup: stores components on app.state, opens the database and
    starts ingestion. On shutdown: stops ingestion, closes client and database.
    """
    logger = get_logger("midgard_history.main")
    settings = app.state.settings
    components = app.state.components

    app.state.store = components["store"]
    app.state.watermarks = components["watermarks"]
    app.state.query_builder = components["query_builder"]
    app.state.ingestion = components["ingestion"]

    await _start_components(settings, components)
    logger.info("lifespan_started", ingestion_enabled=settings.ingestion.enabled)

    yield

    await _stop_components(components)
    logger.info("midgard_history_stopped")


def _setup_signal_handlers(stop_event: asyncio.Event) -> None:
    """Register SIGINT/SIGTERM to set ``stop_event``.

    Must be called after the asyncio event loop is running.
    """
    logger = get_logger("midgard_history.main")
    loop = asyncio.get_running_loop()

    def _graceful_handler() -> None:
        logger.info("graceful_shutdown_signal")
        stop_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _graceful_handler)


async def run() -> None:
    """Run the history service.

    When the API is enabled (API_ENABLED=true, the default):
    - Creates the FastAPI app with lifespan
    - Runs ingestion and the API in a single asyncio event loop via uvicorn

    When the API is disabled (API_ENABLED=false):
    - Runs ingestion alone until SIGINT/SIGTERM
    """
    # Load settings
    settings = AppSettings()

    # Setup logging
    setup_logging(settings.log_level)
    logger = get_logger("midgard_history.main")

    components = _build_components(settings)

    if settings.api.enabled:
        from midgard_history.api.app import create_app

        app = create_app(lifespan=lifespan)
        app.state.settings = settings
        app.state.components = components

        logger.info(
            "starting_with_api",
            host=settings.api.host,
            port=settings.api.port,
            resources=settings.ingestion.resources if settings.ingestion.enabled else [],
        )

        config = uvicorn.Config(
            app,
            host=settings.api.host,
            port=settings.api.port,
            log_level="warning",  # Suppress uvicorn access logs
        )
        server = uvicorn.Server(config)
        await server.serve()
        return

    if not settings.ingestion.enabled:
        logger.warning("nothing_to_run", note="Both API and ingestion are disabled.")
        return

    stop_event = asyncio.Event()
    _setup_signal_handlers(stop_event)

    logger.info(
        "starting_without_api",
        resources=settings.ingestion.resources,
        database=settings.database.path,
    )

    try:
        await _start_components(settings, components)
        await stop_event.wait()
    finally:
        await _stop_components(components)
        logger.info("midgard_history_stopped")


def main() -> None:
    """Synchronous entry point."""
    asyncio.run(run())


if __name__ == "__main__":
    main()
