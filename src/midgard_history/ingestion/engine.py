"""Fetch-retry engine: the per-resource incremental ingestion loop.

Each engine is an explicit state machine. One call to ``step()`` performs a
single REQUESTING cycle and returns the resulting state together with the
backoff to apply before the next request:

    IDLE -> REQUESTING -> SUCCESS          (page stored, inter-page delay)
                       -> STORAGE_ERROR    (decoded but not stored, inter-page delay)
                       -> RATE_LIMITED     (throttling notice, rate-limit delay)
                       -> MALFORMED        (undecodable body, malformed delay)
                       -> TRANSPORT_ERROR  (no response, transport delay)

``run()`` repeats ``step()`` and sleeps the returned delay forever; only task
cancellation (process shutdown) ends it. Every failure class is retried with
the same request, because the watermark only moves after a page is stored.

CRITICAL implementation notes:
- The inter-page delay after a decoded page is mandatory even when the page
  was empty: the upstream throttles aggressive pollers.
- The throttling notice is plain text, checked before decoding so it is
  never mistaken for data.
- An empty page leaves the watermark (and therefore the next ``from``) as is.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from midgard_history.config import IngestionSettings
from midgard_history.data.decoder import decode_page
from midgard_history.data.models import Page, ResourceType
from midgard_history.data.watermark import WatermarkStore
from midgard_history.exceptions import (
    DecodeError,
    RateLimitedError,
    StorageError,
    TransportError,
)
from midgard_history.ingestion.client import FetchRequest, SourceClient
from midgard_history.ingestion.writer import IngestionWriter
from midgard_history.logging import bind_resource, get_logger

logger = get_logger(__name__)


class EngineState(str, Enum):
    """Fetch-retry engine states."""

    IDLE = "idle"
    REQUESTING = "requesting"
    SUCCESS = "success"
    STORAGE_ERROR = "storage_error"
    RATE_LIMITED = "rate_limited"
    MALFORMED = "malformed"
    TRANSPORT_ERROR = "transport_error"


@dataclass(frozen=True)
class StepOutcome:
    """Result of one REQUESTING cycle."""

    state: EngineState
    delay: float  # seconds to wait before the next request
    request: FetchRequest | None
    watermark: datetime | None
    stored: int = 0


class FetchRetryEngine:
    """Polls one resource from its watermark onwards and persists each page.

    Args:
        resource: The resource type this engine ingests.
        client: Upstream source client.
        writer: Persists pages and advances the watermark.
        watermarks: Source of the starting watermark.
        settings: Page size, granularity and retry delays.
        sleep: Awaitable sleep, injectable for tests.
    """

    def __init__(
        self,
        resource: ResourceType,
        client: SourceClient,
        writer: IngestionWriter,
        watermarks: WatermarkStore,
        settings: IngestionSettings,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._resource = resource
        self._client = client
        self._writer = writer
        self._watermarks = watermarks
        self._settings = settings
        self._sleep = sleep
        self._state = EngineState.IDLE
        self._watermark: datetime | None = None
        self._pages = 0

    @property
    def resource(self) -> ResourceType:
        return self._resource

    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def watermark(self) -> datetime | None:
        """The engine's resume point; None until the first step loads it."""
        return self._watermark

    def build_request(self) -> FetchRequest:
        """Request for the next page, starting at the current watermark."""
        if self._watermark is None:
            raise RuntimeError("Watermark not loaded yet.")
        return FetchRequest(
            resource=self._resource,
            interval=self._settings.granularity,
            count=self._settings.page_size,
            from_=self._watermark,
        )

    # ──────────────────────────────────────────────
    # State machine
    # ──────────────────────────────────────────────

    def _transition(
        self,
        state: EngineState,
        delay: float,
        request: FetchRequest | None,
        stored: int = 0,
    ) -> StepOutcome:
        self._state = state
        return StepOutcome(
            state=state,
            delay=delay,
            request=request,
            watermark=self._watermark,
            stored=stored,
        )

    async def _fetch(self, request: FetchRequest) -> Page:
        """Fetch and decode one page.

        Raises TransportError, RateLimitedError or DecodeError.
        """
        body = await self._client.fetch_page(request)

        if self._settings.rate_limit_marker in body:
            raise RateLimitedError(f"{self._resource.value} request throttled")

        try:
            return decode_page(self._resource, body)
        except DecodeError:
            logger.error(
                "malformed_payload_body",
                body=body[: self._settings.diagnostic_max_chars],
                body_length=len(body),
            )
            raise

    async def step(self) -> StepOutcome:
        """Run exactly one REQUESTING cycle; never sleeps and never raises
        for the classified failure types."""
        settings = self._settings

        if self._watermark is None:
            try:
                self._watermark = await self._watermarks.get(self._resource)
            except StorageError as e:
                logger.error("watermark_load_failed", error=str(e))
                return self._transition(EngineState.STORAGE_ERROR, settings.page_delay, None)
            logger.info("watermark_loaded", watermark=self._watermark.isoformat())

        request = self.build_request()
        self._state = EngineState.REQUESTING

        try:
            page = await self._fetch(request)
        except TransportError as e:
            logger.warning(
                "transport_error",
                error=str(e),
                retry_in=settings.transport_retry_delay,
            )
            return self._transition(
                EngineState.TRANSPORT_ERROR, settings.transport_retry_delay, request
            )
        except RateLimitedError:
            logger.warning(
                "rate_limited",
                from_ts=request.params()["from"],
                retry_in=settings.rate_limit_delay,
            )
            return self._transition(
                EngineState.RATE_LIMITED, settings.rate_limit_delay, request
            )
        except DecodeError as e:
            logger.error(
                "malformed_payload",
                error=str(e),
                retry_in=settings.malformed_retry_delay,
            )
            return self._transition(
                EngineState.MALFORMED, settings.malformed_retry_delay, request
            )

        try:
            self._watermark = await self._writer.store(self._resource, page.intervals)
        except StorageError as e:
            logger.error(
                "page_store_failed",
                error=str(e),
                intervals=len(page.intervals),
                retry_in=settings.page_delay,
            )
            return self._transition(EngineState.STORAGE_ERROR, settings.page_delay, request)

        self._pages += 1
        if page.intervals:
            logger.info(
                "page_ingested",
                intervals=len(page.intervals),
                watermark=self._watermark.isoformat(),
                pages=self._pages,
            )
        else:
            logger.debug("page_empty", watermark=self._watermark.isoformat())

        return self._transition(
            EngineState.SUCCESS, settings.page_delay, request, stored=len(page.intervals)
        )

    async def run(self) -> None:
        """Ingest forever. A failing step is logged and retried, never fatal."""
        bind_resource(self._resource.value)
        logger.info("engine_started", granularity=self._settings.granularity)

        while True:
            try:
                outcome = await self.step()
                delay = outcome.delay
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("engine_step_failed")
                self._state = EngineState.TRANSPORT_ERROR
                delay = self._settings.transport_retry_delay

            await self._sleep(delay)
