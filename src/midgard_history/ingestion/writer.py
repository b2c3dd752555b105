"""Ingestion writer: persist a decoded page, then advance the watermark.

The watermark only moves after every interval of the page has been written,
so a failure part-way through leaves it at the previous page's end and the
page is re-fetched. Re-fetched intervals hit the (start_time, end_time)
uniqueness constraint and are ignored, which keeps the retry idempotent.
"""

from datetime import datetime

from midgard_history.data.models import Interval, ResourceType
from midgard_history.data.store import IntervalStore
from midgard_history.data.watermark import WatermarkStore
from midgard_history.logging import get_logger

logger = get_logger(__name__)


class IngestionWriter:
    """Writes pages through IntervalStore and advances WatermarkStore."""

    def __init__(self, store: IntervalStore, watermarks: WatermarkStore) -> None:
        self._store = store
        self._watermarks = watermarks

    async def store(
        self, resource: ResourceType, intervals: list[Interval] | tuple[Interval, ...]
    ) -> datetime:
        """Store a page and return the resource's resulting watermark.

        Raises StorageError if any write fails; the watermark is then left
        untouched.
        """
        inserted = await self._store.insert_intervals(resource, intervals)

        if intervals:
            await self._watermarks.advance(resource, intervals[-1].end_time)

        watermark = await self._watermarks.get(resource)
        logger.debug(
            "page_written",
            resource=resource.value,
            intervals=len(intervals),
            inserted=inserted,
            duplicates=len(intervals) - inserted,
            watermark=watermark.isoformat(),
        )
        return watermark
