"""Per-resource ingestion watermarks.

A watermark is the end_time of the last interval durably stored for a
resource: the point the next upstream request resumes from. It is persisted
in the ``watermarks`` table so ingestion resumes after a restart without gaps;
when no row exists yet it is re-derived from the stored intervals, and on a
fresh database it falls back to the configured historical epoch.

Advancement is monotonic: a value that is not strictly greater than the
current watermark is ignored, so a late or repeated page can never rewind
progress.
"""

import time
from datetime import datetime, timezone

import aiosqlite

from midgard_history.data.models import ResourceType
from midgard_history.data.store import IntervalStore
from midgard_history.exceptions import StorageError
from midgard_history.logging import get_logger

logger = get_logger(__name__)

DEFAULT_EPOCH = 1648771200  # 2022-04-01T00:00:00Z


def _to_datetime(seconds: int) -> datetime:
    return datetime.fromtimestamp(seconds, tz=timezone.utc)


class WatermarkStore:
    """Keyed watermark state, one entry per resource type."""

    def __init__(self, store: IntervalStore, epoch: int = DEFAULT_EPOCH) -> None:
        self._store = store
        self._epoch = epoch

    @property
    def epoch(self) -> datetime:
        return _to_datetime(self._epoch)

    async def _persisted(self, resource: ResourceType) -> int | None:
        try:
            cursor = await self._store.database.db.execute(
                "SELECT end_time FROM watermarks WHERE resource = ?",
                (resource.value,),
            )
            row = await cursor.fetchone()
        except aiosqlite.Error as e:
            raise StorageError(f"failed to read {resource.value} watermark: {e}") from e
        return row[0] if row else None

    async def get(self, resource: ResourceType) -> datetime:
        """Current watermark: persisted value, else derived from storage, else epoch."""
        persisted = await self._persisted(resource)
        if persisted is not None:
            return _to_datetime(persisted)

        derived = await self._store.latest_end_time(resource)
        if derived is not None:
            logger.info(
                "watermark_derived_from_storage",
                resource=resource.value,
                end_time=derived,
            )
            return _to_datetime(derived)

        return self.epoch

    async def advance(self, resource: ResourceType, new_end_time: datetime) -> bool:
        """Move the watermark forward to ``new_end_time``.

        Returns True if it advanced. A value not strictly greater than the
        current watermark is a no-op and returns False.
        """
        current = await self.get(resource)
        if new_end_time <= current:
            logger.debug(
                "watermark_not_advanced",
                resource=resource.value,
                current=current.isoformat(),
                proposed=new_end_time.isoformat(),
            )
            return False

        new_seconds = int(new_end_time.timestamp())
        db = self._store.database.db
        async with self._store.write_lock:
            try:
                cursor = await db.execute(
                    "INSERT INTO watermarks (resource, end_time, updated_at) "
                    "VALUES (?, ?, ?) "
                    "ON CONFLICT(resource) DO UPDATE SET "
                    "end_time = excluded.end_time, updated_at = excluded.updated_at "
                    "WHERE excluded.end_time > watermarks.end_time",
                    (resource.value, new_seconds, int(time.time())),
                )
                await db.commit()
            except aiosqlite.Error as e:
                await db.rollback()
                raise StorageError(f"failed to advance {resource.value} watermark: {e}") from e

        advanced = cursor.rowcount > 0
        if advanced:
            logger.debug(
                "watermark_advanced",
                resource=resource.value,
                end_time=new_end_time.isoformat(),
            )
        return advanced

    async def snapshot(self) -> dict[ResourceType, datetime]:
        """Current watermark of every resource."""
        return {resource: await self.get(resource) for resource in ResourceType}
