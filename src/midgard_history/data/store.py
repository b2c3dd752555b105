"""Typed SQLite read/write abstraction for interval history.

Provides IntervalStore with typed methods for inserting intervals one durable
unit at a time, executing built queries, and reporting per-resource status.
All SQL except the query predicates (see midgard_history.query.builder) is
isolated behind this interface.

CRITICAL: NaN floats are written as NULL and restored as NaN on read.
"""

import asyncio
import math
from dataclasses import fields
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

import aiosqlite

from midgard_history.data.database import INTERVAL_TABLES, POOLS_TABLE, HistoryDatabase
from midgard_history.data.models import (
    INTERVAL_TYPES,
    EarningsInterval,
    EarningsPool,
    Interval,
    ResourceType,
    interval_columns,
    pool_columns,
)
from midgard_history.exceptions import StorageError
from midgard_history.logging import get_logger

if TYPE_CHECKING:
    from midgard_history.query.builder import ParameterizedQuery

logger = get_logger(__name__)


def to_db_value(value: Any) -> Any:
    """Convert a model value to its SQLite representation."""
    if isinstance(value, datetime):
        return int(value.timestamp())
    if isinstance(value, float) and math.isnan(value):
        return None
    return value


def _from_db_value(value: Any, kind: type) -> Any:
    if kind is datetime:
        return datetime.fromtimestamp(value, tz=timezone.utc)
    if kind is float:
        return math.nan if value is None else float(value)
    return value


class IntervalStore:
    """Async SQLite store for the four interval resources.

    Wraps HistoryDatabase with typed read/write methods. All SQL access
    goes through self._database.db (the aiosqlite Connection). The single
    connection is shared by every ingestion engine and the API, so each
    write unit holds a short lock to keep its statements and commit together.

    Usage:
        async with HistoryDatabase("data/history.db") as database:
            store = IntervalStore(database)
            inserted = await store.insert_intervals(ResourceType.SWAP, intervals)
    """

    def __init__(self, database: HistoryDatabase) -> None:
        self._database = database
        self._write_lock = asyncio.Lock()

    @property
    def database(self) -> HistoryDatabase:
        return self._database

    @property
    def write_lock(self) -> asyncio.Lock:
        """Lock serialising commits on the shared connection."""
        return self._write_lock

    # ──────────────────────────────────────────────
    # Write methods
    # ──────────────────────────────────────────────

    async def insert_interval(self, resource: ResourceType, interval: Interval) -> bool:
        """Insert one interval as an independent durable unit.

        Uses INSERT OR IGNORE on (start_time, end_time): a duplicate is not an
        error. Returns True if a new row was written, False for a duplicate.
        Raises StorageError on any database failure.
        """
        table = INTERVAL_TABLES[resource]
        columns = interval_columns(resource)
        values = tuple(to_db_value(getattr(interval, c)) for c in columns)
        placeholders = ", ".join("?" for _ in columns)
        db = self._database.db

        async with self._write_lock:
            try:
                cursor = await db.execute(
                    f"INSERT OR IGNORE INTO {table} ({', '.join(columns)}) "
                    f"VALUES ({placeholders})",
                    values,
                )
                inserted = cursor.rowcount > 0
                if inserted and isinstance(interval, EarningsInterval):
                    await self._insert_pools(cursor.lastrowid, interval)
                await db.commit()
            except (aiosqlite.Error, OverflowError) as e:
                await db.rollback()
                raise StorageError(f"failed to insert {resource.value} interval: {e}") from e

        return inserted

    async def _insert_pools(self, interval_id: int | None, interval: EarningsInterval) -> None:
        if not interval.pools:
            return
        columns = pool_columns()
        rows = [
            (interval_id, position, *(getattr(pool, c) for c in columns))
            for position, pool in enumerate(interval.pools)
        ]
        placeholders = ", ".join("?" for _ in range(len(columns) + 2))
        await self._database.db.executemany(
            f"INSERT INTO {POOLS_TABLE} (interval_id, position, {', '.join(columns)}) "
            f"VALUES ({placeholders})",
            rows,
        )

    async def insert_intervals(
        self, resource: ResourceType, intervals: list[Interval] | tuple[Interval, ...]
    ) -> int:
        """Insert intervals in order, one unit each.

        Returns the number of newly written rows (duplicates excluded).
        Stops at the first failure and raises StorageError; earlier
        intervals of the page stay committed.
        """
        inserted = 0
        for interval in intervals:
            if await self.insert_interval(resource, interval):
                inserted += 1

        logger.debug(
            "inserted_intervals",
            resource=resource.value,
            total=len(intervals),
            inserted=inserted,
        )
        return inserted

    # ──────────────────────────────────────────────
    # Read methods
    # ──────────────────────────────────────────────

    async def fetch_intervals(
        self, resource: ResourceType, query: "ParameterizedQuery"
    ) -> list[Interval]:
        """Execute a built query and map rows back to typed intervals.

        The query must select ``id`` followed by the resource's interval
        columns (QueryBuilder does). Raises StorageError when SQLite rejects
        the statement, e.g. for an unknown sort column.
        """
        try:
            cursor = await self._database.db.execute(query.sql, query.params)
            rows = await cursor.fetchall()
            pools: dict[int, list[EarningsPool]] = {}
            if resource is ResourceType.EARNINGS and rows:
                pools = await self._fetch_pools([row[0] for row in rows])
        except (aiosqlite.Error, OverflowError) as e:
            raise StorageError(f"{resource.value} query failed: {e}") from e

        cls = INTERVAL_TYPES[resource]
        kinds = [f.type for f in fields(cls) if f.name != "pools"]
        columns = interval_columns(resource)

        intervals: list[Interval] = []
        for row in rows:
            values = {
                column: _from_db_value(value, kind)
                for column, value, kind in zip(columns, row[1:], kinds)
            }
            if resource is ResourceType.EARNINGS:
                values["pools"] = tuple(pools.get(row[0], ()))
            intervals.append(cls(**values))
        return intervals

    async def _fetch_pools(self, interval_ids: list[int]) -> dict[int, list[EarningsPool]]:
        columns = pool_columns()
        placeholders = ", ".join("?" for _ in interval_ids)
        cursor = await self._database.db.execute(
            f"SELECT interval_id, {', '.join(columns)} FROM {POOLS_TABLE} "
            f"WHERE interval_id IN ({placeholders}) ORDER BY interval_id, position",
            interval_ids,
        )
        result: dict[int, list[EarningsPool]] = {}
        for row in await cursor.fetchall():
            result.setdefault(row[0], []).append(
                EarningsPool(**dict(zip(columns, row[1:])))
            )
        return result

    async def latest_end_time(self, resource: ResourceType) -> int | None:
        """Highest stored end_time (Unix seconds) for a resource, or None."""
        try:
            cursor = await self._database.db.execute(
                f"SELECT MAX(end_time) FROM {INTERVAL_TABLES[resource]}"
            )
            row = await cursor.fetchone()
        except aiosqlite.Error as e:
            raise StorageError(f"failed to read {resource.value} end time: {e}") from e
        return row[0] if row else None

    async def count_intervals(self, resource: ResourceType) -> int:
        """Number of stored intervals for a resource."""
        try:
            cursor = await self._database.db.execute(
                f"SELECT COUNT(*) FROM {INTERVAL_TABLES[resource]}"
            )
            row = await cursor.fetchone()
        except aiosqlite.Error as e:
            raise StorageError(f"failed to count {resource.value} intervals: {e}") from e
        return row[0]
