"""Async SQLite database manager for interval history persistence.

Uses aiosqlite for non-blocking database operations with WAL mode
so the query API can read while the ingestion engines write.
"""

import os
from typing import Self

import aiosqlite

from midgard_history.data.models import ResourceType
from midgard_history.logging import get_logger

logger = get_logger(__name__)

SCHEMA_VERSION = 1

INTERVAL_TABLES: dict[ResourceType, str] = {
    ResourceType.DEPTH: "depth_intervals",
    ResourceType.SWAP: "swap_intervals",
    ResourceType.EARNINGS: "earnings_intervals",
    ResourceType.RUNEPOOL: "runepool_unit_intervals",
}

POOLS_TABLE = "earnings_pools"

# Timestamps are INTEGER Unix seconds (UTC). SQLite stores NaN REAL values
# as NULL, so float columns stay nullable and NULL reads back as NaN.
_CREATE_TABLES_SQL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY
);

CREATE TABLE IF NOT EXISTS depth_intervals (
    id INTEGER PRIMARY KEY,
    start_time INTEGER NOT NULL,
    end_time INTEGER NOT NULL,
    asset_depth INTEGER NOT NULL,
    asset_price REAL,
    asset_price_usd REAL,
    liquidity_units INTEGER NOT NULL,
    luvi REAL,
    members_count INTEGER NOT NULL,
    rune_depth INTEGER NOT NULL,
    synth_supply INTEGER NOT NULL,
    synth_units INTEGER NOT NULL,
    units INTEGER NOT NULL,
    UNIQUE (start_time, end_time)
);

CREATE TABLE IF NOT EXISTS swap_intervals (
    id INTEGER PRIMARY KEY,
    start_time INTEGER NOT NULL,
    end_time INTEGER NOT NULL,
    to_asset_count INTEGER NOT NULL,
    to_asset_volume INTEGER NOT NULL,
    to_asset_fees INTEGER NOT NULL,
    to_rune_count INTEGER NOT NULL,
    to_rune_volume INTEGER NOT NULL,
    to_rune_fees INTEGER NOT NULL,
    synth_mint_count INTEGER NOT NULL DEFAULT 0,
    synth_mint_volume INTEGER NOT NULL DEFAULT 0,
    synth_mint_fees INTEGER NOT NULL DEFAULT 0,
    synth_redeem_count INTEGER NOT NULL DEFAULT 0,
    synth_redeem_volume INTEGER NOT NULL DEFAULT 0,
    synth_redeem_fees INTEGER NOT NULL DEFAULT 0,
    total_count INTEGER NOT NULL,
    total_volume INTEGER NOT NULL,
    total_fees INTEGER NOT NULL,
    total_volume_usd INTEGER NOT NULL DEFAULT 0,
    average_slip REAL,
    rune_price_usd REAL,
    UNIQUE (start_time, end_time)
);

CREATE TABLE IF NOT EXISTS earnings_intervals (
    id INTEGER PRIMARY KEY,
    start_time INTEGER NOT NULL,
    end_time INTEGER NOT NULL,
    avg_node_count REAL,
    block_rewards INTEGER NOT NULL,
    bonding_earnings INTEGER NOT NULL,
    earnings INTEGER NOT NULL,
    liquidity_earnings INTEGER NOT NULL,
    liquidity_fees INTEGER NOT NULL,
    rune_price_usd REAL,
    UNIQUE (start_time, end_time)
);

CREATE TABLE IF NOT EXISTS earnings_pools (
    interval_id INTEGER NOT NULL REFERENCES earnings_intervals(id) ON DELETE CASCADE,
    position INTEGER NOT NULL,
    pool TEXT NOT NULL,
    asset_liquidity_fees INTEGER NOT NULL,
    earnings INTEGER NOT NULL,
    rewards INTEGER NOT NULL,
    rune_liquidity_fees INTEGER NOT NULL,
    saver_earning INTEGER NOT NULL,
    total_liquidity_fees_rune INTEGER NOT NULL,
    PRIMARY KEY (interval_id, position)
);

CREATE TABLE IF NOT EXISTS runepool_unit_intervals (
    id INTEGER PRIMARY KEY,
    start_time INTEGER NOT NULL,
    end_time INTEGER NOT NULL,
    count INTEGER NOT NULL,
    units INTEGER NOT NULL,
    UNIQUE (start_time, end_time)
);

CREATE TABLE IF NOT EXISTS watermarks (
    resource TEXT PRIMARY KEY,
    end_time INTEGER NOT NULL,
    updated_at INTEGER NOT NULL
);
"""

_CREATE_INDEXES_SQL = """
CREATE INDEX IF NOT EXISTS idx_depth_end_time ON depth_intervals(end_time);
CREATE INDEX IF NOT EXISTS idx_swap_end_time ON swap_intervals(end_time);
CREATE INDEX IF NOT EXISTS idx_earnings_end_time ON earnings_intervals(end_time);
CREATE INDEX IF NOT EXISTS idx_runepool_end_time ON runepool_unit_intervals(end_time);

CREATE INDEX IF NOT EXISTS idx_earnings_pools_pool
    ON earnings_pools(pool, interval_id);
"""


class HistoryDatabase:
    """Async SQLite connection manager for interval history.

    Manages database lifecycle including schema creation, WAL mode
    configuration, and clean resource cleanup.

    Usage:
        # Context manager (recommended)
        async with HistoryDatabase("/path/to/db") as db:
            await db.db.execute("SELECT ...")

        # Manual lifecycle
        db = HistoryDatabase("/path/to/db")
        await db.connect()
        try:
            await db.db.execute("SELECT ...")
        finally:
            await db.close()
    """

    def __init__(self, db_path: str = "data/history.db") -> None:
        self._db_path = db_path
        self._connection: aiosqlite.Connection | None = None

    @property
    def path(self) -> str:
        return self._db_path

    @property
    def db(self) -> aiosqlite.Connection:
        """Access the raw aiosqlite connection.

        Raises RuntimeError if not connected.
        """
        if self._connection is None:
            raise RuntimeError("Database not connected. Call connect() first.")
        return self._connection

    async def connect(self) -> None:
        """Open database connection, configure pragmas, and create schema.

        Creates the parent directory if it does not exist.
        """
        db_dir = os.path.dirname(self._db_path)
        if db_dir:
            os.makedirs(db_dir, exist_ok=True)

        self._connection = await aiosqlite.connect(self._db_path)

        await self._connection.execute("PRAGMA journal_mode=WAL")
        await self._connection.execute("PRAGMA synchronous=NORMAL")
        await self._connection.execute("PRAGMA foreign_keys=ON")

        await self._create_tables()
        await self._ensure_schema_version()

        logger.info("history_db_connected", db_path=self._db_path)

    async def close(self) -> None:
        """Close the database connection if open."""
        if self._connection is not None:
            await self._connection.close()
            self._connection = None
            logger.info("history_db_closed", db_path=self._db_path)

    async def _create_tables(self) -> None:
        """Create all tables and indexes if they do not exist."""
        assert self._connection is not None
        await self._connection.executescript(_CREATE_TABLES_SQL)
        await self._connection.executescript(_CREATE_INDEXES_SQL)
        await self._connection.commit()

    async def _ensure_schema_version(self) -> None:
        """Insert schema version if not already set."""
        assert self._connection is not None
        cursor = await self._connection.execute(
            "SELECT version FROM schema_version LIMIT 1"
        )
        row = await cursor.fetchone()
        if row is None:
            await self._connection.execute(
                "INSERT INTO schema_version (version) VALUES (?)",
                (SCHEMA_VERSION,),
            )
            await self._connection.commit()
            logger.info("schema_version_set", version=SCHEMA_VERSION)

    async def __aenter__(self) -> Self:
        """Async context manager entry."""
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # type: ignore[no-untyped-def]
        """Async context manager exit."""
        await self.close()
