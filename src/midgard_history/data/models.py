"""Data models for interval history records.

Every interval is an immutable half-open time bucket [start_time, end_time)
carrying resource-specific measures. Integer measures are non-negative unless
noted; float measures may legitimately be NaN (the upstream reports NaN for
e.g. prices of pools with no depth).
"""

from dataclasses import dataclass, field, fields
from datetime import datetime
from enum import Enum


class ResourceType(str, Enum):
    """The four interval resources ingested from the upstream."""

    DEPTH = "depth"
    SWAP = "swap"
    EARNINGS = "earnings"
    RUNEPOOL = "runepool"


@dataclass(frozen=True)
class TimeBucket:
    """Common [start_time, end_time) bounds, both timezone-aware UTC."""

    start_time: datetime
    end_time: datetime

    def __post_init__(self) -> None:
        if not self.start_time < self.end_time:
            raise ValueError(
                f"start_time {self.start_time.isoformat()} is not before "
                f"end_time {self.end_time.isoformat()}"
            )


@dataclass(frozen=True)
class DepthInterval(TimeBucket):
    """Pool depth snapshot for one interval."""

    asset_depth: int
    asset_price: float
    asset_price_usd: float
    liquidity_units: int
    luvi: float
    members_count: int
    rune_depth: int
    synth_supply: int
    synth_units: int
    units: int


@dataclass(frozen=True)
class SwapInterval(TimeBucket):
    """Aggregated swap activity for one interval."""

    to_asset_count: int
    to_asset_volume: int
    to_asset_fees: int
    to_rune_count: int
    to_rune_volume: int
    to_rune_fees: int
    synth_mint_count: int
    synth_mint_volume: int
    synth_mint_fees: int
    synth_redeem_count: int
    synth_redeem_volume: int
    synth_redeem_fees: int
    total_count: int
    total_volume: int
    total_fees: int
    total_volume_usd: int
    average_slip: float
    rune_price_usd: float


@dataclass(frozen=True)
class EarningsPool:
    """Per-pool earnings breakdown inside an earnings interval.

    ``rewards`` is signed: pools can pay out more than they earn.
    """

    pool: str
    asset_liquidity_fees: int
    earnings: int
    rewards: int
    rune_liquidity_fees: int
    saver_earning: int
    total_liquidity_fees_rune: int


@dataclass(frozen=True)
class EarningsInterval(TimeBucket):
    """Network earnings for one interval, with its ordered pool breakdown."""

    avg_node_count: float
    block_rewards: int
    bonding_earnings: int
    earnings: int
    liquidity_earnings: int
    liquidity_fees: int
    rune_price_usd: float
    pools: tuple[EarningsPool, ...] = field(default_factory=tuple)

    @property
    def pool_names(self) -> list[str]:
        return [p.pool for p in self.pools]


@dataclass(frozen=True)
class RunepoolUnitsInterval(TimeBucket):
    """RUNEPool membership snapshot for one interval."""

    count: int
    units: int


Interval = DepthInterval | SwapInterval | EarningsInterval | RunepoolUnitsInterval

INTERVAL_TYPES: dict[ResourceType, type] = {
    ResourceType.DEPTH: DepthInterval,
    ResourceType.SWAP: SwapInterval,
    ResourceType.EARNINGS: EarningsInterval,
    ResourceType.RUNEPOOL: RunepoolUnitsInterval,
}


def interval_columns(resource: ResourceType) -> tuple[str, ...]:
    """Scalar attribute names of a resource's interval, which are also its column names."""
    return tuple(
        f.name for f in fields(INTERVAL_TYPES[resource]) if f.name != "pools"
    )


def pool_columns() -> tuple[str, ...]:
    return tuple(f.name for f in fields(EarningsPool))


@dataclass(frozen=True)
class PageMeta:
    """Trailing aggregate block of a page.

    Only the covered time span is typed; the remaining aggregate values are
    kept verbatim for diagnostics and are not persisted.
    """

    start_time: datetime
    end_time: datetime
    values: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class Page:
    """One decoded upstream response."""

    resource: ResourceType
    intervals: tuple[Interval, ...]
    meta: PageMeta

    @property
    def last_end_time(self) -> datetime | None:
        """End of the last interval, or None for an empty page."""
        if not self.intervals:
            return None
        return self.intervals[-1].end_time
