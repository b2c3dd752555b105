"""Declarative per-resource query schemas.

Each resource declares its table, its selectable columns, the threshold
filters it accepts and whether it supports pool containment. The query
builder is driven entirely by these descriptors, so adding a filter is a
one-line change here.
"""

from dataclasses import dataclass, field

from midgard_history.data.database import INTERVAL_TABLES, POOLS_TABLE
from midgard_history.data.models import ResourceType, interval_columns

OPERATORS = frozenset({">", ">=", "<", "<="})


@dataclass(frozen=True)
class ThresholdFilter:
    """Maps a request parameter onto ``column <operator> value``."""

    param: str
    column: str
    type: type = int
    operator: str = ">"

    def __post_init__(self) -> None:
        if self.operator not in OPERATORS:
            raise ValueError(f"Unsupported threshold operator: {self.operator!r}")


@dataclass(frozen=True)
class SchemaDescriptor:
    """Query surface of one resource."""

    resource: ResourceType
    table: str
    columns: tuple[str, ...]
    filters: tuple[ThresholdFilter, ...] = ()
    supports_pool_filter: bool = False
    default_descending: bool = False
    pools_table: str = field(default=POOLS_TABLE)


def _descriptor(resource: ResourceType, **kwargs) -> SchemaDescriptor:
    return SchemaDescriptor(
        resource=resource,
        table=INTERVAL_TABLES[resource],
        columns=interval_columns(resource),
        **kwargs,
    )


SCHEMAS: dict[ResourceType, SchemaDescriptor] = {
    ResourceType.DEPTH: _descriptor(
        ResourceType.DEPTH,
        filters=(ThresholdFilter("liquidity_gt", "liquidity_units"),),
    ),
    ResourceType.SWAP: _descriptor(
        ResourceType.SWAP,
        filters=(
            ThresholdFilter("volume_gt", "total_volume"),
            ThresholdFilter("fees_gt", "total_fees"),
        ),
    ),
    ResourceType.EARNINGS: _descriptor(
        ResourceType.EARNINGS,
        filters=(
            ThresholdFilter("earnings_gt", "earnings"),
            ThresholdFilter("block_rewards_gt", "block_rewards"),
            ThresholdFilter("node_count_gt", "avg_node_count", float),
        ),
        supports_pool_filter=True,
    ),
    # Newest first unless the caller asks otherwise.
    ResourceType.RUNEPOOL: _descriptor(
        ResourceType.RUNEPOOL,
        filters=(ThresholdFilter("units_gt", "units"),),
        default_descending=True,
    ),
}
