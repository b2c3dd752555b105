"""Decoding of upstream interval pages into typed records, and the reverse.

The upstream wire format is loosely typed: almost every number arrives as a
JSON string, floats may be the literal string "NaN", and timestamps are
string-wrapped Unix seconds. Each resource declares its wire fields once
(wire name, attribute, kind) and both directions are driven from that table.

A malformed payload (the upstream's plain-text throttling notice, an HTML
error page, a JSON body of the wrong shape) raises DecodeError. A well-formed
page with an empty ``intervals`` array is NOT an error.
"""

import json
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from midgard_history.data.models import (
    INTERVAL_TYPES,
    EarningsInterval,
    EarningsPool,
    Interval,
    Page,
    PageMeta,
    ResourceType,
)
from midgard_history.exceptions import DecodeError
from midgard_history.logging import get_logger

logger = get_logger(__name__)

NAN_TOKEN = "NaN"


class FieldKind(str, Enum):
    """How a wire value is parsed and rendered."""

    UINT = "uint"
    INT = "int"  # signed integer
    FLOAT = "float"
    TIME = "time"
    TEXT = "text"


@dataclass(frozen=True)
class WireField:
    """Mapping of one wire key to a model attribute."""

    wire: str
    attr: str
    kind: FieldKind
    required: bool = True


_BOUNDS = (
    WireField("startTime", "start_time", FieldKind.TIME),
    WireField("endTime", "end_time", FieldKind.TIME),
)

WIRE_FIELDS: dict[ResourceType, tuple[WireField, ...]] = {
    ResourceType.DEPTH: _BOUNDS
    + (
        WireField("assetDepth", "asset_depth", FieldKind.UINT),
        WireField("assetPrice", "asset_price", FieldKind.FLOAT),
        WireField("assetPriceUSD", "asset_price_usd", FieldKind.FLOAT),
        WireField("liquidityUnits", "liquidity_units", FieldKind.UINT),
        WireField("luvi", "luvi", FieldKind.FLOAT),
        WireField("membersCount", "members_count", FieldKind.UINT),
        WireField("runeDepth", "rune_depth", FieldKind.UINT),
        WireField("synthSupply", "synth_supply", FieldKind.UINT),
        WireField("synthUnits", "synth_units", FieldKind.UINT),
        WireField("units", "units", FieldKind.UINT),
    ),
    ResourceType.SWAP: _BOUNDS
    + (
        WireField("toAssetCount", "to_asset_count", FieldKind.UINT),
        WireField("toAssetVolume", "to_asset_volume", FieldKind.UINT),
        WireField("toAssetFees", "to_asset_fees", FieldKind.UINT),
        WireField("toRuneCount", "to_rune_count", FieldKind.UINT),
        WireField("toRuneVolume", "to_rune_volume", FieldKind.UINT),
        WireField("toRuneFees", "to_rune_fees", FieldKind.UINT),
        WireField("synthMintCount", "synth_mint_count", FieldKind.UINT, required=False),
        WireField("synthMintVolume", "synth_mint_volume", FieldKind.UINT, required=False),
        WireField("synthMintFees", "synth_mint_fees", FieldKind.UINT, required=False),
        WireField("synthRedeemCount", "synth_redeem_count", FieldKind.UINT, required=False),
        WireField("synthRedeemVolume", "synth_redeem_volume", FieldKind.UINT, required=False),
        WireField("synthRedeemFees", "synth_redeem_fees", FieldKind.UINT, required=False),
        WireField("totalCount", "total_count", FieldKind.UINT),
        WireField("totalVolume", "total_volume", FieldKind.UINT),
        WireField("totalFees", "total_fees", FieldKind.UINT),
        WireField("totalVolumeUSD", "total_volume_usd", FieldKind.UINT, required=False),
        WireField("averageSlip", "average_slip", FieldKind.FLOAT),
        WireField("runePriceUSD", "rune_price_usd", FieldKind.FLOAT),
    ),
    ResourceType.EARNINGS: _BOUNDS
    + (
        WireField("avgNodeCount", "avg_node_count", FieldKind.FLOAT),
        WireField("blockRewards", "block_rewards", FieldKind.UINT),
        WireField("bondingEarnings", "bonding_earnings", FieldKind.UINT),
        WireField("earnings", "earnings", FieldKind.UINT),
        WireField("liquidityEarnings", "liquidity_earnings", FieldKind.UINT),
        WireField("liquidityFees", "liquidity_fees", FieldKind.UINT),
        WireField("runePriceUSD", "rune_price_usd", FieldKind.FLOAT),
    ),
    ResourceType.RUNEPOOL: _BOUNDS
    + (
        WireField("count", "count", FieldKind.UINT),
        WireField("units", "units", FieldKind.UINT),
    ),
}

POOL_FIELDS: tuple[WireField, ...] = (
    WireField("pool", "pool", FieldKind.TEXT),
    WireField("assetLiquidityFees", "asset_liquidity_fees", FieldKind.UINT),
    WireField("earnings", "earnings", FieldKind.UINT),
    WireField("rewards", "rewards", FieldKind.INT),
    WireField("runeLiquidityFees", "rune_liquidity_fees", FieldKind.UINT),
    WireField("saverEarning", "saver_earning", FieldKind.UINT),
    WireField("totalLiquidityFeesRune", "total_liquidity_fees_rune", FieldKind.UINT),
)

_RESOURCE_BY_TYPE = {cls: resource for resource, cls in INTERVAL_TYPES.items()}


# ──────────────────────────────────────────────
# Scalar parsing
# ──────────────────────────────────────────────


def parse_int(value: Any, name: str, signed: bool = False) -> int:
    """Parse an integer that may arrive as a string with separators."""
    if isinstance(value, bool):
        raise DecodeError(f"{name}: boolean is not an integer")
    if isinstance(value, int):
        number = value
    elif isinstance(value, float) and value.is_integer():
        number = int(value)
    elif isinstance(value, str):
        text = value.strip().replace(",", "")
        try:
            number = int(text)
        except ValueError as e:
            raise DecodeError(f"{name}: {value!r} is not an integer") from e
    else:
        raise DecodeError(f"{name}: unexpected {type(value).__name__} value")

    if number < 0 and not signed:
        raise DecodeError(f"{name}: negative value {number}")
    return number


def parse_float(value: Any, name: str) -> float:
    """Parse a float; the literal "NaN" decodes to math.nan."""
    if isinstance(value, bool):
        raise DecodeError(f"{name}: boolean is not a number")
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        text = value.strip()
        if text == NAN_TOKEN:
            return math.nan
        try:
            return float(text)
        except ValueError as e:
            raise DecodeError(f"{name}: {value!r} is not a number") from e
    raise DecodeError(f"{name}: unexpected {type(value).__name__} value")


def parse_timestamp(value: Any, name: str) -> datetime:
    """Parse string-wrapped Unix seconds into an aware UTC datetime."""
    seconds = parse_int(value, name)
    try:
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    except (OverflowError, OSError, ValueError) as e:
        raise DecodeError(f"{name}: timestamp {seconds} out of range") from e


def _parse_field(record: dict, spec: WireField) -> Any:
    if spec.wire not in record:
        if spec.required:
            raise DecodeError(f"missing field {spec.wire!r}")
        return 0.0 if spec.kind is FieldKind.FLOAT else 0

    value = record[spec.wire]
    if spec.kind is FieldKind.UINT:
        return parse_int(value, spec.wire)
    if spec.kind is FieldKind.INT:
        return parse_int(value, spec.wire, signed=True)
    if spec.kind is FieldKind.FLOAT:
        return parse_float(value, spec.wire)
    if spec.kind is FieldKind.TIME:
        return parse_timestamp(value, spec.wire)
    if not isinstance(value, str):
        raise DecodeError(f"{spec.wire}: expected a string")
    return value


# ──────────────────────────────────────────────
# Record / page decoding
# ──────────────────────────────────────────────


def _decode_pool(record: Any) -> EarningsPool:
    if not isinstance(record, dict):
        raise DecodeError("pool entry is not an object")
    return EarningsPool(**{f.attr: _parse_field(record, f) for f in POOL_FIELDS})


def decode_interval(resource: ResourceType, record: dict) -> Interval:
    """Decode one wire record.

    Raises DecodeError for type/shape problems and ValueError when the
    decoded bounds violate start_time < end_time.
    """
    values = {f.attr: _parse_field(record, f) for f in WIRE_FIELDS[resource]}

    if resource is ResourceType.EARNINGS:
        pools = record.get("pools")
        if not isinstance(pools, list):
            raise DecodeError("earnings interval has no pools array")
        values["pools"] = tuple(_decode_pool(p) for p in pools)

    return INTERVAL_TYPES[resource](**values)


def _decode_meta(meta: dict) -> PageMeta:
    start = parse_timestamp(meta.get("startTime"), "meta.startTime")
    end = parse_timestamp(meta.get("endTime"), "meta.endTime")
    values = {
        key: str(value)
        for key, value in meta.items()
        if key not in ("startTime", "endTime") and not isinstance(value, (list, dict))
    }
    return PageMeta(start_time=start, end_time=end, values=values)


def decode_page(resource: ResourceType, body: str | bytes) -> Page:
    """Decode a raw upstream response body into a Page.

    Intervals violating start_time < end_time are logged and dropped; every
    other problem fails the whole page with DecodeError.
    """
    try:
        payload = json.loads(body)
    except ValueError as e:
        raise DecodeError(f"response is not JSON: {e}") from e

    if not isinstance(payload, dict):
        raise DecodeError(f"expected a JSON object, got {type(payload).__name__}")

    records = payload.get("intervals")
    meta = payload.get("meta")
    if not isinstance(records, list):
        raise DecodeError("response has no 'intervals' array")
    if not isinstance(meta, dict):
        raise DecodeError("response has no 'meta' object")

    intervals: list[Interval] = []
    for index, record in enumerate(records):
        if not isinstance(record, dict):
            raise DecodeError(f"interval #{index} is not an object")
        try:
            intervals.append(decode_interval(resource, record))
        except DecodeError as e:
            raise DecodeError(f"interval #{index}: {e}") from e
        except ValueError as e:
            logger.warning(
                "interval_rejected",
                resource=resource.value,
                index=index,
                reason=str(e),
            )

    return Page(resource=resource, intervals=tuple(intervals), meta=_decode_meta(meta))


# ──────────────────────────────────────────────
# Encoding (wire shape for the query API)
# ──────────────────────────────────────────────


def _encode_value(value: Any, kind: FieldKind) -> str:
    if kind is FieldKind.TIME:
        return str(int(value.timestamp()))
    if kind is FieldKind.FLOAT:
        return NAN_TOKEN if math.isnan(value) else str(value)
    return str(value)


def encode_interval(interval: Interval) -> dict[str, Any]:
    """Render an interval in the upstream wire shape (string-wrapped numbers)."""
    resource = _RESOURCE_BY_TYPE[type(interval)]
    body: dict[str, Any] = {
        f.wire: _encode_value(getattr(interval, f.attr), f.kind)
        for f in WIRE_FIELDS[resource]
    }
    if isinstance(interval, EarningsInterval):
        body["pools"] = [
            {f.wire: _encode_value(getattr(pool, f.attr), f.kind) for f in POOL_FIELDS}
            for pool in interval.pools
        ]
    return body
