"""Request-side query specification.

Turns raw query-string parameters into a typed QuerySpecification. Parsing
fails open: a parameter that cannot be parsed is treated as absent rather
than rejecting the request.
"""

import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, time, timezone

from midgard_history.exceptions import ValidationError
from midgard_history.logging import get_logger
from midgard_history.query.schema import SchemaDescriptor

logger = get_logger(__name__)

DATE_FORMAT = "%Y-%m-%d"

# Signed 64-bit range of an SQLite INTEGER
SQLITE_MIN_INT = -(2**63)
SQLITE_MAX_INT = 2**63 - 1


@dataclass(frozen=True)
class DateRange:
    """Inclusive UTC bounds: ``start`` at 00:00:00, ``end`` at 23:59:59."""

    start: datetime
    end: datetime


def parse_date_range(raw: str) -> DateRange:
    """Parse ``"YYYY-MM-DD,YYYY-MM-DD"``.

    Raises ValidationError for anything else, including a single-sided range.
    """
    parts = raw.split(",")
    if len(parts) != 2 or not all(p.strip() for p in parts):
        raise ValidationError(f"date_range must be 'YYYY-MM-DD,YYYY-MM-DD', got {raw!r}")
    try:
        start_day = datetime.strptime(parts[0].strip(), DATE_FORMAT).date()
        end_day = datetime.strptime(parts[1].strip(), DATE_FORMAT).date()
    except ValueError as e:
        raise ValidationError(f"invalid date in date_range {raw!r}: {e}") from e

    return DateRange(
        start=datetime.combine(start_day, time(0, 0, 0), tzinfo=timezone.utc),
        end=datetime.combine(end_day, time(23, 59, 59), tzinfo=timezone.utc),
    )


def _parse_number(
    raw: str | None, kind: type, bounded: bool = True
) -> int | float | None:
    """Parse a numeric param; unparseable values are None.

    With ``bounded``, values SQLite cannot bind (non-finite floats, integers
    outside the signed 64-bit range) are None too.
    """
    if raw is None:
        return None
    try:
        value = kind(raw.strip())
    except ValueError:
        return None
    if not bounded:
        return value
    if isinstance(value, float) and not math.isfinite(value):
        return None
    if isinstance(value, int) and not SQLITE_MIN_INT <= value <= SQLITE_MAX_INT:
        return None
    return value


@dataclass(frozen=True)
class QuerySpecification:
    """Typed, request-scoped query parameters.

    ``limit`` is kept as requested; clamping to the page-size cap happens in
    the builder.
    """

    date_range: DateRange | None = None
    thresholds: dict[str, int | float] = field(default_factory=dict)
    pool: str | None = None
    sort_by: str = "start_time"
    order: str | None = None
    page: int = 0
    limit: int | None = None

    @classmethod
    def from_params(
        cls, params: Mapping[str, str], schema: SchemaDescriptor
    ) -> "QuerySpecification":
        """Build a specification from raw query parameters.

        Only the schema's declared threshold params are read; ``pool`` is
        read only where the schema supports containment.
        """
        date_range = None
        raw_range = params.get("date_range")
        if raw_range:
            try:
                date_range = parse_date_range(raw_range)
            except ValidationError as e:
                logger.debug("date_range_ignored", error=str(e))

        thresholds: dict[str, int | float] = {}
        for threshold in schema.filters:
            value = _parse_number(params.get(threshold.param), threshold.type)
            if value is not None:
                thresholds[threshold.param] = value

        pool = params.get("pool") if schema.supports_pool_filter else None

        page = _parse_number(params.get("page"), int, bounded=False)
        limit = _parse_number(params.get("limit"), int, bounded=False)

        return cls(
            date_range=date_range,
            thresholds=thresholds,
            pool=pool or None,
            sort_by=params.get("sort_by") or "start_time",
            order=params.get("order"),
            page=max(page or 0, 0),
            limit=limit,
        )
