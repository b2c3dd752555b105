"""Parameterized SQL generation from a QuerySpecification.

Every user-supplied value is bound as a parameter. The only identifier taken
from the request is the sort field, which must be a plain SQL identifier.
"""

import re
from dataclasses import dataclass

from midgard_history.exceptions import InvalidSortFieldError
from midgard_history.query.schema import SchemaDescriptor
from midgard_history.query.spec import SQLITE_MAX_INT, QuerySpecification

DEFAULT_PAGE_SIZE = 30
MAX_PAGE_SIZE = 400

NO_DATA_MESSAGE = "no data found in the database for the given params"

SORT_ALIASES = {"timestamp": "start_time"}

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


@dataclass(frozen=True)
class ParameterizedQuery:
    sql: str
    params: tuple


class QueryBuilder:
    """Builds SELECT statements for any resource from its SchemaDescriptor."""

    def __init__(
        self,
        default_page_size: int = DEFAULT_PAGE_SIZE,
        max_page_size: int = MAX_PAGE_SIZE,
    ) -> None:
        self._default_page_size = default_page_size
        self._max_page_size = max_page_size

    def effective_limit(self, requested: int | None) -> int:
        """Requested limit, defaulted when absent or non-positive, capped."""
        if requested is None or requested <= 0:
            requested = self._default_page_size
        return min(requested, self._max_page_size)

    @staticmethod
    def sort_column(sort_by: str) -> str:
        column = SORT_ALIASES.get(sort_by, sort_by)
        if not _IDENTIFIER.match(column):
            raise InvalidSortFieldError(f"invalid sort field: {sort_by!r}")
        return column

    @staticmethod
    def direction(order: str | None, schema: SchemaDescriptor) -> str:
        if order is None:
            return "DESC" if schema.default_descending else "ASC"
        return "DESC" if order == "desc" else "ASC"

    def build(self, spec: QuerySpecification, schema: SchemaDescriptor) -> ParameterizedQuery:
        conditions: list[str] = []
        params: list = []

        if spec.date_range is not None:
            conditions.append("start_time >= ? AND end_time <= ?")
            params.extend(
                [
                    int(spec.date_range.start.timestamp()),
                    int(spec.date_range.end.timestamp()),
                ]
            )

        for threshold in schema.filters:
            if threshold.param in spec.thresholds:
                conditions.append(f"{threshold.column} {threshold.operator} ?")
                params.append(spec.thresholds[threshold.param])

        if spec.pool is not None and schema.supports_pool_filter:
            conditions.append(
                f"EXISTS (SELECT 1 FROM {schema.pools_table} p "
                f"WHERE p.interval_id = {schema.table}.id AND p.pool = ?)"
            )
            params.append(spec.pool)

        sql = f"SELECT id, {', '.join(schema.columns)} FROM {schema.table}"
        if conditions:
            sql += " WHERE " + " AND ".join(conditions)

        limit = self.effective_limit(spec.limit)
        page = max(spec.page, 0)
        sql += (
            f" ORDER BY {self.sort_column(spec.sort_by)} {self.direction(spec.order, schema)}"
            " LIMIT ? OFFSET ?"
        )
        # OFFSET must fit an SQLite INTEGER
        params.extend([limit, min(page * limit, SQLITE_MAX_INT)])

        return ParameterizedQuery(sql=sql, params=tuple(params))
