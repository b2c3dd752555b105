"""Filtered, sorted, paginated queries over stored interval history."""

from midgard_history.query.builder import (
    NO_DATA_MESSAGE,
    ParameterizedQuery,
    QueryBuilder,
)
from midgard_history.query.schema import SCHEMAS, SchemaDescriptor, ThresholdFilter
from midgard_history.query.spec import DateRange, QuerySpecification, parse_date_range

__all__ = [
    "DateRange",
    "NO_DATA_MESSAGE",
    "ParameterizedQuery",
    "QueryBuilder",
    "QuerySpecification",
    "SCHEMAS",
    "SchemaDescriptor",
    "ThresholdFilter",
    "parse_date_range",
]
