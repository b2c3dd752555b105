"""Interval history persistence layer.

Provides the typed interval models, the wire decoder, SQLite database
management, the typed read/write store, and per-resource watermarks.
"""

from midgard_history.data.database import HistoryDatabase
from midgard_history.data.decoder import decode_page, encode_interval
from midgard_history.data.models import (
    DepthInterval,
    EarningsInterval,
    EarningsPool,
    Page,
    PageMeta,
    ResourceType,
    RunepoolUnitsInterval,
    SwapInterval,
)
from midgard_history.data.store import IntervalStore
from midgard_history.data.watermark import WatermarkStore

__all__ = [
    "DepthInterval",
    "EarningsInterval",
    "EarningsPool",
    "HistoryDatabase",
    "IntervalStore",
    "Page",
    "PageMeta",
    "ResourceType",
    "RunepoolUnitsInterval",
    "SwapInterval",
    "WatermarkStore",
    "decode_page",
    "encode_interval",
]
