"""Incremental ingestion: upstream client, fetch-retry engines and writer."""

from midgard_history.ingestion.client import FetchRequest, MidgardClient, SourceClient
from midgard_history.ingestion.engine import EngineState, FetchRetryEngine, StepOutcome
from midgard_history.ingestion.manager import IngestionManager
from midgard_history.ingestion.writer import IngestionWriter

__all__ = [
    "EngineState",
    "FetchRequest",
    "FetchRetryEngine",
    "IngestionManager",
    "IngestionWriter",
    "MidgardClient",
    "SourceClient",
    "StepOutcome",
]
