"""JSON endpoints for the four interval histories plus liveness and status.

History endpoints accept the query parameters understood by
QuerySpecification (``date_range``, the resource's ``*_gt`` thresholds,
``pool`` for earnings, ``sort_by``, ``order``, ``page``, ``limit``). They read
raw query strings rather than typed FastAPI parameters so that unparseable
values fall back to defaults instead of producing a 422.

Handlers expect ``app.state.store`` (IntervalStore), ``app.state.watermarks``
(WatermarkStore), ``app.state.query_builder`` (QueryBuilder) and, optionally,
``app.state.ingestion`` (IngestionManager).
"""

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, PlainTextResponse

from midgard_history.data.decoder import encode_interval
from midgard_history.data.models import ResourceType
from midgard_history.exceptions import DecodeError, StorageError
from midgard_history.logging import get_logger
from midgard_history.query.builder import NO_DATA_MESSAGE
from midgard_history.query.schema import SCHEMAS
from midgard_history.query.spec import QuerySpecification

logger = get_logger(__name__)

router = APIRouter()


def _error(message: str) -> JSONResponse:
    return JSONResponse(status_code=500, content={"success": False, "error": message})


async def _query_history(request: Request, resource: ResourceType) -> JSONResponse:
    schema = SCHEMAS[resource]
    store = request.app.state.store
    builder = request.app.state.query_builder

    spec = QuerySpecification.from_params(request.query_params, schema)
    try:
        query = builder.build(spec, schema)
        intervals = await store.fetch_intervals(resource, query)
        body = [encode_interval(interval) for interval in intervals]
    except StorageError as e:
        logger.error("history_query_failed", resource=resource.value, error=str(e))
        return _error(f"Database error: {e}")
    except DecodeError as e:
        logger.error("history_encode_failed", resource=resource.value, error=str(e))
        return _error(f"Decode error: {e}")

    if not body:
        return JSONResponse(content={"success": True, "data": NO_DATA_MESSAGE})
    return JSONResponse(content=body)


@router.get("/depth_history")
async def depth_history(request: Request) -> JSONResponse:
    """Pool depth history (filter: ``liquidity_gt``)."""
    return await _query_history(request, ResourceType.DEPTH)


@router.get("/swap_history")
async def swap_history(request: Request) -> JSONResponse:
    """Swap history (filters: ``volume_gt``, ``fees_gt``)."""
    return await _query_history(request, ResourceType.SWAP)


@router.get("/earning_history")
async def earning_history(request: Request) -> JSONResponse:
    """Earnings history (filters: ``earnings_gt``, ``block_rewards_gt``,
    ``node_count_gt``, ``pool``)."""
    return await _query_history(request, ResourceType.EARNINGS)


@router.get("/runepool_units_history")
async def runepool_units_history(request: Request) -> JSONResponse:
    """RUNEPool units history (filter: ``units_gt``; newest first by default)."""
    return await _query_history(request, ResourceType.RUNEPOOL)


@router.get("/", response_class=PlainTextResponse)
async def index() -> str:
    return "Hello, World!"


@router.get("/status")
async def status(request: Request) -> JSONResponse:
    """Per-resource watermark, stored interval count and engine state."""
    store = request.app.state.store
    watermarks = request.app.state.watermarks
    ingestion = getattr(request.app.state, "ingestion", None)
    engines = ingestion.status() if ingestion is not None else {}

    result = {}
    try:
        for resource, watermark in (await watermarks.snapshot()).items():
            result[resource.value] = {
                "watermark": int(watermark.timestamp()),
                "watermark_iso": watermark.isoformat(),
                "count": await store.count_intervals(resource),
                "engine": engines.get(resource.value, {}).get("state"),
            }
    except StorageError as e:
        logger.error("status_query_failed", error=str(e))
        return _error(f"Database error: {e}")

    return JSONResponse(content=result)
