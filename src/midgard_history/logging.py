"""Structured logging configuration using structlog with async context propagation."""

import logging
import os

import structlog


def setup_logging(log_level: str = "INFO") -> None:
    """Configure structlog with JSON or console rendering.

    Uses structlog.contextvars so that values bound inside an ingestion task
    (e.g. ``resource="earnings"``) stay attached to that task only.
    Rendering format is controlled by the LOG_FORMAT environment variable:
    - "json" for production (machine-readable)
    - "console" for development (human-readable, default)
    """
    log_format = os.environ.get("LOG_FORMAT", "console").lower()

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if log_format == "json":
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    # uvicorn and aiohttp keep their own loggers; route them through ours
    for name in ("uvicorn", "uvicorn.error", "aiohttp.client"):
        logging.getLogger(name).handlers.clear()
        logging.getLogger(name).propagate = True


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Return a bound structlog logger with the given name."""
    return structlog.get_logger(name)


def bind_resource(resource: str) -> None:
    """Bind the ingestion resource to the current task's log context."""
    structlog.contextvars.bind_contextvars(resource=resource)
