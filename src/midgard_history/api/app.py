"""FastAPI application factory for the history query service."""

from typing import Any

from fastapi import FastAPI

from midgard_history.api.routes import history


def create_app(lifespan: Any = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        lifespan: Optional async context manager for application lifespan events.
                  Used by main.py to connect storage and start ingestion.

    Returns:
        Configured FastAPI application with the history routes registered.
        Route handlers read their collaborators from ``app.state``.
    """
    app = FastAPI(
        title="Midgard Interval History",
        lifespan=lifespan,
    )

    # Wired by main.py lifespan (or directly by tests)
    app.state.store = None
    app.state.watermarks = None
    app.state.query_builder = None
    app.state.ingestion = None

    app.include_router(history.router)

    return app
