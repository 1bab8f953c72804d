"""
FastAPI backend server for the progression ledger.

This module builds the FastAPI application that serves the character history
API. It sets up:
- CORS middleware from ``config.security``
- The ledger services bound to the configured database
- All API route endpoints and exception handlers

The server runs on port 8000 by default (``PROG_PORT``/``[server] port``).
"""

from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from progression_server import __version__
from progression_server.api.routes import register_routes
from progression_server.config import config
from progression_server.services import LedgerServices

logger = logging.getLogger(__name__)


def create_app(services: LedgerServices | None = None) -> FastAPI:
    """Build the application.

    Args:
        services: Ledger services to serve. Defaults to services bound to the
            configured database.
    """
    docs = config.docs_should_be_enabled
    app = FastAPI(
        title="Progression Server",
        version=__version__,
        docs_url="/docs" if docs else None,
        redoc_url="/redoc" if docs else None,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.security.cors_origins,
        allow_credentials=config.security.cors_allow_credentials,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_routes(app, services or LedgerServices.from_config())
    return app


app = create_app()


def start_server(host: str | None = None, port: int | None = None) -> None:
    """Initialize the database if needed and serve ``app`` with uvicorn."""
    import uvicorn

    from progression_server.db.schema import init_database
    from progression_server.logging_config import configure_logging

    configure_logging()
    init_database()

    host = host or config.server.host
    port = port or config.server.port
    logger.info("Starting progression server on %s:%s", host, port)
    uvicorn.run(app, host=host, port=port, log_config=None)


if __name__ == "__main__":
    start_server()
