"""
Route registration entry point for the FastAPI application.

Keeps the public ``register_routes(app, services)`` API stable while the
implementation lives in focused router modules.
"""

from fastapi import FastAPI

from progression_server.api.errors import register_exception_handlers
from progression_server.api.routes import characters, health, history
from progression_server.services import LedgerServices


def register_routes(app: FastAPI, services: LedgerServices) -> None:
    """Register all API routes and exception handlers with the FastAPI app."""
    register_exception_handlers(app)
    app.include_router(health.router)
    app.include_router(history.router(services))
    app.include_router(characters.router(services))
