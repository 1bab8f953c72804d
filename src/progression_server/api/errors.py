"""Exception handlers mapping ledger and store failures to HTTP responses.

Every error body has the same envelope::

    {"message": "...", "context": {...}}

Request validation failures are reported as 400 with the pydantic error list
under ``errors``.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from progression_server.db.errors import (
    CharacterNotFoundError,
    ConditionalWriteError,
    DatabaseError,
    DatabaseOperationError,
)
from progression_server.ledger.errors import LedgerError

logger = logging.getLogger(__name__)


def _error_body(message: str, **extra) -> dict:
    return jsonable_encoder({"message": message, **extra})


def _operation_context(exc: DatabaseError) -> dict:
    if isinstance(exc, DatabaseOperationError):
        return {"operation": exc.context.operation}
    return {}


def register_exception_handlers(app: FastAPI) -> None:
    """Install the ledger, database and validation handlers on ``app``."""

    @app.exception_handler(LedgerError)
    async def handle_ledger_error(request: Request, exc: LedgerError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s %s", request.method, request.url.path, exc, exc.context)
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(exc.message, context=exc.context),
        )

    @app.exception_handler(ConditionalWriteError)
    async def handle_conditional_write(
        request: Request, exc: ConditionalWriteError
    ) -> JSONResponse:
        logger.info("Conditional write failed on %s: %s", request.url.path, exc)
        return JSONResponse(
            status_code=409,
            content=_error_body(
                "The history changed concurrently, reload and retry",
                context=_operation_context(exc),
            ),
        )

    @app.exception_handler(CharacterNotFoundError)
    async def handle_character_not_found(
        request: Request, exc: CharacterNotFoundError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=404,
            content=_error_body("Character not found", context=_operation_context(exc)),
        )

    @app.exception_handler(DatabaseError)
    async def handle_database_error(request: Request, exc: DatabaseError) -> JSONResponse:
        from progression_server.config import config

        logger.exception("Database failure on %s %s", request.method, request.url.path)
        context = _operation_context(exc)
        if config.features.verbose_errors:
            context["detail"] = str(exc)
        return JSONResponse(
            status_code=500,
            content=_error_body("Internal server error", context=context),
        )

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content=_error_body("Invalid input values!", errors=exc.errors()),
        )
