from __future__ import annotations

import logging
from dataclasses import asdict

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from siteproc.services.errors import (
    ConcurrencyConflictError,
    DomainValidationError,
    DuplicateRequestError,
    InvalidStateError,
    NotFoundError,
)

logger = logging.getLogger(__name__)


def _error(status_code: int, detail: str, **extra) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=jsonable_encoder({"detail": detail, **extra}))


async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    return _error(404, str(exc))


async def invalid_state_handler(request: Request, exc: InvalidStateError) -> JSONResponse:
    logger.info("Conflict on %s %s: %s", request.method, request.url.path, exc)
    return _error(409, str(exc))


async def validation_handler(request: Request, exc: DomainValidationError) -> JSONResponse:
    return _error(400, str(exc))


async def duplicate_handler(request: Request, exc: DuplicateRequestError) -> JSONResponse:
    return _error(409, str(exc), duplicates=[asdict(w) for w in exc.warnings])


async def concurrency_handler(request: Request, exc: ConcurrencyConflictError) -> JSONResponse:
    logger.warning("Concurrent write on %s %s: %s", request.method, request.url.path, exc)
    return _error(409, str(exc), retryable=True)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(NotFoundError, not_found_handler)
    app.add_exception_handler(InvalidStateError, invalid_state_handler)
    app.add_exception_handler(DomainValidationError, validation_handler)
    app.add_exception_handler(DuplicateRequestError, duplicate_handler)
    app.add_exception_handler(ConcurrencyConflictError, concurrency_handler)
