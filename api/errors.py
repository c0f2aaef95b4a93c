"""
Error envelope.

Every failure leaves the API as ``{"message": "..."}`` with a status code
chosen from the error's type.  Store faults get their own 503 so clients
can tell them apart from their own mistakes.
"""

from __future__ import annotations

import logging
from typing import Dict, Type

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from auth.dependencies import Unauthenticated
from database.errors import (
    BadCredentials,
    DuplicateUsername,
    InvalidInput,
    StoreError,
    UpstreamFailure,
    UserNotFound,
)

logger = logging.getLogger(__name__)

STATUS_BY_ERROR: Dict[Type[StoreError], int] = {
    InvalidInput: 422,
    DuplicateUsername: status.HTTP_409_CONFLICT,
    BadCredentials: status.HTTP_401_UNAUTHORIZED,
    UserNotFound: status.HTTP_404_NOT_FOUND,
    UpstreamFailure: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def _message(status_code: int, message: str, headers: Dict[str, str] | None = None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"message": message}, headers=headers)


def status_for(exc: StoreError) -> int:
    for cls in type(exc).__mro__:
        if cls in STATUS_BY_ERROR:
            return STATUS_BY_ERROR[cls]
    return 422


def _describe_validation(exc: RequestValidationError) -> str:
    problems = []
    for err in exc.errors():
        field = ".".join(str(p) for p in err.get("loc", ())[1:]) or "body"
        problems.append(f"{field}: {err.get('msg', 'invalid')}")
    return "Invalid input: " + "; ".join(problems)


def register_exception_handlers(app: FastAPI) -> None:
    """Install the handlers that turn exceptions into the error envelope."""

    @app.exception_handler(StoreError)
    async def store_error(request: Request, exc: StoreError) -> JSONResponse:
        code = status_for(exc)
        if code >= 500:
            logger.error("%s %s failed: %r", request.method, request.url.path, exc.__cause__ or exc)
        return _message(code, exc.message)

    @app.exception_handler(Unauthenticated)
    async def unauthenticated(request: Request, exc: Unauthenticated) -> JSONResponse:
        logger.debug("%s %s unauthenticated: %s", request.method, request.url.path, exc.reason)
        return _message(
            status.HTTP_401_UNAUTHORIZED,
            "Unauthorized",
            headers={"WWW-Authenticate": exc.scheme},
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        return _message(422, _describe_validation(exc))

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return _message(exc.status_code, str(exc.detail), headers=getattr(exc, "headers", None))

    @app.exception_handler(Exception)
    async def unhandled(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return _message(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")
