"""
Exception handlers rendering every failure in the response envelope.

``{"success": false, "message": ..., "error": {"kind": ..., "details": ...}, "data": null}``
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException

from slidebid.domain.errors import ErrorKind, SlideBidError

logger = logging.getLogger(__name__)

STATUS_BY_KIND = {
    ErrorKind.VALIDATION: status.HTTP_400_BAD_REQUEST,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.FORBIDDEN: status.HTTP_403_FORBIDDEN,
    ErrorKind.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorKind.INFRASTRUCTURE: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def _envelope(status_code: int, message: str, kind: str, details=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "message": message,
            "error": {"kind": kind, "details": details or {}},
            "data": None,
        },
    )


async def slidebid_error_handler(request: Request, exc: SlideBidError) -> JSONResponse:
    if exc.kind is ErrorKind.INFRASTRUCTURE:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return _envelope(STATUS_BY_KIND[exc.kind], exc.message, exc.kind.value, exc.details)


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    kind = {
        401: "unauthorized",
        403: ErrorKind.FORBIDDEN.value,
        404: ErrorKind.NOT_FOUND.value,
        409: ErrorKind.CONFLICT.value,
    }.get(exc.status_code, "http_error")
    return _envelope(exc.status_code, str(exc.detail), kind)


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    return _envelope(
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "Validation error",
        ErrorKind.VALIDATION.value,
        {"errors": jsonable_encoder(exc.errors())},
    )


async def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.exception("Database error on %s %s", request.method, request.url.path)
    return _envelope(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "Database error",
        ErrorKind.INFRASTRUCTURE.value,
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(SlideBidError, slidebid_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(SQLAlchemyError, database_error_handler)
