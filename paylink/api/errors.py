"""
Exception handlers.

Every error body is ``{"error": "<message>"}``. Gateway errors carry their
own status and client-facing message; anything unexpected becomes a generic
500 so no internals leak.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from paylink.errors import PaylinkError

logger = logging.getLogger("paylink.api")


def error_response(message: str, status_code: int) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(PaylinkError)
    async def handle_paylink_error(request: Request, exc: PaylinkError):
        return error_response(exc.message, exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError):
        logger.warning("Rejected request body path=%s errors=%s", request.url.path, exc.errors())
        return error_response("invalid request body", 400)

    @app.exception_handler(SQLAlchemyError)
    async def handle_database_error(request: Request, exc: SQLAlchemyError):
        logger.error("Database error path=%s: %s", request.url.path, exc)
        return error_response("internal server error", 500)

    @app.exception_handler(Exception)
    async def handle_unhandled_exception(request: Request, exc: Exception):
        logger.exception("Unhandled error path=%s", request.url.path)
        return error_response("internal server error", 500)
