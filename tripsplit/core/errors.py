"""
FastAPI exception handlers mapping failures to structured JSON responses.
"""
import logging
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette import status
from tripsplit.core.exceptions import AppError
from tripsplit.core.utils import format_error

logger = logging.getLogger(__name__)


def app_error_handler(request: Request, exc: AppError):  # type: ignore
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", exc.kind, request.method, request.url.path, exc.message)
    else:
        logger.info("%s on %s %s: %s", exc.kind, request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content=format_error(exc.kind, exc.message, field=exc.field),
    )


def validation_error_handler(request: Request, exc: RequestValidationError):  # type: ignore
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=format_error("validation_error", _jsonable_errors(exc.errors())),
    )


def server_error_handler(request: Request, exc: Exception):  # type: ignore
    logger.exception("unhandled exception")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=format_error("internal_error", "An unexpected error occurred."),
    )


def _jsonable_errors(errors):
    # pydantic puts the raised exception object in ctx for custom validators
    cleaned = []
    for error in errors:
        error = dict(error)
        ctx = error.get("ctx")
        if ctx:
            error["ctx"] = {key: str(value) for key, value in ctx.items()}
        error.pop("input", None)
        cleaned.append(error)
    return cleaned


def register_exception_handlers(app: FastAPI) -> None:
    """Install the handlers on an application instance."""
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, server_error_handler)
