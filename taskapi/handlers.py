# taskapi/handlers.py

"""Exception handlers that render every failure as the JSON error envelope."""

import traceback
from typing import Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from taskapi.errors import StoreError, StoreErrorKind, TaskApiError, RequestValidationFailed
from taskapi.schemas import ErrorResponse, FieldError

logger = structlog.get_logger(__name__)

# status, message, error detail for each store failure kind
STORE_ERROR_RESPONSES = {
    StoreErrorKind.VALIDATION: (400, "Validation failed", None),
    StoreErrorKind.UNIQUE_CONSTRAINT: (409, "Resource already exists", "Duplicate entry"),
    StoreErrorKind.FOREIGN_KEY: (400, "Invalid reference", "Foreign key constraint failed"),
    StoreErrorKind.CONNECTION: (500, "Database connection failed", "Service temporarily unavailable"),
}

# message, error detail for an over-limit request body
PAYLOAD_TOO_LARGE = ("Request entity too large", "Payload exceeds size limit")


def error_response(
    status_code: int,
    message: str,
    errors: Optional[list[FieldError]] = None,
    error: Optional[str] = None,
    stack: Optional[str] = None,
) -> JSONResponse:
    body = ErrorResponse(message=message, errors=errors or None, error=error, stack=stack)
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))


async def task_api_error_handler(request: Request, exc: TaskApiError) -> JSONResponse:
    errors = exc.errors if isinstance(exc, RequestValidationFailed) else None
    logger.info("Request rejected", path=request.url.path, status=exc.status_code, message=exc.message)
    return error_response(exc.status_code, exc.message, errors=errors)


async def store_error_handler(request: Request, exc: StoreError) -> JSONResponse:
    status_code, message, detail = STORE_ERROR_RESPONSES[exc.kind]
    if exc.kind == StoreErrorKind.CONNECTION:
        logger.error("Store unavailable", path=request.url.path, error=exc.message)
    else:
        logger.warning("Store rejected write", path=request.url.path, kind=exc.kind.value, error=exc.message)
    errors = exc.errors
    if exc.kind == StoreErrorKind.VALIDATION and not errors:
        errors = [FieldError(field="body", message=exc.message)]
    return error_response(status_code, message, errors=errors, error=detail)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    if any(error.get("type") == "json_invalid" for error in exc.errors()):
        return error_response(400, "Invalid JSON format", error="Malformed request body")
    errors = [
        FieldError(
            field=".".join(str(part) for part in error["loc"] if part not in ("body", "query", "path")) or "body",
            message=error["msg"],
        )
        for error in exc.errors()
    ]
    return error_response(400, "Validation failed", errors=errors)


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code == 413:
        return error_response(413, *PAYLOAD_TOO_LARGE)
    if exc.status_code == 404:
        message = f"Route {request.method} {request.url.path} not found"
    else:
        message = str(exc.detail)
    return error_response(exc.status_code, message)


def register_exception_handlers(app: FastAPI, include_stack: bool) -> None:
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error", path=request.url.path)
        stack = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)) if include_stack else None
        return error_response(500, "Internal server error", stack=stack)

    app.add_exception_handler(TaskApiError, task_api_error_handler)
    app.add_exception_handler(StoreError, store_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
