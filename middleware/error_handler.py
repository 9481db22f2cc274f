"""
Centralized error handling for the ledger-stores HTTP API
"""

import logging
import time
import traceback
import uuid
from typing import Union

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from errors.exceptions import LedgerStoreError

logger = logging.getLogger(__name__)

STATUS_CODES = {
    "VALIDATION_ERROR": 400,
    "INIT_ERROR": 503,
    "NETWORK_ERROR": 503,
}


async def add_correlation_id_middleware(request: Request, call_next):
    """Add correlation ID to all requests for tracing"""
    correlation_id = str(uuid.uuid4())
    request.state.correlation_id = correlation_id

    try:
        response = await call_next(request)
        response.headers["X-Correlation-ID"] = correlation_id
        return response
    except Exception as e:
        logger.error(f"Unhandled exception in request {correlation_id}: {str(e)}", exc_info=True)
        raise


def create_error_response(
    error_code: str,
    message: str,
    status_code: int = 400,
    correlation_id: str = None,
    details: dict = None
) -> JSONResponse:
    """Create standardized error response"""
    error_response = {
        "error": {
            "code": error_code,
            "message": message,
            "correlation_id": correlation_id,
            "timestamp": int(time.time() * 1000)
        }
    }

    if details:
        error_response["error"]["details"] = details

    return JSONResponse(status_code=status_code, content=error_response)


async def ledger_store_error_handler(request: Request, exc: LedgerStoreError) -> JSONResponse:
    correlation_id = getattr(request.state, 'correlation_id', None)
    status_code = STATUS_CODES.get(exc.code, 500)

    log = logger.warning if status_code < 500 else logger.error
    log(
        f"Ledger store error: {exc.message}",
        extra={
            "error_code": exc.code,
            "correlation_id": correlation_id,
            "endpoint": request.url.path
        }
    )

    details = None
    failures = getattr(exc, "failures", None)
    if failures:
        details = {"failures": {key: str(error) for key, error in failures.items()}}

    return create_error_response(
        error_code=exc.code,
        message=exc.message,
        status_code=status_code,
        correlation_id=correlation_id,
        details=details
    )


async def validation_error_handler(request: Request, exc: Union[RequestValidationError, ValidationError]) -> JSONResponse:
    """Handle Pydantic validation errors"""
    correlation_id = getattr(request.state, 'correlation_id', None)

    if isinstance(exc, RequestValidationError):
        message = "Request validation failed"
    else:
        message = "Data validation failed"
    errors = [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg", ""), "type": error.get("type", "")}
        for error in exc.errors()
    ]

    logger.warning(
        f"Validation error: {message}",
        extra={
            "errors": errors,
            "correlation_id": correlation_id,
            "endpoint": request.url.path
        }
    )

    return create_error_response(
        error_code="VALIDATION_ERROR",
        message=message,
        status_code=422,
        correlation_id=correlation_id,
        details={"validation_errors": errors}
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handle FastAPI HTTP exceptions"""
    correlation_id = getattr(request.state, 'correlation_id', None)

    logger.warning(
        f"HTTP exception: {exc.detail}",
        extra={
            "status_code": exc.status_code,
            "correlation_id": correlation_id,
            "endpoint": request.url.path
        }
    )

    return create_error_response(
        error_code="HTTP_ERROR",
        message=exc.detail,
        status_code=exc.status_code,
        correlation_id=correlation_id
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions"""
    correlation_id = getattr(request.state, 'correlation_id', None)

    logger.error(
        f"Unhandled exception: {str(exc)}",
        extra={
            "exception_type": type(exc).__name__,
            "correlation_id": correlation_id,
            "endpoint": request.url.path,
            "traceback": traceback.format_exc()
        }
    )

    message = "Internal server error"
    if logger.isEnabledFor(logging.DEBUG):
        message = f"Internal error: {str(exc)}"

    return create_error_response(
        error_code="INTERNAL_ERROR",
        message=message,
        status_code=500,
        correlation_id=correlation_id
    )


def setup_error_handlers(app):
    """Setup all error handlers for FastAPI app"""
    app.middleware("http")(add_correlation_id_middleware)

    app.add_exception_handler(LedgerStoreError, ledger_store_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(ValidationError, validation_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
