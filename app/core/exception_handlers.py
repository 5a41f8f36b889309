import logging
import uuid

from fastapi import FastAPI, Request, HTTPException, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError

from app.core.exceptions import (
    BusinessRuleError,
    CustomerAlreadyExistsError,
    CustomerNotFoundError,
    CustomerServiceError,
)

log = logging.getLogger("exception_handlers")


# Generate a clean request id for every response
def _rid():
    """Generates a unique request ID for tracing."""
    return uuid.uuid4().hex


def _error_body(code: str, message, **extra):
    error = {"code": code, "message": message}
    error.update(extra)
    return {"success": False, "error": error, "request_id": _rid()}


# ----------- Exception Handlers (called by FastAPI) -----------

def http_exception_handler(request: Request, exc: HTTPException):
    """Handles exceptions raised by HTTPException (e.g., 404, 400)."""
    return JSONResponse(status_code=exc.status_code, content=_error_body("http_error", exc.detail))


def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handles Pydantic validation errors (422 Unprocessable Entity)."""
    body = _error_body("validation_error", "Invalid input data", details=exc.errors())
    return JSONResponse(status_code=422, content=_jsonable(body))


def customer_error_handler(request: Request, exc: CustomerServiceError):
    """Maps domain errors to their HTTP status codes."""
    if isinstance(exc, CustomerNotFoundError):
        status_code = status.HTTP_404_NOT_FOUND
    elif isinstance(exc, CustomerAlreadyExistsError):
        status_code = status.HTTP_409_CONFLICT
    elif isinstance(exc, BusinessRuleError):
        status_code = status.HTTP_400_BAD_REQUEST
    else:
        log.error(f"Service error on path {request.url.path}: {exc}", exc_info=exc)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=_error_body(exc.code, "Internal Server Error"),
        )

    log.warning(f"{exc.code} on path {request.url.path}: {exc}")
    return JSONResponse(status_code=status_code, content=_error_body(exc.code, str(exc)))


def generic_exception_handler(request: Request, exc: Exception):
    """Handles all unhandled exceptions (500 Internal Server Error)."""
    log.error(f"Unhandled exception on path: {request.url.path}", exc_info=exc)
    return JSONResponse(status_code=500, content=_error_body("server_error", "Internal Server Error"))


def _jsonable(body):
    # exc.errors() may carry non-JSON values (e.g. the offending ValueError in ctx)
    return jsonable_encoder(body, custom_encoder={Exception: str})


# ----------- Registration Function -----------

def setup_exception_handlers(app: FastAPI):
    """Registers all custom exception handlers with the FastAPI application."""
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(CustomerServiceError, customer_error_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    return app
