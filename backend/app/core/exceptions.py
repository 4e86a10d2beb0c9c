"""
Custom exceptions and error handlers for consistent error responses.

Provides standardized error codes for the ledger and global exception handlers.
"""

import logging
from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from typing import Any, Dict

logger = logging.getLogger(__name__)


class AppException(Exception):
    """Base application exception."""

    def __init__(self, message: str, error_code: str, status_code: int = 500, details: Dict[str, Any] = None):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class ValidationError(AppException):
    """Raised when ledger input is malformed or missing required fields."""

    def __init__(self, message: str = "Validation error", details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_VALIDATION",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details=details
        )


class NotFoundError(AppException):
    """Raised when a referenced client or transaction does not exist."""

    def __init__(self, resource: str, resource_id: Any = None):
        message = f"{resource} not found"
        if resource_id is not None:
            message = f"{resource} with ID {resource_id} not found"
        super().__init__(
            message=message,
            error_code="ERR_NOT_FOUND_001",
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource": resource, "id": resource_id}
        )


class ConflictError(AppException):
    """Raised when a concurrent writer invalidated the state this operation relied on."""

    def __init__(self, message: str = "Concurrent modification detected", details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_CONFLICT",
            status_code=status.HTTP_409_CONFLICT,
            details=details
        )


class ConsistencyViolationError(AppException):
    """
    Raised when a client's aggregate no longer matches its ledger.

    Never retried. Writes to the client stay halted until it is reconciled.
    """

    def __init__(self, client_id: Any, message: str, details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_LEDGER_INCONSISTENT",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            details={"client_id": client_id, **(details or {})}
        )
        self.client_id = client_id


class ClientFrozenError(ConsistencyViolationError):
    """Raised when writing to a client whose writes were halted by an earlier violation."""

    def __init__(self, client_id: Any, reason: str = None):
        super().__init__(
            client_id=client_id,
            message=f"Writes to client {client_id} are halted until it is reconciled",
            details={"reason": reason}
        )
        self.error_code = "ERR_LEDGER_FROZEN"
        self.status_code = status.HTTP_423_LOCKED


class ClientInactiveError(AppException):
    """Raised when writing to a client that has been soft-deleted."""

    def __init__(self, client_id: Any):
        super().__init__(
            message=f"Client with ID {client_id} is inactive",
            error_code="ERR_CLIENT_INACTIVE",
            status_code=status.HTTP_409_CONFLICT,
            details={"client_id": client_id}
        )


class OperationTimeoutError(AppException):
    """Raised when a ledger write does not finish within its configured timeout."""

    def __init__(self, operation: str, timeout_seconds: float):
        super().__init__(
            message=f"{operation} timed out after {timeout_seconds}s",
            error_code="ERR_TIMEOUT",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            details={"operation": operation, "timeout_seconds": timeout_seconds}
        )


# Global Exception Handlers

async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handler for custom application exceptions."""
    if exc.status_code >= 500:
        logger.error("%s: %s", exc.error_code, exc.message, extra={"path": request.url.path})
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": exc.error_code,
            "message": exc.message,
            "details": exc.details
        }
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handler for FastAPI HTTPException with standardized format."""
    # Map status code to error code
    error_code_map = {
        400: "ERR_BAD_REQUEST",
        401: "ERR_UNAUTHORIZED",
        403: "ERR_FORBIDDEN",
        404: "ERR_NOT_FOUND",
        500: "ERR_INTERNAL_SERVER"
    }

    error_code = error_code_map.get(exc.status_code, "ERR_UNKNOWN")

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": error_code,
            "message": exc.detail,
            "details": {}
        },
        headers=getattr(exc, "headers", None)
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handler for Pydantic validation errors on request bodies and parameters."""
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error_code": "ERR_VALIDATION",
            "message": "Validation error",
            "details": {
                "errors": jsonable_errors(exc.errors())
            }
        }
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handler for unhandled exceptions."""
    logger.exception("Unhandled exception: %s", type(exc).__name__)

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error_code": "ERR_INTERNAL_SERVER",
            "message": "An internal server error occurred",
            "details": {}
        }
    )


def jsonable_errors(errors) -> list:
    """Drop exception context from pydantic error dicts and make the rest JSON-safe."""
    cleaned = [
        {key: value for key, value in error.items() if key not in ("ctx", "url")}
        for error in errors
    ]
    return jsonable_encoder(cleaned)
