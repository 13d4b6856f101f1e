"""Error taxonomy and the standard response envelope for every API error.

Every response body has the shape
``{success, message?, data?, error?, errors?}``.
"""
from typing import Any

import sentry_sdk
import structlog
from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

logger = structlog.get_logger()


class ServiceError(Exception):
    """Base class for errors raised by services and mapped to HTTP responses."""

    status_code: int = 500
    error: str = "service_error"

    def __init__(
        self,
        message: str,
        *,
        data: dict[str, Any] | None = None,
        errors: list[dict[str, Any]] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.data = data
        self.errors = errors


class ValidationError(ServiceError):
    """Malformed, missing or out-of-range input, detected before any side effect."""

    status_code = 400
    error = "validation_error"


class InsufficientBalanceError(ServiceError):
    """The sender cannot cover the aggregate amount of a distribution batch."""

    status_code = 400
    error = "insufficient_balance"

    def __init__(self, available: int, requested: int, message: str | None = None) -> None:
        self.available = available
        self.requested = requested
        super().__init__(
            message or f"Insufficient balance. Have: {available}, Need: {requested}",
            data={
                "availableBalance": str(available),
                "requestedAmount": str(requested),
            },
        )


class NotFoundError(ServiceError):
    status_code = 404
    error = "not_found"


class ConflictError(ServiceError):
    status_code = 409
    error = "conflict"


class LedgerError(ServiceError):
    """A ledger call (RPC, transaction, metadata upload) failed."""

    status_code = 500
    error = "ledger_error"


class PersistenceError(ServiceError):
    """A database write failed after the ledger already committed.

    On-chain and off-chain state diverge here and need reconciliation.
    """

    status_code = 500
    error = "persistence_error"


def envelope(
    success: bool,
    *,
    message: str | None = None,
    data: Any = None,
    error: str | None = None,
    errors: list[dict[str, Any]] | None = None,
) -> dict[str, Any]:
    body: dict[str, Any] = {"success": success}
    if message is not None:
        body["message"] = message
    if data is not None:
        body["data"] = data
    if error is not None:
        body["error"] = error
    if errors is not None:
        body["errors"] = errors
    return body


async def service_exception_handler(request: Request, exc: ServiceError) -> JSONResponse:
    """Render a ServiceError into the standard envelope."""
    log = logger.error if exc.status_code >= 500 else logger.info
    log(
        "service_error",
        error=exc.error,
        message=exc.message,
        status_code=exc.status_code,
        path=request.url.path,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=envelope(
            False,
            message=exc.message,
            data=exc.data,
            error=exc.error,
            errors=exc.errors,
        ),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Map request-body / query validation failures to HTTP 400 with field detail."""
    errors = [
        {
            "field": ".".join(str(part) for part in err.get("loc", ()) if part != "body"),
            "message": err.get("msg", "Invalid value"),
        }
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content=envelope(
            False,
            message="Validation failed",
            error="validation_error",
            errors=errors,
        ),
    )


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch unhandled exceptions and return a consistent JSON envelope."""
    logger.error(
        "unhandled_exception",
        error=str(exc),
        error_type=type(exc).__name__,
        path=request.url.path,
        method=request.method,
        exc_info=exc,
    )

    sentry_sdk.capture_exception(exc)

    return JSONResponse(
        status_code=500,
        content=envelope(
            False,
            message="An unexpected error occurred.",
            error="internal_server_error",
        ),
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Standardize HTTPException responses into the same JSON envelope."""
    if isinstance(exc.detail, dict):
        message = exc.detail.get("message", str(exc.detail))
        error = exc.detail.get("error", f"http_{exc.status_code}")
        data: Any = exc.detail.get("data")
    else:
        message = str(exc.detail)
        error = f"http_{exc.status_code}"
        data = None

    return JSONResponse(
        status_code=exc.status_code,
        content=envelope(False, message=message, data=data, error=error),
        headers=dict(exc.headers or {}),
    )
