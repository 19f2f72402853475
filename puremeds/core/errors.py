from __future__ import annotations

import logging

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class PureMedsError(Exception):
    """Base class for errors that map onto a client-facing HTTP response."""

    status_code = 500
    code = "internal_error"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.__class__.__doc__ or self.code)
        self.message = message or self.__class__.__doc__ or self.code


class InvalidInput(PureMedsError):
    """Missing or malformed batch identity fields."""

    status_code = 400
    code = "invalid_input"


class MalformedHash(PureMedsError):
    """Fingerprint must be 64 hexadecimal characters."""

    status_code = 400
    code = "malformed_hash"


class UnreadableImage(PureMedsError):
    """Invalid QR code image. Please upload a valid QR code."""

    status_code = 400
    code = "unreadable_image"


class MalformedPayload(PureMedsError):
    """Invalid QR code data format."""

    status_code = 400
    code = "malformed_payload"


class IncompletePayload(PureMedsError):
    """QR code does not contain valid medicine data."""

    status_code = 400
    code = "incomplete_payload"


class InsufficientStock(PureMedsError):
    """Not enough stock to fill the order."""

    status_code = 400
    code = "insufficient_stock"


class PermissionDenied(PureMedsError):
    """You don't have permission to access this resource."""

    status_code = 403
    code = "forbidden"


class ResourceNotFound(PureMedsError):
    """Resource not found."""

    status_code = 404
    code = "not_found"


class BatchAlreadyExists(PureMedsError):
    """Batch code already exists. Use a unique batch code."""

    status_code = 409
    code = "batch_already_exists"


class AlreadyRegistered(PureMedsError):
    """Medicine fingerprint already registered on the ledger."""

    status_code = 409
    code = "already_registered"


class LedgerUnavailable(PureMedsError):
    """Ledger is unavailable."""

    status_code = 503
    code = "ledger_unavailable"


class LedgerConfigurationError(LedgerUnavailable):
    """Ledger connection could not be set up."""

    code = "ledger_configuration_error"


def _error_body(code: str, message: str, request_id: str | None) -> dict:
    return {
        "error": {
            "code": code,
            "message": message,
            "request_id": request_id,
        }
    }


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        request_id = getattr(request.state, "request_id", None)
        return JSONResponse(
            status_code=422,
            content=_error_body("validation_error", "Invalid request payload.", request_id),
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        request_id = getattr(request.state, "request_id", None)
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body("http_error", str(exc.detail), request_id),
            headers=exc.headers,
        )

    @app.exception_handler(PureMedsError)
    async def domain_exception_handler(request: Request, exc: PureMedsError):
        request_id = getattr(request.state, "request_id", None)
        if exc.status_code >= 500:
            logger.warning("Request %s failed: %s", request_id, exc.message)
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(exc.code, exc.message, request_id),
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        request_id = getattr(request.state, "request_id", None)
        logger.exception("Unhandled server error: %s", exc)
        return JSONResponse(
            status_code=500,
            content=_error_body(
                "internal_server_error",
                "Unexpected server error. Contact support with request_id.",
                request_id,
            ),
        )
