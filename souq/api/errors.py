"""
Error Handlers
Maps API, contract and messaging failures to JSON error responses.

Every error body has the shape:
    {"error": {"message": ..., "type": ..., "details": ..., "request_id": ...}}
"""

import logging
from typing import Any, Optional, Union

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from ..ledger.errors import (
    AlreadyPurchasedError,
    ContractError,
    ProductAlreadyExistsError,
    ProductNotFoundError,
    UnauthorizedError,
)
from ..messaging.errors import MessagingError

logger = logging.getLogger(__name__)


class APIError(Exception):
    """Base exception for errors raised by route handlers."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ResourceNotFoundError(APIError):
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, resource: str, resource_id: Union[int, str]):
        super().__init__(
            f"{resource} not found: {resource_id}",
            {"resource": resource, "id": resource_id},
        )


class InvalidRequestError(APIError):
    status_code = status.HTTP_400_BAD_REQUEST


# Most specific first; anything unlisted is a 400
CONTRACT_STATUS = (
    (ProductNotFoundError, status.HTTP_404_NOT_FOUND),
    (ProductAlreadyExistsError, status.HTTP_409_CONFLICT),
    (AlreadyPurchasedError, status.HTTP_409_CONFLICT),
    (UnauthorizedError, status.HTTP_403_FORBIDDEN),
)


def contract_status(exc: ContractError) -> int:
    for error_type, code in CONTRACT_STATUS:
        if isinstance(exc, error_type):
            return code
    return status.HTTP_400_BAD_REQUEST


def error_response(
    request: Request,
    status_code: int,
    message: str,
    error_type: str,
    details: Any = None,
) -> JSONResponse:
    error = {"message": message, "type": error_type}
    if details is not None:
        error["details"] = details
    request_id = getattr(request.state, "request_id", None)
    if request_id:
        error["request_id"] = request_id
    return JSONResponse(status_code=status_code, content={"error": error})


async def handle_api_error(request: Request, exc: APIError) -> JSONResponse:
    log = logger.error if exc.status_code >= 500 else logger.info
    log(f"API error: {exc.message}", extra={"status_code": exc.status_code, "path": request.url.path})
    return error_response(request, exc.status_code, exc.message, type(exc).__name__, exc.details)


async def handle_contract_error(request: Request, exc: ContractError) -> JSONResponse:
    logger.info(
        f"Contract rejected request: {exc.message}",
        extra={"code": exc.code, "path": request.url.path},
    )
    return error_response(
        request,
        contract_status(exc),
        exc.message,
        type(exc).__name__,
        {"code": exc.code, **exc.details},
    )


async def handle_messaging_error(request: Request, exc: MessagingError) -> JSONResponse:
    logger.warning(f"Agent messaging failed: {exc.message}", extra={"path": request.url.path})
    return error_response(
        request, status.HTTP_503_SERVICE_UNAVAILABLE, exc.message, type(exc).__name__, {}
    )


async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.info(f"Validation error on {request.url.path}: {exc}")
    errors = [
        {"loc": list(e.get("loc", [])), "msg": str(e.get("msg", "")), "type": e.get("type", "")}
        for e in exc.errors()
    ]
    return error_response(
        request,
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "Request validation failed",
        "ValidationError",
        errors,
    )


async def handle_value_error(request: Request, exc: ValueError) -> JSONResponse:
    logger.warning(f"Value error: {exc}", extra={"path": request.url.path})
    return error_response(request, status.HTTP_400_BAD_REQUEST, str(exc), "ValueError")


async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"Unexpected error: {exc}", exc_info=True, extra={"path": request.url.path})
    return error_response(
        request,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "An unexpected error occurred",
        "InternalServerError",
    )


def setup_error_handlers(app: FastAPI) -> None:
    """Register the marketplace error handlers on the app."""
    app.add_exception_handler(APIError, handle_api_error)
    app.add_exception_handler(ContractError, handle_contract_error)
    app.add_exception_handler(MessagingError, handle_messaging_error)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.add_exception_handler(ValueError, handle_value_error)
    app.add_exception_handler(Exception, handle_unexpected)
