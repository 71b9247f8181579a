"""
Global error handling middleware.

WHAT: Translate exceptions to appropriate HTTP responses
WHY: Clients show the same toast shape for every failure
HOW: FastAPI exception handlers for custom exceptions
"""

from fastapi import Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from datetime import datetime, timezone

from ..llm.types import (
    ProviderTimeoutError,
    ProviderUnavailableError,
    ProviderDisabledError,
    ProviderResponseError,
)
from ..utils.exceptions import (
    BusinessException,
    ValidationException,
    MissingIdentityException,
    ConversationNotFoundException,
    MessageNotFoundException,
    ConversationAccessDenied,
    ActionNotAllowedError,
    OfferAuthorizationError,
    OfferAlreadyResolvedError,
    StaleOfferError,
    ConversationStoreError,
)
from ..utils.logger import get_logger

logger = get_logger(__name__)

BUSINESS_STATUS_CODES = (
    (ValidationException, status.HTTP_400_BAD_REQUEST),
    (MissingIdentityException, status.HTTP_401_UNAUTHORIZED),
    ((ConversationAccessDenied, ActionNotAllowedError, OfferAuthorizationError), status.HTTP_403_FORBIDDEN),
    ((ConversationNotFoundException, MessageNotFoundException), status.HTTP_404_NOT_FOUND),
    ((OfferAlreadyResolvedError, StaleOfferError), status.HTTP_409_CONFLICT),
    (ConversationStoreError, status.HTTP_503_SERVICE_UNAVAILABLE),
)


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def _error_response(status_code: int, error: str, message: str, details=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "error": error,
            "message": message,
            "details": details,
            "timestamp": _timestamp()
        }
    )


async def provider_disabled_handler(request: Request, exc: ProviderDisabledError):
    """
    Handle ProviderDisabledError.

    WHAT: Provider is misconfigured
    WHY: Operator needs to fix LLM settings
    HOW: Return 400 with clear error code
    """
    logger.warning(f"Provider disabled: {exc}")
    return _error_response(
        status.HTTP_400_BAD_REQUEST, "LLM_PROVIDER_DISABLED", str(exc), "Check LLM provider configuration"
    )


async def provider_timeout_handler(request: Request, exc: ProviderTimeoutError):
    logger.error(f"Provider timeout: {exc}")
    return _error_response(
        status.HTTP_503_SERVICE_UNAVAILABLE, "LLM_TIMEOUT", str(exc), "LLM provider request timed out"
    )


async def provider_unavailable_handler(request: Request, exc: ProviderUnavailableError):
    logger.error(f"Provider unavailable: {exc}")
    return _error_response(
        status.HTTP_503_SERVICE_UNAVAILABLE, "LLM_UNAVAILABLE", str(exc), "LLM provider is not reachable"
    )


async def provider_response_error_handler(request: Request, exc: ProviderResponseError):
    """
    Handle ProviderResponseError.

    WHAT: Provider returned an error status or an unreadable body
    WHY: Upstream contract violation, not the client's fault
    HOW: Return 502 bad gateway
    """
    logger.error(f"Provider response error: {exc}")
    return _error_response(
        status.HTTP_502_BAD_GATEWAY, "LLM_BAD_GATEWAY", str(exc), "LLM provider returned an invalid response"
    )


async def validation_error_handler(request: Request, exc: RequestValidationError):
    """
    Handle FastAPI RequestValidationError.

    WHAT: Request body, path or query failed validation
    WHY: Invalid request payload
    HOW: Return 400 with JSON-safe field errors
    """
    logger.warning(f"Validation error on {request.url.path}: {exc.errors()}")

    cleaned_errors = []
    for error in exc.errors():
        cleaned_error = {
            "type": error.get("type"),
            "loc": error.get("loc"),
            "msg": error.get("msg"),
            "input": error.get("input")
        }
        if "ctx" in error:
            cleaned_error["ctx"] = {
                k: str(v) if isinstance(v, Exception) else v
                for k, v in error["ctx"].items()
            }
        cleaned_errors.append(cleaned_error)

    return _error_response(
        status.HTTP_400_BAD_REQUEST, "VALIDATION_ERROR", "Request validation failed", cleaned_errors
    )


async def business_exception_handler(request: Request, exc: BusinessException):
    """
    Handle BusinessException and its subclasses.

    WHAT: Domain error raised by the dispatcher, state machines or store
    WHY: Each error class has one HTTP status
    HOW: First matching entry of BUSINESS_STATUS_CODES, 400 otherwise
    """
    status_code = next(
        (code for exc_types, code in BUSINESS_STATUS_CODES if isinstance(exc, exc_types)),
        status.HTTP_400_BAD_REQUEST
    )

    if status_code >= 500:
        logger.error(f"Business exception: {exc.code} - {exc.message} ({exc.details})")
    else:
        logger.warning(f"Business exception: {exc.code} - {exc.message}")
    return _error_response(status_code, exc.code, exc.message, exc.details)


def register_exception_handlers(app):
    """
    Register all exception handlers with FastAPI app.

    Args:
        app: FastAPI application instance
    """
    # LLM Provider exceptions
    app.add_exception_handler(ProviderDisabledError, provider_disabled_handler)
    app.add_exception_handler(ProviderTimeoutError, provider_timeout_handler)
    app.add_exception_handler(ProviderUnavailableError, provider_unavailable_handler)
    app.add_exception_handler(ProviderResponseError, provider_response_error_handler)

    # API exceptions
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(BusinessException, business_exception_handler)

    logger.info("Exception handlers registered")
