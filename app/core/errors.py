import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class AppError(Exception):
    """Base class for errors that map to a JSON response.

    ``extra`` is merged into the response body next to ``detail`` so callers
    can branch on flags such as ``requiresSubscription``.
    """

    status_code: int = status.HTTP_400_BAD_REQUEST
    default_detail: str = "Bad request"

    def __init__(self, detail: Optional[str] = None, extra: Optional[Dict[str, Any]] = None):
        self.detail = detail or self.default_detail
        self.extra = extra or {}
        super().__init__(self.detail)


# --- input validation -------------------------------------------------------

class ValidationFailed(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Invalid request"


class NotFound(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Resource not found"


class Conflict(AppError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Resource already exists"


class PermissionDenied(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "You don't have permission to perform this action"


# --- entitlement --------------------------------------------------------------

class SubscriptionRequired(AppError):
    """Action needs an entitling subscription. Distinct from PermissionDenied."""

    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "Active subscription required for this action"

    def __init__(self, detail: Optional[str] = None):
        super().__init__(detail, extra={"requiresSubscription": True})


# --- ledger state ---------------------------------------------------------------

class SubscriptionNotFound(NotFound):
    default_detail = "Subscription not found"


class SubscriptionAlreadyCanceled(ValidationFailed):
    default_detail = "Subscription is already canceled"


class NotScheduledForCancellation(ValidationFailed):
    default_detail = "Subscription is not scheduled for cancellation"


class DomainVerificationFailed(ValidationFailed):
    default_detail = "Domain verification failed. Please check your DNS settings."


# --- billing provider -------------------------------------------------------------

class ProviderError(AppError):
    status_code = status.HTTP_502_BAD_GATEWAY
    default_detail = "Billing provider request failed"


class ProviderInvalidRequest(ProviderError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Invalid request to billing provider"


class ProviderResourceMissing(ProviderError):
    """The provider no longer knows the resource: local and remote state drifted."""

    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Subscription not found at billing provider"

    def __init__(self, detail: Optional[str] = None):
        AppError.__init__(self, detail, extra={"upstreamMissing": True})


class ConfigurationError(AppError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "Service is not configured"


# --- webhooks ---------------------------------------------------------------------

class InvalidSignature(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Webhook signature verification failed"


class InvalidEventPayload(AppError):
    """Signed body that cannot be read as an event; a 5xx so the provider redelivers."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "Malformed webhook payload"


class WebhookProcessingFailed(AppError):
    """Any failure after the signature check; a 5xx makes the provider retry."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "Webhook processing failed"


def register_exception_handlers(app: FastAPI):
    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        if exc.status_code >= 500:
            logger.error(f"{type(exc).__name__} on {request.url}: {exc.detail}")
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "detail": exc.detail, **exc.extra},
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "detail": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled error on {request.url}: {str(exc)}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"success": False, "detail": "Internal server error"},
        )
