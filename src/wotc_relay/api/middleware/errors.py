"""Error handling middleware for mapping exceptions to HTTP responses."""

from collections.abc import Callable
from datetime import UTC, datetime

import structlog
from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from wotc_relay.api.schemas.errors import APIError, ErrorCode
from wotc_relay.channels.types import ChannelNotRegisteredError
from wotc_relay.submission.types import ConcurrencyConflictError, JobNotRetryableError
from wotc_relay.utils.exceptions import NotFoundError, ValidationError
from wotc_relay.vault.errors import (
    CredentialValidationError,
    PortalDisabledError,
    RotationInProgressError,
    VaultIntegrityError,
)

logger = structlog.get_logger()


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Catches domain exceptions and returns APIError responses.

    Messages are the exceptions' own text, which never includes secret
    material. Unmapped exceptions become a generic 500.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        try:
            return await call_next(request)
        except Exception as exc:
            return self._handle_exception(request, exc)

    def _handle_exception(self, request: Request, exc: Exception) -> JSONResponse:
        request_id = str(getattr(request.state, "request_id", "unknown"))
        status_code, error_code, message, details = self._map_exception(exc)

        if status_code >= 500:
            logger.exception("api_unhandled_error", path=request.url.path)
        else:
            logger.info(
                "api_request_rejected",
                path=request.url.path,
                status_code=status_code,
                error_code=error_code,
            )

        error = APIError(
            error_code=error_code,
            message=message,
            details=details,
            request_id=request_id,
            timestamp=datetime.now(UTC),
        )
        return JSONResponse(
            status_code=status_code,
            content=error.model_dump(mode="json"),
            headers={"X-Request-ID": request_id},
        )

    def _map_exception(self, exc: Exception) -> tuple[int, str, str, dict | None]:
        """Map exception to (status_code, error_code, message, details)."""
        if isinstance(exc, CredentialValidationError):
            return (400, ErrorCode.VALIDATION_ERROR.value, str(exc), {"field": exc.field})

        if isinstance(exc, ValidationError):
            return (400, ErrorCode.VALIDATION_ERROR.value, str(exc), None)

        if isinstance(exc, NotFoundError):
            return (
                404,
                ErrorCode.NOT_FOUND.value,
                str(exc),
                {"resource_type": exc.resource_type, "resource_id": exc.resource_id},
            )

        if isinstance(exc, (ConcurrencyConflictError, RotationInProgressError)):
            return (409, ErrorCode.CONFLICT.value, str(exc), None)

        if isinstance(exc, JobNotRetryableError):
            return (409, ErrorCode.CONFLICT.value, str(exc), {"status": exc.status})

        if isinstance(exc, PortalDisabledError):
            return (
                409,
                ErrorCode.PORTAL_DISABLED.value,
                str(exc),
                {"portal_id": str(exc.portal_id)},
            )

        # Opening the secrets failed and the portal has just been disabled
        if isinstance(exc, VaultIntegrityError):
            return (
                409,
                ErrorCode.PORTAL_DISABLED.value,
                "Stored credentials could not be opened; the portal has been disabled",
                {"field": exc.field},
            )

        if isinstance(exc, ChannelNotRegisteredError):
            return (503, ErrorCode.CHANNEL_UNAVAILABLE.value, str(exc), None)

        return (500, ErrorCode.INTERNAL_ERROR.value, "An unexpected error occurred", None)
