"""Authentication middleware for API key validation."""

import hashlib
import hmac
import re
from collections.abc import Callable
from datetime import UTC, datetime

import structlog
from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from wotc_relay.api.schemas.errors import APIError, ErrorCode
from wotc_relay.config.settings import get_settings

logger = structlog.get_logger()

# Paths that don't require authentication
SKIP_AUTH_PATHS = {"/health", "/metrics", "/docs", "/redoc", "/openapi.json"}

# Optional header naming the human operator behind an API call
ACTOR_HEADER = "X-Actor"


class AuthenticationMiddleware(BaseHTTPMiddleware):
    """Validates the Bearer token against ``API_SECRET_KEY``.

    Sets:
        request.state.actor: Name recorded on audit events for this request
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path in SKIP_AUTH_PATHS:
            request.state.actor = "anonymous"
            return await call_next(request)

        auth_header = request.headers.get("Authorization")
        if not auth_header:
            return self._unauthorized_response(request, "Missing Authorization header")

        match = re.match(r"^Bearer\s+(.+)$", auth_header, re.IGNORECASE)
        if not match:
            return self._unauthorized_response(request, "Invalid Authorization header format")

        token = match.group(1)
        if not self._validate_token(token, request):
            return self._unauthorized_response(request, "Invalid API key")

        request.state.actor = request.headers.get(ACTOR_HEADER) or self._actor_from_token(token)
        return await call_next(request)

    def _validate_token(self, token: str, request: Request) -> bool:
        settings = getattr(request.app.state, "settings", None) or get_settings()

        if settings.API_SECRET_KEY is None:
            # Without a configured key only DEBUG deployments accept requests
            return bool(token) and settings.DEBUG

        return hmac.compare_digest(
            token.encode(), settings.API_SECRET_KEY.get_secret_value().encode()
        )

    def _actor_from_token(self, token: str) -> str:
        return f"api-key:{hashlib.sha256(token.encode()).hexdigest()[:12]}"

    def _unauthorized_response(self, request: Request, message: str) -> JSONResponse:
        logger.warning("api_unauthorized", path=request.url.path, reason=message)
        error = APIError(
            error_code=ErrorCode.UNAUTHORIZED.value,
            message=message,
            details=None,
            request_id=str(getattr(request.state, "request_id", "unknown")),
            timestamp=datetime.now(UTC),
        )
        return JSONResponse(
            status_code=401,
            content=error.model_dump(mode="json"),
            headers={"WWW-Authenticate": "Bearer"},
        )
