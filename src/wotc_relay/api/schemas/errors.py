"""Error body returned by every failing admin API call."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel


class ErrorCode(str, Enum):
    UNAUTHORIZED = "unauthorized"
    NOT_FOUND = "not_found"
    VALIDATION_ERROR = "validation_error"
    CONFLICT = "conflict"
    PORTAL_DISABLED = "portal_disabled"
    CHANNEL_UNAVAILABLE = "channel_unavailable"
    INTERNAL_ERROR = "internal_error"


class APIError(BaseModel):
    """``error_code`` is stable for clients; ``message`` never carries secrets."""

    error_code: str
    message: str
    details: dict[str, Any] | None = None
    request_id: str
    timestamp: datetime
