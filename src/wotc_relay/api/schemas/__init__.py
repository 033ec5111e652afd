"""API request and response schemas."""

from .determinations import CaptureRequest, CaptureResponse
from .errors import APIError, ErrorCode
from .health import DatabaseHealth, HealthResponse, HealthStatus
from .portals import (
    CredentialTestRequest,
    CredentialTestResponse,
    RotateCredentialsRequest,
    RotationDueResponse,
    RotationHistoryResponse,
    RotationResponse,
    RotationScheduleRequest,
    RotationScheduleResponse,
)
from .submissions import (
    SubmissionAccepted,
    SubmissionCreateRequest,
    SubmissionJobResponse,
    SubmissionListResponse,
)

__all__ = [
    "APIError",
    "CaptureRequest",
    "CaptureResponse",
    "DatabaseHealth",
    "CredentialTestRequest",
    "CredentialTestResponse",
    "ErrorCode",
    "HealthResponse",
    "HealthStatus",
    "RotateCredentialsRequest",
    "RotationDueResponse",
    "RotationHistoryResponse",
    "RotationResponse",
    "RotationScheduleRequest",
    "RotationScheduleResponse",
    "SubmissionAccepted",
    "SubmissionCreateRequest",
    "SubmissionJobResponse",
    "SubmissionListResponse",
]
