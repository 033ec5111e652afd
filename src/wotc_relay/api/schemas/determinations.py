"""Determination capture schemas."""

from pydantic import BaseModel, Field

from wotc_relay.determination.capture import CaptureSummary


class CaptureRequest(BaseModel):
    state_code: str = Field(..., min_length=2, max_length=2)


class CaptureResponse(BaseModel):
    state_code: str
    captured: int
    created: int
    skipped: int
    unmatched: int
    success: bool
    error_kind: str | None = None
    error_detail: str | None = None

    @classmethod
    def from_summary(cls, summary: CaptureSummary) -> "CaptureResponse":
        return cls(**summary.to_dict())
