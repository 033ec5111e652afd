"""Determination capture endpoint."""

from fastapi import APIRouter

from wotc_relay.api.dependencies import Actor, Capture
from wotc_relay.api.schemas.determinations import CaptureRequest, CaptureResponse
from wotc_relay.api.schemas.errors import APIError

router = APIRouter(prefix="/determinations", tags=["determinations"])


@router.post(
    "/capture",
    response_model=CaptureResponse,
    summary="Capture determinations for a state",
    description="Reads agency decisions from the state's channel and records new ones. "
    "Running it again over an unchanged set creates nothing.",
    responses={
        404: {"model": APIError, "description": "No portal for the state"},
        409: {"model": APIError, "description": "Portal disabled"},
    },
)
async def capture_determinations(
    request: CaptureRequest, capture: Capture, actor: Actor
) -> CaptureResponse:
    summary = await capture.capture(request.state_code, actor=actor)
    return CaptureResponse.from_summary(summary)
