"""Portal credential endpoints.

- POST /v1/portals/test-credentials - Login-only check of stored credentials
- POST /v1/portals/{portal_id}/rotate - Replace credentials
- POST /v1/portals/{portal_id}/rotation-schedule - Change rotation frequency
- GET /v1/portals/rotation-due - Portals needing rotation
- GET /v1/portals/{portal_id}/rotation-history - Past rotations
"""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Query

from wotc_relay.api.dependencies import Actor, DbSession, Services
from wotc_relay.api.schemas.errors import APIError
from wotc_relay.api.schemas.portals import (
    CredentialTestRequest,
    CredentialTestResponse,
    RotateCredentialsRequest,
    RotationDueResponse,
    RotationHistoryResponse,
    RotationResponse,
    RotationScheduleRequest,
    RotationScheduleResponse,
)
from wotc_relay.channels.verification import verify_portal_credentials
from wotc_relay.vault.types import PortalCredentials
from wotc_relay.vault.vault import CredentialVault

router = APIRouter(prefix="/portals", tags=["portals"])


@router.post(
    "/test-credentials",
    response_model=CredentialTestResponse,
    summary="Test stored credentials",
    description="Logs in to the state's portal and stops. Nothing is transmitted.",
    responses={
        404: {"model": APIError, "description": "No portal for the state"},
        409: {"model": APIError, "description": "Portal disabled"},
    },
)
async def test_credentials(
    request: CredentialTestRequest, db: DbSession, services: Services, actor: Actor
) -> CredentialTestResponse:
    result = await verify_portal_credentials(
        db,
        services.channels,
        request.state_code,
        actor=actor,
        timeout=services.config.adapter_timeout_seconds,
        encryptor=services.encryptor,
    )
    return CredentialTestResponse(
        state_code=request.state_code.upper(),
        success=result.success,
        error_kind=result.error_kind.value if result.error_kind else None,
        detail=result.detail,
    )


@router.post(
    "/{portal_id}/rotate",
    response_model=RotationResponse,
    summary="Rotate portal credentials",
    responses={
        400: {"model": APIError, "description": "Credentials rejected"},
        404: {"model": APIError, "description": "Portal not found"},
        409: {"model": APIError, "description": "Rotation already in progress"},
    },
)
async def rotate_credentials(
    portal_id: UUID,
    request: RotateCredentialsRequest,
    db: DbSession,
    services: Services,
    actor: Actor,
) -> RotationResponse:
    vault = CredentialVault(db, services.encryptor)
    result = await vault.rotate(
        portal_id,
        PortalCredentials(user_id=request.user_id, password=request.password),
        actor=actor,
        reason=request.reason,
        rotation_type=request.rotation_type,
    )
    return RotationResponse.from_result(result)


@router.post(
    "/{portal_id}/rotation-schedule",
    response_model=RotationScheduleResponse,
    summary="Set rotation schedule",
    responses={
        400: {"model": APIError, "description": "Frequency out of range"},
        404: {"model": APIError, "description": "Portal not found"},
    },
)
async def set_rotation_schedule(
    portal_id: UUID,
    request: RotationScheduleRequest,
    db: DbSession,
    services: Services,
    actor: Actor,
) -> RotationScheduleResponse:
    vault = CredentialVault(db, services.encryptor)
    portal = await vault.set_rotation_schedule(
        portal_id,
        request.frequency_days,
        actor=actor,
        credential_expiry_date=request.credential_expiry_date,
    )
    return RotationScheduleResponse(
        portal_id=portal.portal_id,
        state_code=portal.state_code,
        rotation_frequency_days=portal.rotation_frequency_days,
        next_rotation_due=portal.next_rotation_due,
        credential_expiry_date=portal.credential_expiry_date,
    )


@router.get(
    "/rotation-due",
    response_model=list[RotationDueResponse],
    summary="Portals due for rotation",
    description="Most overdue first.",
)
async def rotation_due(db: DbSession, services: Services) -> list[RotationDueResponse]:
    vault = CredentialVault(db, services.encryptor)
    return [RotationDueResponse.from_entry(entry) for entry in await vault.list_rotation_due()]


@router.get(
    "/{portal_id}/rotation-history",
    response_model=list[RotationHistoryResponse],
    summary="Rotation history",
    description="Newest first. Carries credential hashes, never credentials.",
    responses={404: {"model": APIError, "description": "Portal not found"}},
)
async def rotation_history(
    portal_id: UUID,
    db: DbSession,
    services: Services,
    limit: Annotated[int, Query(ge=1, le=500)] = 50,
) -> list[RotationHistoryResponse]:
    vault = CredentialVault(db, services.encryptor)
    rows = await vault.rotation_history(portal_id, limit=limit)
    return [RotationHistoryResponse.from_row(row) for row in rows]
