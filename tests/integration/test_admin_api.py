"""Integration tests for the admin API."""

from uuid import uuid7

import pytest

from wotc_relay.channels.types import (
    CapturedDetermination,
    CaptureOutcome,
    CredentialTestResult,
    ErrorKind,
)
from wotc_relay.core.audit import AuditLogger
from wotc_relay.db.models.portal import ChannelType
from wotc_relay.db.repositories.portal import PortalRepository


class TestHealth:
    """Tests for unauthenticated endpoints."""

    @pytest.mark.asyncio
    async def test_health(self, test_client):
        response = await test_client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["database"]["status"] == "healthy"
        assert "X-Request-ID" in response.headers

    @pytest.mark.asyncio
    async def test_metrics(self, test_client):
        response = await test_client.get("/metrics")

        assert response.status_code == 200
        assert "wotc_relay_" in response.text

    @pytest.mark.asyncio
    async def test_v1_requires_auth(self, test_client):
        response = await test_client.get("/v1/submissions")

        assert response.status_code == 401
        assert response.json()["error_code"] == "unauthorized"


class TestSubmissionsApi:
    """Tests for /v1/submissions."""

    @pytest.mark.asyncio
    async def test_create_and_get(self, authenticated_client, screening_source, employer_id, record_factory, db_session):
        screening_source.add(employer_id, "TX", record_factory(1))
        screening_source.add(employer_id, "TX", record_factory(2))

        response = await authenticated_client.post(
            "/v1/submissions", json={"employer_id": str(employer_id), "state_code": "tx"}
        )

        assert response.status_code == 202
        accepted = response.json()
        assert accepted["status"] == "pending"

        job = (await authenticated_client.get(f"/v1/submissions/{accepted['job_id']}")).json()
        assert job["state_code"] == "TX"
        assert job["record_count"] == 2
        assert job["attempt_count"] == 0

    @pytest.mark.asyncio
    async def test_create_records_actor(self, authenticated_client, orchestrator, employer_id, db_session):
        response = await authenticated_client.post(
            "/v1/submissions", json={"employer_id": str(employer_id), "state_code": "GA"}
        )

        [event] = await AuditLogger(db_session).query_events(resource_id=response.json()["job_id"])
        assert event.actor == "admin@relay.example"

    @pytest.mark.asyncio
    async def test_invalid_state_code(self, authenticated_client, employer_id):
        response = await authenticated_client.post(
            "/v1/submissions", json={"employer_id": str(employer_id), "state_code": "1X"}
        )

        assert response.status_code == 400
        assert response.json()["error_code"] == "validation_error"

    @pytest.mark.asyncio
    async def test_malformed_body_is_422(self, authenticated_client):
        response = await authenticated_client.post("/v1/submissions", json={"state_code": "TX"})

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_unknown_job(self, authenticated_client):
        response = await authenticated_client.get(f"/v1/submissions/{uuid7()}")

        assert response.status_code == 404
        assert response.json()["details"]["resource_type"] == "SubmissionJob"

    @pytest.mark.asyncio
    async def test_list_filters(self, authenticated_client, orchestrator, employer_id):
        await orchestrator.create_job(employer_id, "TX", [])
        await orchestrator.create_job(employer_id, "GA", [])

        response = await authenticated_client.get("/v1/submissions", params={"state_code": "ga"})

        assert response.status_code == 200
        assert [item["state_code"] for item in response.json()["items"]] == ["GA"]

    @pytest.mark.asyncio
    async def test_retry(self, authenticated_client, orchestrator, employer_id):
        job = await orchestrator.create_job(employer_id, "TX", ["scr-001"])

        not_failed = await authenticated_client.post(f"/v1/submissions/{job.job_id}/retry")
        assert not_failed.status_code == 409

        await orchestrator.run_pending_jobs()
        await orchestrator.join()
        assert (await orchestrator.get_job(job.job_id)).status == "failed"

        response = await authenticated_client.post(f"/v1/submissions/{job.job_id}/retry")

        assert response.status_code == 202
        body = response.json()
        assert body["retry_of"] == str(job.job_id)
        assert body["job_id"] != str(job.job_id)


class TestPortalsApi:
    """Tests for /v1/portals."""

    @pytest.mark.asyncio
    async def test_rotate(self, authenticated_client, portal_factory):
        portal = await portal_factory("TX")

        response = await authenticated_client.post(
            f"/v1/portals/{portal.portal_id}/rotate",
            json={"user_id": "acme-user-2", "password": "n3w-secret!", "reason": "quarterly"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["state_code"] == "TX"
        assert body["re_enabled"] is False
        assert "n3w-secret!" not in response.text

        history = await authenticated_client.get(f"/v1/portals/{portal.portal_id}/rotation-history")
        [entry] = history.json()
        assert entry["rotated_by"] == "admin@relay.example"
        assert entry["reason"] == "quarterly"
        assert entry["old_credential_hash"] != entry["new_credential_hash"]
        assert "n3w-secret!" not in history.text

    @pytest.mark.asyncio
    async def test_rotate_rejects_short_password(self, authenticated_client, portal_factory):
        portal = await portal_factory("TX")

        response = await authenticated_client.post(
            f"/v1/portals/{portal.portal_id}/rotate",
            json={"user_id": "acme-user", "password": "abc"},
        )

        assert response.status_code == 400
        assert response.json()["details"] == {"field": "password"}

    @pytest.mark.asyncio
    async def test_rotate_unknown_portal(self, authenticated_client):
        response = await authenticated_client.post(
            f"/v1/portals/{uuid7()}/rotate",
            json={"user_id": "acme-user", "password": "n3w-secret!"},
        )

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_schedule_and_due(self, authenticated_client, portal_factory):
        portal = await portal_factory("TX")

        response = await authenticated_client.post(
            f"/v1/portals/{portal.portal_id}/rotation-schedule",
            json={"frequency_days": 30, "credential_expiry_date": "2020-01-01T00:00:00Z"},
        )

        assert response.status_code == 200
        assert response.json()["rotation_frequency_days"] == 30

        due = await authenticated_client.get("/v1/portals/rotation-due")
        assert [entry["state_code"] for entry in due.json()] == ["TX"]
        assert due.json()[0]["days_overdue"] > 0

    @pytest.mark.asyncio
    async def test_schedule_out_of_range(self, authenticated_client, portal_factory):
        portal = await portal_factory("TX")

        response = await authenticated_client.post(
            f"/v1/portals/{portal.portal_id}/rotation-schedule", json={"frequency_days": 0}
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_credentials_check(self, authenticated_client, portal_factory, recording_adapter):
        await portal_factory("TX", channel_type=ChannelType.BROWSER)
        recording_adapter.credential_result = CredentialTestResult(
            success=False, error_kind=ErrorKind.AUTH, detail="Login rejected"
        )

        response = await authenticated_client.post(
            "/v1/portals/test-credentials", json={"state_code": "tx"}
        )

        assert response.status_code == 200
        assert response.json() == {
            "state_code": "TX",
            "success": False,
            "error_kind": "auth",
            "detail": "Login rejected",
        }
        assert recording_adapter.payloads == []

    @pytest.mark.asyncio
    async def test_credentials_check_unknown_state(self, authenticated_client):
        response = await authenticated_client.post(
            "/v1/portals/test-credentials", json={"state_code": "ZZ"}
        )

        assert response.status_code == 404


class TestDeterminationsApi:
    """Tests for /v1/determinations."""

    @pytest.mark.asyncio
    async def test_capture_is_idempotent(
        self, authenticated_client, portal_factory, recording_adapter, screening_source, employer_id, record_factory
    ):
        await portal_factory("TX")
        screening_source.add(employer_id, "TX", record_factory(1))
        recording_adapter.capture = CaptureOutcome(
            success=True,
            items=[CapturedDetermination(ssn="123-45-6001", status="Certified")],
        )

        first = await authenticated_client.post("/v1/determinations/capture", json={"state_code": "TX"})
        second = await authenticated_client.post("/v1/determinations/capture", json={"state_code": "TX"})

        assert first.status_code == 200
        assert first.json()["created"] == 1
        assert second.json()["created"] == 0
        assert second.json()["skipped"] == 1
        assert "123-45-6001" not in first.text

    @pytest.mark.asyncio
    async def test_capture_disabled_portal(self, authenticated_client, portal_factory, session_factory):
        portal = await portal_factory("TX")
        async with session_factory() as session:
            row = await PortalRepository(session).get(portal.portal_id)
            row.encrypted_credentials = "v1:AAAA"
            await session.commit()

        response = await authenticated_client.post(
            "/v1/determinations/capture", json={"state_code": "TX"}
        )

        assert response.status_code == 409
        assert response.json()["error_code"] == "portal_disabled"
