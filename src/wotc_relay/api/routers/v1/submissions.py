"""Submission job endpoints.

- POST /v1/submissions - Queue a submission for an (employer, state) pair
- GET /v1/submissions - List jobs
- GET /v1/submissions/{job_id} - Job status
- POST /v1/submissions/{job_id}/retry - Resubmit a failed job
"""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Query, status

from wotc_relay.api.dependencies import Actor, Orchestrator
from wotc_relay.api.schemas.errors import APIError
from wotc_relay.api.schemas.submissions import (
    SubmissionAccepted,
    SubmissionCreateRequest,
    SubmissionJobResponse,
    SubmissionListResponse,
)
from wotc_relay.db.models.submission import JobStatus

router = APIRouter(prefix="/submissions", tags=["submissions"])


@router.post(
    "",
    response_model=SubmissionAccepted,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Queue a submission",
    description="""
    Create a pending submission job. No agency is contacted by this call;
    the dispatcher picks the job up on its next pass. Poll the returned
    job_id for progress.
    """,
    responses={
        400: {"model": APIError, "description": "Invalid state code"},
    },
)
async def create_submission(
    request: SubmissionCreateRequest,
    orchestrator: Orchestrator,
    actor: Actor,
) -> SubmissionAccepted:
    job = await orchestrator.create_job(
        request.employer_id, request.state_code, request.screening_ids, actor=actor
    )
    return SubmissionAccepted(job_id=job.job_id, status=job.status)


@router.get("", response_model=SubmissionListResponse, summary="List submission jobs")
async def list_submissions(
    orchestrator: Orchestrator,
    employer_id: UUID | None = None,
    state_code: Annotated[str | None, Query(min_length=2, max_length=2)] = None,
    job_status: Annotated[JobStatus | None, Query(alias="status")] = None,
    limit: Annotated[int, Query(ge=1, le=500)] = 100,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> SubmissionListResponse:
    jobs = await orchestrator.list_jobs(
        employer_id=employer_id,
        state_code=state_code.upper() if state_code else None,
        status=job_status,
        limit=limit,
        offset=offset,
    )
    return SubmissionListResponse(
        items=[SubmissionJobResponse.from_job(job) for job in jobs],
        limit=limit,
        offset=offset,
    )


@router.get(
    "/{job_id}",
    response_model=SubmissionJobResponse,
    summary="Get a submission job",
    responses={404: {"model": APIError, "description": "Job not found"}},
)
async def get_submission(job_id: UUID, orchestrator: Orchestrator) -> SubmissionJobResponse:
    return SubmissionJobResponse.from_job(await orchestrator.get_job(job_id))


@router.post(
    "/{job_id}/retry",
    response_model=SubmissionAccepted,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Resubmit a failed job",
    description="Creates a new pending job for the same pair and screenings. "
    "The failed job is left as it is.",
    responses={
        404: {"model": APIError, "description": "Job not found"},
        409: {"model": APIError, "description": "Job has not failed"},
    },
)
async def retry_submission(
    job_id: UUID, orchestrator: Orchestrator, actor: Actor
) -> SubmissionAccepted:
    job = await orchestrator.retry_failed_job(job_id, actor=actor)
    return SubmissionAccepted(job_id=job.job_id, status=job.status, retry_of=job_id)
