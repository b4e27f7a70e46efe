"""
EDI Submission API Endpoints.

Provides:
- Claim submission enqueue and job tracking
- Claim validation against the insurer's rail
- Gateway statistics and blocked-attempt reporting
- Scheduler task inspection and manual triggers
"""

from typing import Any, Optional

import httpx
from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from edi_pipeline.api.deps import get_pipeline, get_queue, get_router
from edi_pipeline.core.enums import ClaimType, JobState
from edi_pipeline.schemas.edi import BlockedAttempt, ValidationResult
from edi_pipeline.schemas.job import SubmissionJob
from edi_pipeline.services.claim_store import ClaimNotFoundError
from edi_pipeline.services.edi.router import EDIRouter
from edi_pipeline.services.pipeline import Pipeline
from edi_pipeline.services.scheduler import TaskNotFoundError
from edi_pipeline.services.submission_queue import (
    JobNotFoundError,
    JobStateError,
    SubmissionQueue,
)
from edi_pipeline.utils.errors import ConflictError, NotFoundError, ValidationError
from edi_pipeline.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(
    prefix="/api/v1/edi",
    tags=["edi"],
)


# =============================================================================
# Request/Response Models
# =============================================================================


class EnqueueSubmissionRequest(BaseModel):
    """Request to submit a claim through the queue."""

    claim_id: str = Field(..., min_length=1)
    org_id: str = Field(..., min_length=1)
    claim_type: ClaimType = ClaimType.CLAIM
    actor_user_id: Optional[str] = None
    request_id: Optional[str] = Field(
        default=None,
        max_length=200,
        description="Client idempotency key",
    )
    max_attempts: Optional[int] = Field(default=None, ge=1, le=20)


class EnqueueSubmissionResponse(BaseModel):
    job_id: str


class JobListResponse(BaseModel):
    jobs: list[SubmissionJob]
    total: int


class BlockedAttemptsResponse(BaseModel):
    attempts: list[BlockedAttempt]
    total: int


class ClearedResponse(BaseModel):
    cleared: int


# =============================================================================
# Submission Jobs
# =============================================================================


@router.post(
    "/submissions",
    response_model=EnqueueSubmissionResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def enqueue_submission(
    request: EnqueueSubmissionRequest,
    pipeline: Pipeline = Depends(get_pipeline),
) -> EnqueueSubmissionResponse:
    """Queue a claim for submission to its insurer."""
    try:
        claim = await pipeline.claim_store.get_claim(request.claim_id)
    except ClaimNotFoundError as e:
        raise ValidationError(str(e)) from e
    if claim.org_id != request.org_id:
        raise ValidationError(f"Claim {claim.id} does not belong to organization {request.org_id}")

    job_id = await pipeline.queue.enqueue_submission(
        request.claim_id,
        request.org_id,
        claim_type=request.claim_type,
        actor_user_id=request.actor_user_id,
        request_id=request.request_id,
        max_attempts=request.max_attempts,
    )
    return EnqueueSubmissionResponse(job_id=job_id)


@router.get("/submissions", response_model=JobListResponse)
async def list_submissions(
    state: Optional[JobState] = Query(default=None),
    org_id: Optional[str] = Query(default=None),
    queue: SubmissionQueue = Depends(get_queue),
) -> JobListResponse:
    jobs = queue.list_jobs(state=state, org_id=org_id)
    return JobListResponse(jobs=jobs, total=len(jobs))


@router.get("/submissions/{job_id}", response_model=SubmissionJob)
async def get_submission(
    job_id: str,
    queue: SubmissionQueue = Depends(get_queue),
) -> SubmissionJob:
    try:
        return queue.get_job_status(job_id)
    except JobNotFoundError as e:
        raise NotFoundError(str(e)) from e


@router.delete("/submissions/{job_id}", response_model=SubmissionJob)
async def acknowledge_submission(
    job_id: str,
    queue: SubmissionQueue = Depends(get_queue),
) -> SubmissionJob:
    """Remove a succeeded or failed job."""
    try:
        return await queue.acknowledge(job_id)
    except JobNotFoundError as e:
        raise NotFoundError(str(e)) from e
    except JobStateError as e:
        raise ConflictError(str(e)) from e


@router.post(
    "/submissions/{job_id}/requeue",
    response_model=EnqueueSubmissionResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def requeue_submission(
    job_id: str,
    queue: SubmissionQueue = Depends(get_queue),
) -> EnqueueSubmissionResponse:
    """Submit a failed job's claim again as a new job."""
    try:
        new_job_id = await queue.requeue(job_id)
    except JobNotFoundError as e:
        raise NotFoundError(str(e)) from e
    except JobStateError as e:
        raise ConflictError(str(e)) from e
    return EnqueueSubmissionResponse(job_id=new_job_id)


# =============================================================================
# Validation
# =============================================================================


@router.post("/claims/{claim_id}/validate", response_model=ValidationResult)
async def validate_claim(
    claim_id: str,
    pipeline: Pipeline = Depends(get_pipeline),
) -> ValidationResult:
    try:
        claim = await pipeline.claim_store.get_claim(claim_id)
    except ClaimNotFoundError as e:
        raise NotFoundError(str(e)) from e
    return await pipeline.router.validate_claim(claim)


# =============================================================================
# Gateway
# =============================================================================


@router.get("/statistics")
async def get_statistics(
    pipeline: Pipeline = Depends(get_pipeline),
) -> dict[str, Any]:
    stats = pipeline.router.statistics()
    jobs = pipeline.queue.list_jobs()
    stats["jobs"] = {state.value: sum(1 for j in jobs if j.state == state) for state in JobState}
    return stats


@router.get("/insurers")
async def get_supported_insurers(
    edi_router: EDIRouter = Depends(get_router),
) -> dict[str, list[str]]:
    return edi_router.supported_insurers()


@router.get("/blocked-attempts", response_model=BlockedAttemptsResponse)
async def get_blocked_attempts(
    edi_router: EDIRouter = Depends(get_router),
) -> BlockedAttemptsResponse:
    attempts = edi_router.get_blocked_attempts()
    return BlockedAttemptsResponse(attempts=attempts, total=len(attempts))


@router.delete("/blocked-attempts", response_model=ClearedResponse)
async def clear_blocked_attempts(
    edi_router: EDIRouter = Depends(get_router),
) -> ClearedResponse:
    cleared = edi_router.clear_blocked_attempts()
    logger.warning(f"Blocked attempt log cleared ({cleared} entries)")
    return ClearedResponse(cleared=cleared)


# =============================================================================
# Scheduler
# =============================================================================


@router.get("/scheduler/tasks")
async def list_scheduler_tasks(
    pipeline: Pipeline = Depends(get_pipeline),
) -> list[dict[str, Any]]:
    return [t.to_dict() for t in pipeline.scheduler.list_tasks()]


@router.post("/scheduler/tasks/{name}/run")
async def run_scheduler_task(
    name: str,
    pipeline: Pipeline = Depends(get_pipeline),
) -> dict[str, Any]:
    """Trigger a scheduled task now unless it is already running."""
    try:
        ran = await pipeline.scheduler.run_now(name)
    except TaskNotFoundError as e:
        raise NotFoundError(f"Scheduler task not found: {name}") from e
    if not ran:
        raise ConflictError(f"Task {name} is already running")
    return pipeline.scheduler.get_task(name).to_dict()


@router.get("/network/check")
async def check_host(
    url: str = Query(..., min_length=1),
    edi_router: EDIRouter = Depends(get_router),
) -> dict[str, Any]:
    """Host policy decision for a URL, without recording a blocked attempt."""
    try:
        decision = edi_router.gateway.check_hostname(url)
    except httpx.InvalidURL as e:
        raise ValidationError(f"Invalid URL {url!r}: {e}") from e
    return {"hostname": decision.hostname, "allowed": decision.allowed, "reason": decision.reason}
