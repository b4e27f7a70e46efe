"""
Submission Job Schemas.

A job is one claim submission tracked through the queue state machine.
"""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field

from edi_pipeline.core.enums import ClaimType, ConnectorErrorCode, JobState


SNAPSHOT_VERSION = 1


class SubmissionJob(BaseModel):
    """
    Persisted submission job.

    ``attempt`` is not bounded here: a snapshot written by an older process
    may hold ``attempt > max_attempts``, and ``recover_jobs`` clamps it on load.
    """

    job_id: str
    claim_id: str
    org_id: str
    claim_type: ClaimType = ClaimType.CLAIM
    attempt: int = Field(default=0, ge=0)
    max_attempts: int = Field(default=3, ge=1)
    next_attempt_at: datetime
    state: JobState = JobState.QUEUED
    created_at: datetime
    updated_at: datetime
    last_error: Optional[str] = None
    last_error_code: Optional[ConnectorErrorCode] = None
    last_upstream_status: Optional[int] = None
    request_id: Optional[str] = None
    request_id_hash: Optional[str] = None
    actor_user_id: Optional[str] = None
    external_id: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal

    @property
    def attempts_exhausted(self) -> bool:
        return self.attempt >= self.max_attempts

    def is_due(self, now: datetime) -> bool:
        return (
            self.state in (JobState.QUEUED, JobState.RETRYING)
            and self.next_attempt_at <= now
        )


class JobSnapshot(BaseModel):
    """On-disk representation of the whole job table."""

    version: Literal[1] = SNAPSHOT_VERSION
    jobs: dict[str, SubmissionJob] = Field(default_factory=dict)
