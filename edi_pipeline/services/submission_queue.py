"""
Submission Job Queue.

Durable queue that submits claims through the EDI router:

    queued -> running -> succeeded
    running -> retrying -> running ...
    any non-succeeded state -> failed (attempts exhausted or non-retryable)

Every transition is persisted before the next step runs, through a single
serialized writer. A job never has two attempts in flight; jobs for
different claims run concurrently up to a configured limit.
"""

import asyncio
import hashlib
import random
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional
from uuid import uuid4

import httpx

from edi_pipeline.connectors.base import calculate_backoff_delay, should_retry
from edi_pipeline.core.config import EDISettings
from edi_pipeline.core.enums import ClaimType, JobState
from edi_pipeline.schemas.claim import ActorIdentity, ClaimUpdate
from edi_pipeline.schemas.edi import AdjudicationResponse
from edi_pipeline.schemas.job import SubmissionJob
from edi_pipeline.services.claim_store import ClaimNotFoundError, ClaimStore, adjudication_fields
from edi_pipeline.services.edi.router import EDIRouter, error_code_of
from edi_pipeline.services.job_store import JobStore
from edi_pipeline.utils.logging import get_logger

logger = get_logger(__name__)

TransitionListener = Callable[[SubmissionJob, Optional[JobState]], Any]


class JobNotFoundError(Exception):
    """Raised when a job id is unknown."""

    def __init__(self, job_id: str):
        super().__init__(f"Job not found: {job_id}")
        self.job_id = job_id


class JobStateError(Exception):
    """Raised when an operation is not valid for the job's current state."""

    def __init__(self, job_id: str, state: JobState, operation: str):
        super().__init__(f"Cannot {operation} job {job_id} in state {state.value}")
        self.job_id = job_id
        self.state = state
        self.operation = operation


def is_retryable(error: BaseException) -> bool:
    """Transient failures are retried; validation and security failures are not."""
    if isinstance(error, (httpx.TransportError, ConnectionError, asyncio.TimeoutError)):
        return True
    return should_retry(error)


def hash_request_id(request_id: str) -> str:
    return hashlib.sha256(request_id.encode("utf-8")).hexdigest()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SubmissionQueue:
    """Persistent claim submission queue with retry and backoff."""

    def __init__(
        self,
        router: EDIRouter,
        store: JobStore,
        claim_store: ClaimStore,
        settings: EDISettings,
        clock: Optional[Callable[[], datetime]] = None,
        rng: Optional[random.Random] = None,
    ):
        self.router = router
        self.store = store
        self.claim_store = claim_store
        self.settings = settings
        self.clock = clock or _utcnow
        self.rng = rng or random.Random()

        self._jobs: dict[str, SubmissionJob] = {}
        self._loaded = False
        self._write_lock = asyncio.Lock()
        self._semaphore = asyncio.Semaphore(settings.QUEUE_MAX_CONCURRENCY)
        self._in_flight: set[str] = set()
        self._tasks: set[asyncio.Task] = set()
        self._wakeup = asyncio.Event()
        self._run_task: Optional[asyncio.Task] = None
        self._listeners: list[TransitionListener] = []

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def load(self) -> None:
        """Load and recover the persisted job table."""
        self._jobs = await self.store.load(self.clock())
        self._loaded = True

    async def start(self) -> None:
        """Load state and start the background run loop."""
        if not self._loaded:
            await self.load()
        if self._run_task is None or self._run_task.done():
            self._run_task = asyncio.create_task(self._run_loop(), name="submission-queue")
            logger.info(f"Submission queue started with {len(self._jobs)} jobs")

    async def stop(self) -> None:
        """Stop the run loop and wait for attempts already in flight."""
        if self._run_task is not None:
            self._run_task.cancel()
            try:
                await self._run_task
            except asyncio.CancelledError:
                pass
            self._run_task = None
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        logger.info("Submission queue stopped")

    @property
    def is_running(self) -> bool:
        return self._run_task is not None and not self._run_task.done()

    def add_listener(self, listener: TransitionListener) -> None:
        """Register a callback invoked as ``listener(job, previous_state)``."""
        self._listeners.append(listener)

    # =========================================================================
    # Inbound API
    # =========================================================================

    async def enqueue_submission(
        self,
        claim_id: str,
        org_id: str,
        claim_type: ClaimType = ClaimType.CLAIM,
        actor_user_id: Optional[str] = None,
        request_id: Optional[str] = None,
        max_attempts: Optional[int] = None,
    ) -> str:
        """
        Create a queued job for a claim.

        A repeated ``request_id`` returns the existing non-failed job instead
        of creating a second one.
        """
        self._require_loaded()

        request_id_hash = hash_request_id(request_id) if request_id else None
        if request_id_hash:
            for job in self._jobs.values():
                if job.request_id_hash == request_id_hash and job.state != JobState.FAILED:
                    logger.info(f"Duplicate enqueue for request {request_id}, returning job {job.job_id}")
                    return job.job_id

        now = self.clock()
        job = SubmissionJob(
            job_id=uuid4().hex,
            claim_id=claim_id,
            org_id=org_id,
            claim_type=claim_type,
            attempt=0,
            max_attempts=max_attempts or self.settings.QUEUE_MAX_ATTEMPTS,
            next_attempt_at=now,
            state=JobState.QUEUED,
            created_at=now,
            updated_at=now,
            request_id=request_id,
            request_id_hash=request_id_hash,
            actor_user_id=actor_user_id,
        )
        self._jobs[job.job_id] = job
        await self._persist()
        self._notify(job, None)
        self._wakeup.set()

        logger.info(f"Enqueued job {job.job_id} for claim {claim_id} (org={org_id})")
        return job.job_id

    def get_job_status(self, job_id: str) -> SubmissionJob:
        job = self._jobs.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    def list_jobs(
        self,
        state: Optional[JobState] = None,
        org_id: Optional[str] = None,
    ) -> list[SubmissionJob]:
        jobs = sorted(self._jobs.values(), key=lambda j: j.created_at)
        if state is not None:
            jobs = [j for j in jobs if j.state == state]
        if org_id is not None:
            jobs = [j for j in jobs if j.org_id == org_id]
        return jobs

    async def acknowledge(self, job_id: str) -> SubmissionJob:
        """Remove a terminal job from the table."""
        job = self.get_job_status(job_id)
        if not job.is_terminal:
            raise JobStateError(job_id, job.state, "acknowledge")
        del self._jobs[job_id]
        await self._persist()
        logger.info(f"Acknowledged job {job_id} ({job.state.value})")
        return job

    async def requeue(self, job_id: str) -> str:
        """Enqueue a failed job's claim again as a fresh job."""
        job = self.get_job_status(job_id)
        if job.state != JobState.FAILED:
            raise JobStateError(job_id, job.state, "requeue")
        new_job_id = await self.enqueue_submission(
            job.claim_id,
            job.org_id,
            claim_type=job.claim_type,
            actor_user_id=job.actor_user_id,
            max_attempts=job.max_attempts,
        )
        logger.info(f"Requeued failed job {job_id} as {new_job_id}")
        return new_job_id

    async def cleanup(self, older_than: timedelta) -> int:
        """Drop terminal jobs last updated before ``now - older_than``."""
        cutoff = self.clock() - older_than
        stale = [
            job_id
            for job_id, job in self._jobs.items()
            if job.is_terminal and job.updated_at < cutoff
        ]
        for job_id in stale:
            del self._jobs[job_id]
        if stale:
            await self._persist()
            logger.info(f"Cleaned up {len(stale)} terminal jobs older than {older_than}")
        return len(stale)

    # =========================================================================
    # Run Loop
    # =========================================================================

    async def _run_loop(self) -> None:
        interval = self.settings.QUEUE_POLL_INTERVAL_SECONDS
        while True:
            self.dispatch_due()
            self._wakeup.clear()
            try:
                await asyncio.wait_for(self._wakeup.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass

    def dispatch_due(self, now: Optional[datetime] = None) -> dict[str, asyncio.Task]:
        """Start an attempt for every due job that is not already in flight."""
        self._require_loaded()
        now = now or self.clock()
        started: dict[str, asyncio.Task] = {}
        for job in sorted(self._jobs.values(), key=lambda j: j.next_attempt_at):
            if job.job_id in self._in_flight or not job.is_due(now):
                continue
            self._in_flight.add(job.job_id)
            task = asyncio.create_task(self._run_job(job.job_id), name=f"submission-{job.job_id}")
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
            started[job.job_id] = task
        return started

    async def process_due_jobs(self, now: Optional[datetime] = None) -> list[str]:
        """Run one attempt for every due job and wait for them to finish."""
        tasks = self.dispatch_due(now)
        if tasks:
            await asyncio.gather(*tasks.values())
        return list(tasks)

    async def _run_job(self, job_id: str) -> None:
        try:
            async with self._semaphore:
                await self._attempt(job_id)
        finally:
            self._in_flight.discard(job_id)

    async def _attempt(self, job_id: str) -> None:
        job = self._jobs.get(job_id)
        if job is None:
            return

        job = await self._transition(job, JobState.RUNNING, attempt=job.attempt + 1)
        logger.info(
            f"Job {job.job_id}: attempt {job.attempt}/{job.max_attempts} for claim {job.claim_id}"
        )

        try:
            claim = await self.claim_store.get_claim(job.claim_id)
            actor = ActorIdentity(org_id=job.org_id, user_id=job.actor_user_id or "system")
            response = await self.router.submit_claim(claim, actor)
            await self._write_back_success(job, response)
        except Exception as e:
            await self._handle_failure(job, e)
            return

        await self._transition(
            job,
            JobState.SUCCEEDED,
            external_id=response.external_id,
            last_error=None,
            last_error_code=None,
        )
        logger.info(
            f"Job {job.job_id} succeeded: claim {job.claim_id} -> {response.status.value} "
            f"({response.external_id})"
        )

    async def _write_back_success(self, job: SubmissionJob, response: AdjudicationResponse) -> None:
        fields = adjudication_fields(response)
        fields["last_submission_error"] = None
        fields["updated_at"] = self.clock()
        await self.claim_store.update_claim(job.claim_id, ClaimUpdate(**fields))

    async def _handle_failure(self, job: SubmissionJob, error: Exception) -> None:
        message = str(error) or type(error).__name__
        changes: dict[str, Any] = {
            "last_error": message,
            "last_error_code": error_code_of(error),
            "last_upstream_status": getattr(error, "status_code", None),
        }

        if is_retryable(error) and not job.attempts_exhausted:
            delay_ms = calculate_backoff_delay(
                job.attempt,
                self.settings.QUEUE_BACKOFF_BASE_MS,
                self.settings.QUEUE_BACKOFF_MAX_MS,
                self.rng,
            )
            next_attempt_at = self.clock() + timedelta(milliseconds=delay_ms)
            await self._transition(job, JobState.RETRYING, next_attempt_at=next_attempt_at, **changes)
            logger.warning(
                f"Job {job.job_id} attempt {job.attempt} failed ({message}); "
                f"retrying in {delay_ms}ms"
            )
        else:
            await self._transition(job, JobState.FAILED, **changes)
            logger.error(
                f"Job {job.job_id} failed after {job.attempt} attempt(s): {message}"
            )

        try:
            await self.claim_store.update_claim(
                job.claim_id,
                ClaimUpdate(last_submission_error=message, updated_at=self.clock()),
            )
        except ClaimNotFoundError:
            logger.warning(f"Job {job.job_id}: claim {job.claim_id} no longer exists")

    # =========================================================================
    # State
    # =========================================================================

    async def _transition(
        self, job: SubmissionJob, state: JobState, **changes: Any
    ) -> SubmissionJob:
        previous = job.state
        updated = job.model_copy(update={"state": state, "updated_at": self.clock(), **changes})
        self._jobs[job.job_id] = updated
        await self._persist()
        self._notify(updated, previous)
        return updated

    async def _persist(self) -> None:
        async with self._write_lock:
            await self.store.save(dict(self._jobs))

    def _notify(self, job: SubmissionJob, previous: Optional[JobState]) -> None:
        for listener in self._listeners:
            try:
                listener(job, previous)
            except Exception:
                logger.exception(
                    f"Transition listener failed for job {job.job_id} ({job.state.value})"
                )

    def _require_loaded(self) -> None:
        if not self._loaded:
            raise RuntimeError("Submission queue used before load()")
