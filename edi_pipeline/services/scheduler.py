"""
Status-Polling Scheduler.

Runs named periodic tasks on the event loop. Each task sleeps its interval
after the previous run finishes, so a slow run delays the next one instead
of overlapping it. A failing run is logged and the schedule continues.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Optional

from edi_pipeline.core.config import EDISettings
from edi_pipeline.core.enums import AuditEventType, Rail
from edi_pipeline.schemas.audit import StatusChangeDetails
from edi_pipeline.schemas.claim import ActorIdentity, ClaimRecord, ClaimUpdate
from edi_pipeline.services.audit import AuditRecorder
from edi_pipeline.services.claim_store import ClaimStore, adjudication_fields, changed_fields
from edi_pipeline.services.edi.router import EDIRouter
from edi_pipeline.services.submission_queue import SubmissionQueue
from edi_pipeline.utils.logging import get_logger

logger = get_logger(__name__)

TaskFunc = Callable[[], Awaitable[Any]]


@dataclass
class PeriodicTask:
    """A named job run every ``interval_seconds``."""

    name: str
    interval_seconds: float
    func: TaskFunc
    is_running: bool = False
    run_count: int = 0
    failure_count: int = 0
    last_run_at: Optional[datetime] = None
    last_error: Optional[str] = None
    handle: Optional[asyncio.Task] = field(default=None, repr=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "interval_seconds": self.interval_seconds,
            "is_running": self.is_running,
            "run_count": self.run_count,
            "failure_count": self.failure_count,
            "last_run_at": self.last_run_at.isoformat() if self.last_run_at else None,
            "last_error": self.last_error,
        }


@dataclass
class PollSummary:
    """Outcome of polling one rail."""

    rail: Rail
    polled: int = 0
    updated: int = 0
    failed: int = 0


class TaskNotFoundError(KeyError):
    """Raised when a scheduler task name is unknown."""


class Scheduler:
    """Named periodic task runner."""

    def __init__(self, sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep):
        self._tasks: dict[str, PeriodicTask] = {}
        self._sleep = sleep
        self._started = False

    def add_task(self, name: str, interval_seconds: float, func: TaskFunc) -> PeriodicTask:
        if name in self._tasks:
            raise ValueError(f"Task already registered: {name}")
        task = PeriodicTask(name=name, interval_seconds=interval_seconds, func=func)
        self._tasks[name] = task
        if self._started:
            task.handle = asyncio.create_task(self._loop(task), name=f"scheduler-{name}")
        return task

    def get_task(self, name: str) -> PeriodicTask:
        task = self._tasks.get(name)
        if task is None:
            raise TaskNotFoundError(name)
        return task

    def list_tasks(self) -> list[PeriodicTask]:
        return list(self._tasks.values())

    def start(self) -> None:
        if self._started:
            return
        self._started = True
        for task in self._tasks.values():
            task.handle = asyncio.create_task(self._loop(task), name=f"scheduler-{task.name}")
        logger.info(f"Scheduler started with tasks: {', '.join(self._tasks)}")

    async def stop(self) -> None:
        self._started = False
        handles = [t.handle for t in self._tasks.values() if t.handle is not None]
        for handle in handles:
            handle.cancel()
        if handles:
            await asyncio.gather(*handles, return_exceptions=True)
        for task in self._tasks.values():
            task.handle = None
        logger.info("Scheduler stopped")

    async def run_now(self, name: str) -> bool:
        """
        Run a task immediately.

        Returns:
            False if the task was already running and the run was skipped
        """
        return await self._run(self.get_task(name))

    async def _loop(self, task: PeriodicTask) -> None:
        while True:
            await self._sleep(task.interval_seconds)
            await self._run(task)

    async def _run(self, task: PeriodicTask) -> bool:
        if task.is_running:
            logger.debug(f"Task {task.name} still running, skipping this run")
            return False

        task.is_running = True
        try:
            await task.func()
            task.last_error = None
        except Exception as e:
            task.failure_count += 1
            task.last_error = str(e)
            logger.error(f"Scheduled task {task.name} failed: {e}")
        finally:
            task.is_running = False
            task.run_count += 1
            task.last_run_at = datetime.now(timezone.utc)
        return True


class ClaimStatusPoller:
    """Polls in-flight claims on one rail and writes back changed fields."""

    def __init__(
        self,
        router: EDIRouter,
        claim_store: ClaimStore,
        audit: AuditRecorder,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.router = router
        self.claim_store = claim_store
        self.audit = audit
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    async def claims_for_rail(self, rail: Rail) -> list[ClaimRecord]:
        claims = []
        for claim in await self.claim_store.list_in_flight_claims():
            insurer = await self.claim_store.get_insurer(claim.insurer_id)
            config = self.router.insurers.get(insurer.name) if insurer else None
            if config is not None and config.rail == rail:
                claims.append(claim)
        return claims

    async def poll_rail(self, rail: Rail) -> PollSummary:
        summary = PollSummary(rail=rail)
        claims = await self.claims_for_rail(rail)
        logger.info(f"Polling {len(claims)} in-flight {rail.value} claims")

        for claim in claims:
            summary.polled += 1
            try:
                if await self.poll_claim(claim):
                    summary.updated += 1
            except Exception as e:
                summary.failed += 1
                logger.error(f"Status poll failed for claim {claim.id} ({claim.external_id}): {e}")

        logger.info(
            f"{rail.value} poll complete: polled={summary.polled} "
            f"updated={summary.updated} failed={summary.failed}"
        )
        return summary

    async def poll_claim(self, claim: ClaimRecord) -> bool:
        """Poll one claim; returns True if the stored claim changed."""
        actor = ActorIdentity(org_id=claim.org_id, user_id="system")
        response = await self.router.poll_status(claim, actor)

        fields = adjudication_fields(response)
        # The poll answer keeps the submission's external id
        fields.pop("external_id", None)
        fields.pop("submission_id", None)
        changes = changed_fields(claim, fields)
        if not changes:
            return False

        changes["updated_at"] = self.clock()
        await self.claim_store.update_claim(claim.id, ClaimUpdate(**changes))

        new_status = changes.get("status", claim.status)
        await self.audit.record(
            AuditEventType.CLAIM_STATUS_POLLED,
            actor,
            StatusChangeDetails(
                claim_id=claim.id,
                external_id=claim.external_id or response.external_id,
                previous_status=claim.status.value,
                new_status=new_status.value,
                changed_fields=sorted(k for k in changes if k != "updated_at"),
            ),
        )
        logger.info(f"Claim {claim.id} status {claim.status.value} -> {new_status.value}")
        return True


_RAIL_TASKS = (
    ("poll_national_eclaims", Rail.NATIONAL_ECLAIMS, "POLL_NATIONAL_ECLAIMS_SECONDS"),
    ("poll_dental_network", Rail.DENTAL_NETWORK, "POLL_DENTAL_NETWORK_SECONDS"),
    ("poll_portal", Rail.PORTAL, "POLL_PORTAL_SECONDS"),
)


def build_default_scheduler(
    settings: EDISettings,
    poller: ClaimStatusPoller,
    queue: SubmissionQueue,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> Scheduler:
    """Scheduler with one poll task per rail plus terminal job cleanup."""
    scheduler = Scheduler(sleep=sleep)

    for name, rail, interval_field in _RAIL_TASKS:

        async def poll(rail: Rail = rail) -> None:
            await poller.poll_rail(rail)

        scheduler.add_task(name, getattr(settings, interval_field), poll)

    retention = timedelta(hours=settings.JOB_RETENTION_HOURS)

    async def cleanup() -> None:
        await queue.cleanup(retention)

    scheduler.add_task("cleanup", settings.CLEANUP_INTERVAL_SECONDS, cleanup)
    return scheduler
