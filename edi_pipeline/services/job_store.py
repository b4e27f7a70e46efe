"""
Persisted Job Store.

Keeps the submission job table in a single versioned JSON snapshot:

    {"version": 1, "jobs": {"<job_id>": {...}, ...}}

Snapshots are written to ``<path>.tmp`` and renamed over the real file, so a
crash mid-write leaves the previous snapshot intact. Loading runs a recovery
pass for jobs that were interrupted by a process exit.
"""

import json
import os
from datetime import datetime
from pathlib import Path
from typing import Any

import anyio
from pydantic import ValidationError

from edi_pipeline.core.enums import JobState
from edi_pipeline.schemas.job import SNAPSHOT_VERSION, JobSnapshot, SubmissionJob
from edi_pipeline.utils.logging import get_logger

logger = get_logger(__name__)


class JobStoreCorruptedError(Exception):
    """Raised when the snapshot file is not a version-1 job snapshot."""

    def __init__(self, path: Path, reason: str):
        super().__init__(f"Job store {path} is unreadable: {reason}")
        self.path = path
        self.reason = reason


def recover_jobs(jobs: dict[str, SubmissionJob], now: datetime) -> bool:
    """
    Repair jobs left mid-flight by a previous process.

    Running jobs are rescheduled immediately unless their attempts are used
    up. Queued or retrying jobs that already hit the attempt limit fail.
    Attempt counters above the limit are clamped to it. An existing
    ``last_error`` is kept.

    Returns:
        True if any job was modified
    """
    changed = False

    for job_id, job in list(jobs.items()):
        update: dict[str, Any] = {}

        if job.state == JobState.RUNNING:
            if job.attempts_exhausted:
                update = {
                    "state": JobState.FAILED,
                    "last_error": job.last_error
                    or "Recovered running job exceeded max attempts",
                }
            else:
                update = {"state": JobState.RETRYING, "next_attempt_at": now}
        elif job.state in (JobState.QUEUED, JobState.RETRYING) and job.attempts_exhausted:
            update = {
                "state": JobState.FAILED,
                "last_error": job.last_error
                or "Recovered queued/retrying job exceeded max attempts",
            }

        if job.attempt > job.max_attempts:
            update["attempt"] = job.max_attempts

        if update:
            update["updated_at"] = now
            jobs[job_id] = job.model_copy(update=update)
            changed = True

    return changed


class JobStore:
    """File-backed store for the submission job table."""

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self._tmp_path = self.path.with_name(self.path.name + ".tmp")

    async def load(self, now: datetime) -> dict[str, SubmissionJob]:
        """
        Load, validate and recover the job table.

        A missing file is created empty. Individual invalid records are
        dropped. A file that is not a version-1 snapshot raises
        ``JobStoreCorruptedError``.
        """
        raw = await anyio.to_thread.run_sync(self._read_raw)

        if raw is None:
            logger.info(f"No job snapshot at {self.path}, starting empty")
            await self.save({})
            return {}

        jobs, dropped = self._parse_snapshot(raw)
        recovered = recover_jobs(jobs, now)

        if dropped or recovered:
            logger.info(
                f"Persisting cleaned snapshot {self.path} "
                f"(dropped={dropped}, recovered={recovered})"
            )
            await self.save(jobs)

        logger.info(f"Loaded {len(jobs)} jobs from {self.path}")
        return jobs

    async def save(self, jobs: dict[str, SubmissionJob]) -> None:
        """Atomically replace the snapshot with the given job table."""
        snapshot = JobSnapshot(version=SNAPSHOT_VERSION, jobs=jobs)
        payload = snapshot.model_dump_json(indent=2)
        await anyio.to_thread.run_sync(self._write_atomic, payload)

    def _parse_snapshot(self, raw: Any) -> tuple[dict[str, SubmissionJob], int]:
        if not isinstance(raw, dict):
            raise JobStoreCorruptedError(self.path, "top level is not an object")
        if raw.get("version") != SNAPSHOT_VERSION:
            raise JobStoreCorruptedError(
                self.path, f"unsupported version {raw.get('version')!r}"
            )
        records = raw.get("jobs")
        if not isinstance(records, dict):
            raise JobStoreCorruptedError(self.path, "'jobs' is not an object")

        jobs: dict[str, SubmissionJob] = {}
        dropped = 0
        for job_id, record in records.items():
            try:
                job = SubmissionJob.model_validate(record)
            except ValidationError as e:
                logger.warning(
                    f"Dropping invalid job record {job_id}: {e.error_count()} validation errors"
                )
                dropped += 1
                continue
            if job.job_id != job_id:
                logger.warning(f"Dropping job record {job_id}: id mismatch ({job.job_id})")
                dropped += 1
                continue
            jobs[job_id] = job
        return jobs, dropped

    def _read_raw(self) -> Any:
        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            raise JobStoreCorruptedError(self.path, f"invalid JSON: {e}") from e

    def _write_atomic(self, payload: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self._tmp_path, "w", encoding="utf-8") as f:
            f.write(payload)
            f.flush()
            os.fsync(f.fileno())
        os.replace(self._tmp_path, self.path)
