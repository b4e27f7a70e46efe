"""
Unit Tests for the Persisted Job Store
Tests snapshot format, atomic writes and crash recovery
"""

import json
from datetime import datetime, timedelta, timezone

import pytest

from edi_pipeline.core.enums import ConnectorErrorCode, JobState
from edi_pipeline.schemas.job import SubmissionJob
from edi_pipeline.services.job_store import JobStore, JobStoreCorruptedError, recover_jobs


NOW = datetime(2026, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


def make_job(job_id: str = "job-1", **overrides) -> SubmissionJob:
    data = {
        "job_id": job_id,
        "claim_id": f"claim-{job_id}",
        "org_id": "org-1",
        "attempt": 0,
        "max_attempts": 3,
        "next_attempt_at": NOW - timedelta(minutes=5),
        "state": JobState.QUEUED,
        "created_at": NOW - timedelta(minutes=10),
        "updated_at": NOW - timedelta(minutes=5),
    }
    data.update(overrides)
    return SubmissionJob(**data)


@pytest.mark.unit
class TestSubmissionJobModel:
    """Job constraints enforced by the schema"""

    def test_attempt_above_max_is_accepted_for_recovery(self):
        job = make_job(state=JobState.RUNNING, attempt=4, max_attempts=3)
        assert job.attempts_exhausted

    def test_is_due(self):
        job = make_job(next_attempt_at=NOW)
        assert job.is_due(NOW)
        assert not job.is_due(NOW - timedelta(seconds=1))
        assert not make_job(state=JobState.RUNNING, attempt=1).is_due(NOW)


@pytest.mark.unit
class TestRecoverJobs:
    """Recovery of jobs interrupted by a process exit"""

    def test_running_job_with_attempts_left_is_rescheduled(self):
        jobs = {"job-1": make_job(state=JobState.RUNNING, attempt=1)}

        assert recover_jobs(jobs, NOW) is True

        job = jobs["job-1"]
        assert job.state == JobState.RETRYING
        assert job.next_attempt_at == NOW
        assert job.attempt == 1

    def test_running_job_at_limit_fails(self):
        jobs = {"job-1": make_job(state=JobState.RUNNING, attempt=3)}

        recover_jobs(jobs, NOW)

        assert jobs["job-1"].state == JobState.FAILED
        assert jobs["job-1"].last_error

    def test_queued_and_retrying_at_limit_fail(self):
        jobs = {
            "job-q": make_job("job-q", state=JobState.QUEUED, attempt=3),
            "job-r": make_job("job-r", state=JobState.RETRYING, attempt=3),
        }

        recover_jobs(jobs, NOW)

        assert jobs["job-q"].state == JobState.FAILED
        assert jobs["job-r"].state == JobState.FAILED

    def test_existing_last_error_is_kept(self):
        upstream = "national_eclaims API error: HTTP 503"
        jobs = {
            "job-run": make_job("job-run", state=JobState.RUNNING, attempt=3, last_error=upstream),
            "job-ret": make_job("job-ret", state=JobState.RETRYING, attempt=3, last_error=upstream),
        }

        recover_jobs(jobs, NOW)

        assert jobs["job-run"].last_error == upstream
        assert jobs["job-ret"].last_error == upstream

    def test_attempt_above_max_is_clamped(self):
        jobs = {
            "job-run": make_job("job-run", state=JobState.RUNNING, attempt=4),
            "job-ret": make_job("job-ret", state=JobState.RETRYING, attempt=5),
            "job-done": make_job("job-done", state=JobState.SUCCEEDED, attempt=4),
        }

        assert recover_jobs(jobs, NOW) is True

        assert jobs["job-run"].state == JobState.FAILED
        assert jobs["job-ret"].state == JobState.FAILED
        assert jobs["job-done"].state == JobState.SUCCEEDED
        assert {job.attempt for job in jobs.values()} == {3}

    def test_other_jobs_untouched(self):
        queued = make_job("job-q")
        succeeded = make_job("job-s", state=JobState.SUCCEEDED, attempt=3)
        failed = make_job("job-f", state=JobState.FAILED, attempt=1)
        jobs = {"job-q": queued, "job-s": succeeded, "job-f": failed}

        assert recover_jobs(jobs, NOW) is False
        assert jobs == {"job-q": queued, "job-s": succeeded, "job-f": failed}


@pytest.mark.unit
class TestJobStore:
    """File-backed snapshot store"""

    @pytest.mark.asyncio
    async def test_missing_file_created_empty(self, tmp_path):
        path = tmp_path / "state" / "jobs.json"
        store = JobStore(path)

        jobs = await store.load(NOW)

        assert jobs == {}
        assert json.loads(path.read_text()) == {"version": 1, "jobs": {}}

    @pytest.mark.asyncio
    async def test_save_then_load_is_identity(self, tmp_path):
        store = JobStore(tmp_path / "jobs.json")
        jobs = {
            "job-1": make_job("job-1", request_id="req-1", request_id_hash="abc"),
            "job-2": make_job(
                "job-2",
                state=JobState.FAILED,
                attempt=2,
                last_error="HTTP 400",
                last_error_code=ConnectorErrorCode.VALIDATION_ERROR,
                last_upstream_status=400,
            ),
            "job-3": make_job("job-3", state=JobState.SUCCEEDED, attempt=1, external_id="SANDBOX-X"),
        }

        await store.save(jobs)
        loaded = await store.load(NOW)

        assert loaded == jobs

    @pytest.mark.asyncio
    async def test_no_temp_file_left_behind(self, tmp_path):
        path = tmp_path / "jobs.json"
        store = JobStore(path)

        await store.save({"job-1": make_job()})

        assert path.exists()
        assert not (tmp_path / "jobs.json.tmp").exists()

    @pytest.mark.asyncio
    async def test_load_recovers_and_persists(self, tmp_path):
        path = tmp_path / "jobs.json"
        store = JobStore(path)
        await store.save({"job-1": make_job(state=JobState.RUNNING, attempt=1)})

        jobs = await store.load(NOW)

        assert jobs["job-1"].state == JobState.RETRYING
        on_disk = json.loads(path.read_text())
        assert on_disk["jobs"]["job-1"]["state"] == "retrying"

    @pytest.mark.asyncio
    async def test_invalid_records_dropped(self, tmp_path):
        path = tmp_path / "jobs.json"
        good = json.loads(make_job("job-1").model_dump_json())
        path.write_text(
            json.dumps(
                {
                    "version": 1,
                    "jobs": {
                        "job-1": good,
                        "job-2": {"job_id": "job-2", "state": "exploded"},
                        "job-3": {**good, "job_id": "job-other"},
                    },
                }
            )
        )

        jobs = await JobStore(path).load(NOW)

        assert list(jobs) == ["job-1"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "content",
        [
            "{not json",
            json.dumps([1, 2, 3]),
            json.dumps({"version": 2, "jobs": {}}),
            json.dumps({"version": 1, "jobs": []}),
        ],
    )
    async def test_corrupted_snapshot_raises(self, tmp_path, content):
        path = tmp_path / "jobs.json"
        path.write_text(content)

        with pytest.raises(JobStoreCorruptedError):
            await JobStore(path).load(NOW)

    @pytest.mark.asyncio
    async def test_over_limit_jobs_load_as_failed(self, tmp_path):
        path = tmp_path / "jobs.json"
        running = json.loads(make_job("a", state=JobState.RUNNING, attempt=1).model_dump_json())
        retrying = json.loads(make_job("b", state=JobState.RETRYING, attempt=1).model_dump_json())
        path.write_text(
            json.dumps(
                {
                    "version": 1,
                    "jobs": {"a": {**running, "attempt": 4}, "b": {**retrying, "attempt": 5}},
                }
            )
        )

        jobs = await JobStore(path).load(NOW)

        assert set(jobs) == {"a", "b"}
        for job in jobs.values():
            assert job.state == JobState.FAILED
            assert job.attempt == 3
        on_disk = json.loads(path.read_text())
        assert {record["attempt"] for record in on_disk["jobs"].values()} == {3}

    @pytest.mark.asyncio
    async def test_dropped_records_are_persisted(self, tmp_path):
        path = tmp_path / "jobs.json"
        good = json.loads(make_job("job-1").model_dump_json())
        path.write_text(
            json.dumps(
                {"version": 1, "jobs": {"job-1": good, "job-2": {"job_id": "job-2"}}}
            )
        )

        await JobStore(path).load(NOW)

        assert list(json.loads(path.read_text())["jobs"]) == ["job-1"]
