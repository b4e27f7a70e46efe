"""
Submission API Routes Tests.
Covers job enqueue and tracking, validation, gateway and scheduler endpoints.
"""

import time

import pytest
from fastapi import status
from fastapi.testclient import TestClient

from edi_pipeline.api.main import create_app
from edi_pipeline.gateways.base import NetworkBlockedError
from edi_pipeline.services.pipeline import build_pipeline


API = "/api/v1/edi"


def wait_for_state(client: TestClient, job_id: str, states: set[str], timeout: float = 5.0) -> dict:
    deadline = time.monotonic() + timeout
    while True:
        job = client.get(f"{API}/submissions/{job_id}").json()
        if job["state"] in states or time.monotonic() > deadline:
            return job
        time.sleep(0.01)


@pytest.fixture
def client(pipeline):
    with TestClient(create_app(pipeline)) as test_client:
        yield test_client


@pytest.fixture
def failing_client(settings, claim_store, audit_log, job_store, insurers, rng, clock):
    """Client whose sandbox gateway fails every call with a transient error."""
    pipeline = build_pipeline(
        settings=settings.model_copy(update={"ERROR_RATE": 1.0}),
        claim_store=claim_store,
        audit_sink=audit_log,
        job_store=job_store,
        insurers=insurers,
        rng=rng,
        clock=clock,
    )
    with TestClient(create_app(pipeline)) as test_client:
        yield test_client


@pytest.mark.api
class TestHealth:
    """Health endpoint"""

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == status.HTTP_200_OK
        body = response.json()
        assert body["status"] == "healthy"
        assert body["mode"] == "sandbox"
        assert body["queue_running"] is True


@pytest.mark.api
class TestSubmissionEndpoints:
    """Enqueue and track submission jobs"""

    def test_enqueue_and_complete(self, client, stored_claim):
        stored_claim(claim_id="claim-1", insurer_id="ins-pay")

        response = client.post(
            f"{API}/submissions",
            json={"claim_id": "claim-1", "org_id": "org-1", "request_id": "req-1"},
        )

        assert response.status_code == status.HTTP_202_ACCEPTED
        job_id = response.json()["job_id"]
        job = wait_for_state(client, job_id, {"succeeded", "failed"})
        assert job["state"] == "succeeded"
        assert job["external_id"].startswith("SANDBOX-")

    def test_enqueue_is_idempotent(self, failing_client, stored_claim):
        stored_claim(claim_id="claim-1", insurer_id="ins-pay")
        payload = {"claim_id": "claim-1", "org_id": "org-1", "request_id": "req-7"}

        first = failing_client.post(f"{API}/submissions", json=payload).json()["job_id"]
        second = failing_client.post(f"{API}/submissions", json=payload).json()["job_id"]

        assert first == second

    def test_enqueue_unknown_claim(self, client):
        response = client.post(
            f"{API}/submissions", json={"claim_id": "ghost", "org_id": "org-1"}
        )
        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    def test_enqueue_wrong_org(self, client, stored_claim):
        stored_claim(claim_id="claim-1", org_id="org-1")
        response = client.post(
            f"{API}/submissions", json={"claim_id": "claim-1", "org_id": "org-2"}
        )
        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
        assert "org-2" in response.json()["detail"]

    def test_enqueue_rejects_bad_body(self, client):
        response = client.post(f"{API}/submissions", json={"claim_id": "", "org_id": "org-1"})
        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    def test_get_unknown_job(self, client):
        response = client.get(f"{API}/submissions/missing")
        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_list_jobs(self, failing_client, stored_claim):
        stored_claim(claim_id="claim-1", org_id="org-1", insurer_id="ins-pay")
        stored_claim(claim_id="claim-2", org_id="org-2", insurer_id="ins-pay")
        for claim_id, org_id in (("claim-1", "org-1"), ("claim-2", "org-2")):
            failing_client.post(f"{API}/submissions", json={"claim_id": claim_id, "org_id": org_id})

        everything = failing_client.get(f"{API}/submissions").json()
        org_1 = failing_client.get(f"{API}/submissions", params={"org_id": "org-1"}).json()

        assert everything["total"] == 2
        assert org_1["total"] == 1
        assert org_1["jobs"][0]["claim_id"] == "claim-1"

    def test_acknowledge(self, client, stored_claim):
        stored_claim(claim_id="claim-1", insurer_id="ins-pay")
        job_id = client.post(
            f"{API}/submissions", json={"claim_id": "claim-1", "org_id": "org-1"}
        ).json()["job_id"]
        wait_for_state(client, job_id, {"succeeded"})

        response = client.delete(f"{API}/submissions/{job_id}")

        assert response.status_code == status.HTTP_200_OK
        assert client.get(f"{API}/submissions/{job_id}").status_code == status.HTTP_404_NOT_FOUND

    def test_acknowledge_and_requeue_conflicts(self, failing_client, stored_claim):
        stored_claim(claim_id="claim-1", insurer_id="ins-pay")
        job_id = failing_client.post(
            f"{API}/submissions", json={"claim_id": "claim-1", "org_id": "org-1"}
        ).json()["job_id"]
        job = wait_for_state(failing_client, job_id, {"retrying"})
        assert job["state"] == "retrying"
        assert job["last_error_code"] == "TRANSPORT_ERROR"

        acknowledged = failing_client.delete(f"{API}/submissions/{job_id}")
        requeued = failing_client.post(f"{API}/submissions/{job_id}/requeue")

        assert acknowledged.status_code == status.HTTP_409_CONFLICT
        assert requeued.status_code == status.HTTP_409_CONFLICT

    def test_requeue_failed_job(self, client, stored_claim):
        stored_claim(claim_id="claim-1", insurer_id="ins-unknown")
        job_id = client.post(
            f"{API}/submissions", json={"claim_id": "claim-1", "org_id": "org-1"}
        ).json()["job_id"]
        assert wait_for_state(client, job_id, {"failed"})["state"] == "failed"

        response = client.post(f"{API}/submissions/{job_id}/requeue")

        assert response.status_code == status.HTTP_202_ACCEPTED
        assert response.json()["job_id"] != job_id

    def test_requeue_unknown_job(self, client):
        response = client.post(f"{API}/submissions/missing/requeue")
        assert response.status_code == status.HTTP_404_NOT_FOUND


@pytest.mark.api
class TestValidationEndpoint:
    """Claim validation"""

    def test_validate_claim(self, client, stored_claim):
        stored_claim(claim_id="claim-1", insurer_id="ins-ssq", codes=["A1234"])

        response = client.post(f"{API}/claims/claim-1/validate")

        assert response.status_code == status.HTTP_200_OK
        body = response.json()
        assert body["valid"] is False
        assert "Invalid dental procedure code: A1234" in body["errors"]

    def test_validate_unknown_claim(self, client):
        response = client.post(f"{API}/claims/ghost/validate")
        assert response.status_code == status.HTTP_404_NOT_FOUND


@pytest.mark.api
class TestGatewayEndpoints:
    """Statistics, insurers, blocked attempts and host checks"""

    def test_statistics(self, client):
        body = client.get(f"{API}/statistics").json()
        assert body["mode"] == "sandbox"
        assert body["gateway"]["is_sandbox"] is True
        assert set(body["jobs"]) == {"queued", "running", "retrying", "succeeded", "failed"}

    def test_insurers(self, client):
        body = client.get(f"{API}/insurers").json()
        assert "WSIB Ontario" in body["portal"]
        assert "SSQ Insurance" in body["dental_network"]

    def test_network_check(self, client):
        blocked = client.get(f"{API}/network/check", params={"url": "https://api.telus.com/x"}).json()
        allowed = client.get(f"{API}/network/check", params={"url": "http://localhost:8080"}).json()

        assert blocked == {
            "hostname": "api.telus.com",
            "allowed": False,
            "reason": "production insurer endpoint",
        }
        assert allowed["allowed"] is True
        assert client.get(f"{API}/blocked-attempts").json()["total"] == 0

    def test_network_check_rejects_malformed_url(self, client):
        response = client.get(f"{API}/network/check", params={"url": "http://[bad"})

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
        assert "Invalid URL" in response.json()["detail"]

    def test_blocked_attempts_listed_and_cleared(self, pipeline):
        with TestClient(create_app(pipeline)) as client:
            with pytest.raises(NetworkBlockedError):
                client.portal.call(pipeline.gateway.guard, "https://eclaims.telus.com/claims")

            listed = client.get(f"{API}/blocked-attempts").json()
            assert listed["total"] == 1
            assert listed["attempts"][0]["hostname"] == "eclaims.telus.com"

            assert client.delete(f"{API}/blocked-attempts").json() == {"cleared": 1}
            assert client.get(f"{API}/blocked-attempts").json()["total"] == 0


@pytest.mark.api
class TestSchedulerEndpoints:
    """Scheduler inspection and manual runs"""

    def test_list_tasks(self, client):
        names = {t["name"] for t in client.get(f"{API}/scheduler/tasks").json()}
        assert names == {"poll_national_eclaims", "poll_dental_network", "poll_portal", "cleanup"}

    def test_run_task(self, client):
        response = client.post(f"{API}/scheduler/tasks/poll_portal/run")

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["run_count"] == 1

    def test_run_unknown_task(self, client):
        response = client.post(f"{API}/scheduler/tasks/nope/run")
        assert response.status_code == status.HTTP_404_NOT_FOUND
