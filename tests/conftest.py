"""
Pytest Configuration and Fixtures.
Shared fixtures for pipeline tests.
"""

import random
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path
from typing import Optional

import pytest

from edi_pipeline.core.config import EDISettings
from edi_pipeline.core.enums import ClaimStatus, ClaimType, Rail
from edi_pipeline.schemas.claim import ClaimRecord, Insurer, ProcedureCode
from edi_pipeline.services.audit import AuditRecorder, InMemoryAuditLog
from edi_pipeline.services.claim_store import InMemoryClaimStore
from edi_pipeline.services.edi.insurers import INSURER_CONFIGS, InsurerDirectory, InsurerRailConfig
from edi_pipeline.services.job_store import JobStore
from edi_pipeline.services.pipeline import build_pipeline


START_TIME = datetime(2026, 1, 15, 12, 0, 0, tzinfo=timezone.utc)

# Test-only insurers with fixed outcomes
ALWAYS_PAY = InsurerRailConfig(
    name="Always Pay Mutual",
    rail=Rail.NATIONAL_ECLAIMS,
    processing_time_ms=0,
    approval_rate=1.0,
    info_request_rate=0.0,
    response_formats=("JSON",),
    supported_claim_types=("medical",),
)
ALWAYS_DENY = InsurerRailConfig(
    name="Always Deny Assurance",
    rail=Rail.DENTAL_NETWORK,
    processing_time_ms=0,
    approval_rate=0.0,
    info_request_rate=0.0,
    response_formats=("CDAnet",),
    supported_claim_types=("dental",),
)

INSURERS = [
    Insurer(id="ins-pay", name=ALWAYS_PAY.name),
    Insurer(id="ins-deny", name=ALWAYS_DENY.name),
    Insurer(id="ins-manulife", name="Manulife Financial"),
    Insurer(id="ins-ssq", name="SSQ Insurance"),
    Insurer(id="ins-wsib", name="WSIB Ontario"),
    Insurer(id="ins-unknown", name="Nowhere Benefits Co"),
]


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime = START_TIME):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


def make_claim(
    claim_id: str = "claim-1",
    org_id: str = "org-1",
    insurer_id: str = "ins-pay",
    amount: str = "250.00",
    codes: Optional[list[str]] = None,
    claim_type: ClaimType = ClaimType.CLAIM,
    status: ClaimStatus = ClaimStatus.DRAFT,
    external_id: Optional[str] = None,
) -> ClaimRecord:
    return ClaimRecord(
        id=claim_id,
        org_id=org_id,
        insurer_id=insurer_id,
        patient_id="patient-1",
        provider_id="provider-1",
        type=claim_type,
        amount=Decimal(amount),
        codes=[ProcedureCode(code=c) for c in (codes or ["A1234"])],
        status=status,
        external_id=external_id,
    )


@pytest.fixture
def always_pay() -> InsurerRailConfig:
    return ALWAYS_PAY


@pytest.fixture
def always_deny() -> InsurerRailConfig:
    return ALWAYS_DENY


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def rng() -> random.Random:
    return random.Random(1234)


@pytest.fixture
def state_path(tmp_path: Path) -> Path:
    return tmp_path / "queue" / "jobs.json"


@pytest.fixture
def settings(state_path: Path) -> EDISettings:
    """Sandbox settings with no latency and no injected errors."""
    return EDISettings(
        _env_file=None,
        MODE="sandbox",
        ENVIRONMENT="testing",
        RESPONSE_DELAY_MS=0,
        RESPONSE_JITTER_MS=0,
        ERROR_RATE=0.0,
        QUEUE_STATE_PATH=str(state_path),
        QUEUE_MAX_ATTEMPTS=3,
        QUEUE_BACKOFF_BASE_MS=1000,
        QUEUE_BACKOFF_MAX_MS=60_000,
        CONNECTOR_TIMEOUT_SECONDS=5.0,
    )


@pytest.fixture
def insurers() -> InsurerDirectory:
    return InsurerDirectory([*INSURER_CONFIGS, ALWAYS_PAY, ALWAYS_DENY])


@pytest.fixture
def claim_store() -> InMemoryClaimStore:
    return InMemoryClaimStore(insurers=INSURERS)


@pytest.fixture
def audit_log() -> InMemoryAuditLog:
    return InMemoryAuditLog()


@pytest.fixture
def audit(audit_log: InMemoryAuditLog) -> AuditRecorder:
    return AuditRecorder(audit_log)


@pytest.fixture
def claim_factory():
    """Build a claim record without storing it."""
    return make_claim


@pytest.fixture
def stored_claim(claim_store: InMemoryClaimStore):
    """Build a claim record and add it to the claim store."""

    def _create(**kwargs) -> ClaimRecord:
        claim = make_claim(**kwargs)
        claim_store.add_claim(claim)
        return claim

    return _create


@pytest.fixture
def job_store(state_path: Path) -> JobStore:
    return JobStore(state_path)


@pytest.fixture
def pipeline(settings, claim_store, audit_log, job_store, insurers, rng, clock):
    """Fully wired sandbox pipeline on in-memory collaborators."""
    return build_pipeline(
        settings=settings,
        claim_store=claim_store,
        audit_sink=audit_log,
        job_store=job_store,
        insurers=insurers,
        rng=rng,
        clock=clock,
    )


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: mark test as a unit test")
    config.addinivalue_line("markers", "integration: mark test as an integration test")
    config.addinivalue_line("markers", "api: mark test as an API test")
    config.addinivalue_line("markers", "slow: mark test as slow running")
