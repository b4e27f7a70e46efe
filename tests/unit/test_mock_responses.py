"""
Unit Tests for the Mock Response Generator
Tests outcome distribution, detail blocks and tracking numbers
"""

import random
import re
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from edi_pipeline.core.enums import AdjudicationStatus, ClaimType, Rail
from edi_pipeline.services.edi.insurers import InsurerDirectory
from edi_pipeline.services.edi.responses import (
    DENIAL_REASONS,
    POLL_STATUSES,
    MockResponseGenerator,
    to_base36,
)


FIXED_NOW = datetime(2026, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def generator() -> MockResponseGenerator:
    return MockResponseGenerator(prefix="SANDBOX", rng=random.Random(7), clock=lambda: FIXED_NOW)


@pytest.fixture
def directory() -> InsurerDirectory:
    return InsurerDirectory()


@pytest.mark.unit
class TestTrackingNumbers:
    """Test identifier formats"""

    def test_base36(self):
        assert to_base36(0) == "0"
        assert to_base36(35) == "Z"
        assert to_base36(36) == "10"
        with pytest.raises(ValueError):
            to_base36(-1)

    def test_tracking_number_format(self, generator):
        number = generator.tracking_number("claim")
        timestamp = to_base36(int(FIXED_NOW.timestamp() * 1000))
        assert re.fullmatch(rf"SANDBOX-CLAIM-{timestamp}-\d{{4}}", number)

    def test_tracking_number_without_prefix(self, generator):
        number = generator.tracking_number("REF", digits=6, prefix="")
        assert re.fullmatch(r"REF-[0-9A-Z]+-\d{6}", number)

    def test_claim_number(self, generator):
        assert re.fullmatch(r"SANDBOX-CLM-[0-9A-Z]+-[0-9A-F]{6}", generator.claim_number())


@pytest.mark.unit
class TestOutcomeDistribution:
    """Outcomes follow the insurer's configured rates"""

    def test_denial_rate_matches_profile(self, directory):
        # Manulife: approval 0.85, info 0.10, denial 0.05
        config = directory.lookup("Manulife Financial")
        generator = MockResponseGenerator(rng=random.Random(42))

        draws = [generator.draw_outcome(config) for _ in range(10_000)]

        denied = draws.count(AdjudicationStatus.DENIED) / len(draws)
        paid = draws.count(AdjudicationStatus.PAID) / len(draws)
        assert abs(denied - 0.05) <= 0.015
        assert abs(paid - 0.85) <= 0.02
        assert set(draws) <= {
            AdjudicationStatus.PAID,
            AdjudicationStatus.INFO_REQUESTED,
            AdjudicationStatus.DENIED,
        }

    def test_poll_status_drawn_from_poll_statuses(self, generator, directory):
        config = directory.lookup("SSQ Insurance")
        statuses = {
            generator.generate_status(config, "SANDBOX-REF-1").status for _ in range(200)
        }
        assert statuses == set(POLL_STATUSES)


@pytest.mark.unit
class TestResponseDetails:
    """Detail blocks attached for each status"""

    def test_paid_response(self, generator, directory, claim_factory):
        claim = claim_factory(amount="100.00", codes=["A1234"])
        response = generator.build_response(
            AdjudicationStatus.PAID, directory.lookup("Manulife Financial"), claim
        )

        assert response.payment.approved_amount == Decimal("100.00")
        assert response.payment.paid_amount == Decimal("80.00")
        assert response.payment.deductible == Decimal("10.00")
        assert response.remittance_advice.procedure_code == "A1234"
        assert response.remittance_advice.allowed == Decimal("90.00")
        assert response.remittance_advice.patient_responsibility == Decimal("20.00")
        assert response.denial is None
        assert response.authorization is None
        assert response.claim_id == claim.id

    def test_denied_response_pairs_reason_and_code(self, generator, directory, claim_factory):
        response = generator.build_response(
            AdjudicationStatus.DENIED, directory.lookup("Sun Life Financial"), claim_factory()
        )

        assert (response.denial.reason, response.denial.code) in DENIAL_REASONS
        assert (response.denial.appeal_deadline - FIXED_NOW.date()).days == 30
        assert response.payment is None

    def test_info_request_items_by_claim_type(self, generator, directory, claim_factory):
        config = directory.lookup("WSIB Ontario")

        claim_items = generator.build_response(
            AdjudicationStatus.INFO_REQUESTED, config, claim_factory()
        ).info_request.requested_items
        preauth_items = generator.build_response(
            AdjudicationStatus.INFO_REQUESTED,
            config,
            claim_factory(claim_type=ClaimType.PREAUTH),
        ).info_request.requested_items

        assert len(claim_items) == 3
        assert claim_items[:2] == preauth_items[:2]
        assert claim_items[2] != preauth_items[2]

    def test_processing_response(self, generator, directory, claim_factory):
        response = generator.build_response(
            AdjudicationStatus.PROCESSING, directory.lookup("Canada Life"), claim_factory()
        )
        assert 20 <= response.processing.percent_complete <= 89
        assert (response.processing.estimated_completion - FIXED_NOW.date()).days == 3

    def test_preauth_gets_authorization(self, generator, directory, claim_factory):
        claim = claim_factory(claim_type=ClaimType.PREAUTH, codes=["11101", "11102"])
        config = directory.lookup("Pacific Blue Cross")

        paid = generator.build_response(AdjudicationStatus.PAID, config, claim)
        denied = generator.build_response(AdjudicationStatus.DENIED, config, claim)

        assert paid.authorization.authorized_services == ["11101", "11102"]
        assert paid.authorization.restrictions == []
        assert denied.authorization.restrictions
        assert (paid.authorization.valid_until - FIXED_NOW.date()).days == 90

    @pytest.mark.parametrize(
        "insurer,rail,keys",
        [
            ("SSQ Insurance", Rail.DENTAL_NETWORK, {"transaction_number", "network_status", "version"}),
            ("Blue Cross Canada", Rail.NATIONAL_ECLAIMS, {"batch_number", "transmission_id", "api_version"}),
            ("WorkSafeBC", Rail.PORTAL, {"case_number", "adjudicator", "priority", "review_required"}),
        ],
    )
    def test_rail_details(self, generator, directory, claim_factory, insurer, rail, keys):
        response = generator.generate(directory.lookup(insurer), claim_factory())
        assert response.rail == rail
        assert keys <= set(response.rail_details)
        assert response.rail_details["requires_electronic_signature"] is (rail == Rail.PORTAL)

    def test_portal_priority_by_amount(self, generator, directory, claim_factory):
        config = directory.lookup("WSIB Ontario")
        high = generator.generate(config, claim_factory(amount="7500.00"))
        normal = generator.generate(config, claim_factory(amount="120.00"))
        assert high.rail_details["priority"] == "HIGH"
        assert normal.rail_details["priority"] == "NORMAL"
