"""
Mock Response Generator.

Produces realistic adjudication answers for sandbox traffic:
- outcome drawn from the insurer's approval / info-request rates
- payment, remittance, denial, info-request and processing detail blocks
- pre-authorization grants
- rail-specific envelope data and prefixed tracking numbers
"""

import random
from datetime import datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, Optional

from edi_pipeline.core.enums import AdjudicationStatus, ClaimType, Rail
from edi_pipeline.schemas.claim import ClaimRecord
from edi_pipeline.schemas.edi import (
    AdjudicationResponse,
    AuthorizationDetails,
    DenialDetails,
    InfoRequestDetails,
    PaymentDetails,
    ProcessingDetails,
    RemittanceAdvice,
)
from edi_pipeline.services.edi.insurers import InsurerRailConfig


# =============================================================================
# Fixed Reference Lists
# =============================================================================

# (reason, code) pairs
DENIAL_REASONS: tuple[tuple[str, str], ...] = (
    ("Service not covered under current plan", "COV001"),
    ("Pre-authorization required but not obtained", "AUTH001"),
    ("Benefit maximum reached for the period", "MAX001"),
    ("Duplicate claim submission", "DUP001"),
    ("Member not eligible on date of service", "ELIG001"),
    ("Provider not in network", "NET001"),
    ("Medical necessity not established", "MED001"),
    ("Experimental or investigational treatment", "EXP001"),
    ("Coordination of benefits required", "COB001"),
    ("Supporting documentation missing or incomplete", "DOC001"),
)

BASE_INFO_REQUESTS = (
    "Medical records for date of service",
    "Itemized invoice from provider",
    "Prescription details from pharmacy",
)
PREAUTH_INFO_REQUESTS = (
    "Letter of medical necessity from treating physician",
    "Treatment plan and expected duration",
    "Previous treatment history",
)
CLAIM_INFO_REQUESTS = (
    "Proof of payment or receipt",
    "Explanation of benefits from primary insurer",
    "Accident report if applicable",
)

APPEAL_INSTRUCTIONS = "To appeal this decision, submit additional documentation within 30 days."
SANDBOX_WARNING = "This is a SANDBOX response - not connected to production systems"
POLL_STATUSES = (
    AdjudicationStatus.PENDING,
    AdjudicationStatus.PROCESSING,
    AdjudicationStatus.PAID,
    AdjudicationStatus.DENIED,
    AdjudicationStatus.INFO_REQUESTED,
)

PAID_RATIO = Decimal("0.80")
ALLOWED_RATIO = Decimal("0.90")
DEDUCTIBLE_RATIO = Decimal("0.10")
COINSURANCE_RATIO = Decimal("0.10")
CENT = Decimal("0.01")

_BASE36 = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"


def to_base36(value: int) -> str:
    """Uppercase base-36 rendering of a non-negative integer."""
    if value < 0:
        raise ValueError("value must be non-negative")
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def _money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MockResponseGenerator:
    """Synthesizes adjudication responses for a configured insurer."""

    def __init__(
        self,
        prefix: str = "SANDBOX",
        rng: Optional[random.Random] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.prefix = prefix
        self.rng = rng or random.Random()
        self.clock = clock or _utcnow

    # =========================================================================
    # Identifiers
    # =========================================================================

    def tracking_number(self, kind: str, digits: int = 4, prefix: Optional[str] = None) -> str:
        """``{PREFIX}-{KIND}-{base36 ms timestamp}-{zero padded random}``."""
        prefix = self.prefix if prefix is None else prefix
        timestamp = to_base36(int(self.clock().timestamp() * 1000))
        suffix = str(self.rng.randrange(10**digits)).zfill(digits)
        parts = [prefix, kind.upper(), timestamp, suffix] if prefix else [kind.upper(), timestamp, suffix]
        return "-".join(parts)

    def claim_number(self) -> str:
        timestamp = to_base36(int(self.clock().timestamp() * 1000))
        return f"{self.prefix}-CLM-{timestamp}-{self.rng.getrandbits(24):06X}"

    # =========================================================================
    # Outcomes
    # =========================================================================

    def draw_outcome(self, config: InsurerRailConfig) -> AdjudicationStatus:
        """Pick paid / info requested / denied from the insurer's rates."""
        u = self.rng.random()
        if u < config.approval_rate:
            return AdjudicationStatus.PAID
        if u < config.approval_rate + config.info_request_rate:
            return AdjudicationStatus.INFO_REQUESTED
        return AdjudicationStatus.DENIED

    def generate(self, config: InsurerRailConfig, claim: ClaimRecord) -> AdjudicationResponse:
        """Full adjudication answer for a freshly submitted claim."""
        return self.build_response(self.draw_outcome(config), config, claim)

    def generate_status(
        self,
        config: InsurerRailConfig,
        external_id: str,
        claim: Optional[ClaimRecord] = None,
    ) -> AdjudicationResponse:
        """Answer to a status poll, drawn uniformly across poll statuses."""
        status = self.rng.choice(POLL_STATUSES)
        return self.build_response(status, config, claim, external_id=external_id)

    def build_response(
        self,
        status: AdjudicationStatus,
        config: InsurerRailConfig,
        claim: Optional[ClaimRecord],
        external_id: Optional[str] = None,
    ) -> AdjudicationResponse:
        now = self.clock()
        amount = claim.amount if claim is not None else Decimal("0")
        claim_type = claim.type if claim is not None else ClaimType.CLAIM
        reference = self.tracking_number("REF", digits=6)

        response = AdjudicationResponse(
            external_id=external_id or reference,
            status=status,
            claim_id=claim.id if claim is not None else None,
            claim_type=claim_type,
            insurer_name=config.name,
            rail=config.rail,
            submission_id=self.claim_number(),
            reference_number=reference,
            processing_time_ms=self._processing_time(config),
            rail_details=self._rail_details(config, amount),
            timestamp=now,
        )

        if status == AdjudicationStatus.PAID:
            response.message = f"Claim approved and paid by {config.name}"
            response.payment = self._payment(amount, now)
            response.remittance_advice = self._remittance(claim, amount)
        elif status == AdjudicationStatus.DENIED:
            response.message = f"Claim denied by {config.name}"
            response.denial = self._denial(now)
        elif status == AdjudicationStatus.INFO_REQUESTED:
            response.message = f"Additional information requested by {config.name}"
            response.info_request = self._info_request(claim_type, now)
        elif status == AdjudicationStatus.PROCESSING:
            response.message = f"Claim being processed by {config.name}"
            response.processing = ProcessingDetails(
                current_stage="Medical Review",
                percent_complete=self.rng.randint(20, 89),
                estimated_completion=(now + timedelta(days=3)).date(),
            )
        else:
            response.message = "Claim received and queued for processing"

        if claim_type == ClaimType.PREAUTH:
            response.authorization = self._authorization(status, claim, amount, now)

        return response

    # =========================================================================
    # Detail Blocks
    # =========================================================================

    def _processing_time(self, config: InsurerRailConfig) -> int:
        return max(0, round(config.processing_time_ms + self.rng.uniform(-500, 500)))

    def _payment(self, amount: Decimal, now: datetime) -> PaymentDetails:
        return PaymentDetails(
            approved_amount=_money(amount),
            paid_amount=_money(amount * PAID_RATIO),
            deductible=_money(amount * DEDUCTIBLE_RATIO),
            coinsurance=_money(amount * COINSURANCE_RATIO),
            payment_method="EFT",
            payment_date=(now + timedelta(days=7)).date(),
        )

    def _remittance(self, claim: Optional[ClaimRecord], amount: Decimal) -> RemittanceAdvice:
        procedure_code = claim.codes[0].code if claim is not None and claim.codes else "UNKNOWN"
        return RemittanceAdvice(
            statement_number=self.tracking_number("RMT", digits=6),
            cheque_number=f"{self.prefix}-CHK-{self.rng.randrange(1_000_000):06d}",
            procedure_code=procedure_code,
            billed=_money(amount),
            allowed=_money(amount * ALLOWED_RATIO),
            deductible=_money(amount * DEDUCTIBLE_RATIO),
            coinsurance=_money(amount * COINSURANCE_RATIO),
            copayment=Decimal("0.00"),
            paid=_money(amount * PAID_RATIO),
            patient_responsibility=_money(amount - amount * PAID_RATIO),
        )

    def _denial(self, now: datetime) -> DenialDetails:
        reason, code = self.rng.choice(DENIAL_REASONS)
        return DenialDetails(
            reason=reason,
            code=code,
            appeal_deadline=(now + timedelta(days=30)).date(),
            appeal_instructions=APPEAL_INSTRUCTIONS,
        )

    def _info_request(self, claim_type: ClaimType, now: datetime) -> InfoRequestDetails:
        specific = PREAUTH_INFO_REQUESTS if claim_type == ClaimType.PREAUTH else CLAIM_INFO_REQUESTS
        return InfoRequestDetails(
            requested_items=[*BASE_INFO_REQUESTS[:2], specific[0]],
            due_date=(now + timedelta(days=14)).date(),
            contact_phone="1-800-555-0199",
            contact_email="sandbox-claims@example.test",
        )

    def _authorization(
        self,
        status: AdjudicationStatus,
        claim: Optional[ClaimRecord],
        amount: Decimal,
        now: datetime,
    ) -> AuthorizationDetails:
        services = [c.code for c in claim.codes] if claim is not None else []
        return AuthorizationDetails(
            authorization_number=self.tracking_number("AUTH", digits=6),
            valid_until=(now + timedelta(days=90)).date(),
            authorized_services=services,
            max_authorized_amount=_money(amount),
            restrictions=[] if status == AdjudicationStatus.PAID else ["Requires specialist referral"],
        )

    def _rail_details(self, config: InsurerRailConfig, amount: Decimal) -> dict:
        details: dict = {
            "response_format": config.response_format,
            "supported_claim_types": list(config.supported_claim_types),
            "requires_electronic_signature": config.rail == Rail.PORTAL,
        }
        if config.rail == Rail.DENTAL_NETWORK:
            details.update(
                transaction_number=self.tracking_number("DNT"),
                network_status="ONLINE",
                version="04",
            )
        elif config.rail == Rail.NATIONAL_ECLAIMS:
            details.update(
                batch_number=self.tracking_number("BAT"),
                transmission_id=self.tracking_number("TX"),
                api_version="2.0",
                region="CANADA",
            )
        elif config.rail == Rail.PORTAL:
            details.update(
                case_number=self.tracking_number("WCB"),
                adjudicator=f"Adjudicator-{self.rng.randrange(100)}",
                priority="HIGH" if amount > 5000 else "NORMAL",
                review_required=self.rng.random() > 0.7,
            )
        return details
