"""
Claim Storage Interface.

The pipeline never owns claim records. It reads them, writes back
adjudication results, and asks for claims still awaiting an insurer answer.
"""

import asyncio
from datetime import datetime, timezone
from typing import Any, Iterable, Optional, Protocol

from edi_pipeline.core.enums import IN_FLIGHT_CLAIM_STATUSES
from edi_pipeline.schemas.claim import ClaimRecord, ClaimUpdate, Insurer
from edi_pipeline.schemas.edi import AdjudicationResponse


class ClaimNotFoundError(Exception):
    """Raised when a claim id is unknown to claim storage."""

    def __init__(self, claim_id: str):
        super().__init__(f"Claim not found: {claim_id}")
        self.claim_id = claim_id


class ClaimStore(Protocol):
    """Operations the pipeline needs from claim storage."""

    async def get_claim(self, claim_id: str) -> ClaimRecord: ...

    async def update_claim(self, claim_id: str, update: ClaimUpdate) -> ClaimRecord: ...

    async def get_insurer(self, insurer_id: str) -> Optional[Insurer]: ...

    async def list_in_flight_claims(self) -> list[ClaimRecord]: ...


class InMemoryClaimStore:
    """Dictionary-backed claim storage for local runs and tests."""

    def __init__(
        self,
        claims: Iterable[ClaimRecord] = (),
        insurers: Iterable[Insurer] = (),
    ):
        self._claims: dict[str, ClaimRecord] = {c.id: c for c in claims}
        self._insurers: dict[str, Insurer] = {i.id: i for i in insurers}
        self._lock = asyncio.Lock()
        self.update_count = 0

    def add_claim(self, claim: ClaimRecord) -> None:
        self._claims[claim.id] = claim

    def add_insurer(self, insurer: Insurer) -> None:
        self._insurers[insurer.id] = insurer

    async def get_claim(self, claim_id: str) -> ClaimRecord:
        claim = self._claims.get(claim_id)
        if claim is None:
            raise ClaimNotFoundError(claim_id)
        return claim.model_copy(deep=True)

    async def update_claim(self, claim_id: str, update: ClaimUpdate) -> ClaimRecord:
        async with self._lock:
            claim = self._claims.get(claim_id)
            if claim is None:
                raise ClaimNotFoundError(claim_id)

            changes = update.changes()
            changes.setdefault("updated_at", datetime.now(timezone.utc))
            updated = claim.model_copy(update=changes)
            self._claims[claim_id] = updated
            self.update_count += 1
            return updated.model_copy(deep=True)

    async def get_insurer(self, insurer_id: str) -> Optional[Insurer]:
        return self._insurers.get(insurer_id)

    async def list_in_flight_claims(self) -> list[ClaimRecord]:
        return [
            c.model_copy(deep=True)
            for c in self._claims.values()
            if c.status in IN_FLIGHT_CLAIM_STATUSES and c.external_id
        ]


# =============================================================================
# Adjudication Write-back
# =============================================================================


def adjudication_fields(response: AdjudicationResponse) -> dict[str, Any]:
    """Claim fields carried by an insurer answer."""
    fields: dict[str, Any] = {
        "status": response.status.to_claim_status(),
        "external_id": response.external_id,
    }
    if response.submission_id:
        fields["submission_id"] = response.submission_id
    if response.payment is not None:
        fields["approved_amount"] = response.payment.approved_amount
        fields["paid_amount"] = response.payment.paid_amount
        fields["payment_date"] = response.payment.payment_date
    if response.denial is not None:
        fields["denial_reason"] = response.denial.reason
        fields["denial_code"] = response.denial.code
        fields["appeal_deadline"] = response.denial.appeal_deadline
    if response.info_request is not None:
        fields["requested_information"] = list(response.info_request.requested_items)
        fields["info_due_date"] = response.info_request.due_date
    return fields


def changed_fields(claim: ClaimRecord, fields: dict[str, Any]) -> dict[str, Any]:
    """Subset of ``fields`` whose value differs from the stored claim."""
    return {k: v for k, v in fields.items() if getattr(claim, k) != v}
