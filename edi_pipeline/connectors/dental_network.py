"""
Dental Network Connector.

Real-time dental EDI switch (CDAnet style). Supports claims and
predeterminations; procedure codes are five-digit dental codes.
"""

import re
from typing import Optional

from edi_pipeline.connectors.base import BaseConnector
from edi_pipeline.core.enums import ClaimType, Rail
from edi_pipeline.schemas.claim import ClaimRecord
from edi_pipeline.schemas.edi import AdjudicationResponse
from edi_pipeline.utils.logging import get_logger

logger = get_logger(__name__)

DENTAL_CODE_PATTERN = re.compile(r"^\d{5}$")
MAX_PROCEDURE_LINES = 8


class DentalNetworkConnector(BaseConnector):
    """Dental network switch rail."""

    rail = Rail.DENTAL_NETWORK
    sandbox_id_prefix = "DNT-SBX"

    def _validation_errors(self, claim: ClaimRecord) -> list[str]:
        errors = []
        if not claim.id:
            errors.append("Claim ID is required")
        if not claim.patient_id:
            errors.append("Patient ID is required")
        if not claim.provider_id:
            errors.append("Provider ID is required")
        if not claim.insurer_id:
            errors.append("Insurer ID is required")
        if claim.amount <= 0:
            errors.append("Valid claim amount is required")
        if claim.type not in (ClaimType.CLAIM, ClaimType.PREAUTH):
            errors.append(f"Unsupported claim type for dental network: {claim.type}")

        if not claim.codes:
            errors.append("At least one procedure code is required")
        elif len(claim.codes) > MAX_PROCEDURE_LINES:
            errors.append(f"Dental network accepts at most {MAX_PROCEDURE_LINES} procedure lines")
        for line in claim.codes:
            if not DENTAL_CODE_PATTERN.match(line.code):
                errors.append(f"Invalid dental procedure code: {line.code}")
        return errors

    async def submit_claim(self, claim: ClaimRecord) -> AdjudicationResponse:
        await self.ensure_valid(claim)

        if self.is_simulated:
            return self._simulated_submission(claim)

        transaction = "predetermination" if claim.type == ClaimType.PREAUTH else "claim"
        logger.info(f"Submitting dental {transaction} {claim.id} for org {self.org_id}")
        body = await self._request_json(
            "POST",
            "/transactions",
            {
                "transaction_type": transaction,
                "claim_id": claim.id,
                "patient_id": claim.patient_id,
                "provider_id": claim.provider_id,
                "insurer_id": claim.insurer_id,
                "amount": str(claim.amount),
                "procedures": [
                    {"code": c.code, "amount": str(c.amount) if c.amount is not None else None}
                    for c in claim.codes
                ],
            },
        )
        return self._parse_response(body, claim)

    async def poll_status(
        self, external_id: str, claim: Optional[ClaimRecord] = None
    ) -> AdjudicationResponse:
        if self.is_simulated:
            return self._simulated_poll(external_id, claim)

        body = await self._request_json("GET", f"/transactions/{external_id}")
        return self._parse_response(body, claim)
