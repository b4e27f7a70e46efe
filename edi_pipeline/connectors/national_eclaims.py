"""
National eClaims Connector.

Hub API used by most group benefit carriers. Claims are sent as JSON and
adjudicated asynchronously.
"""

import re
from typing import Optional

from edi_pipeline.connectors.base import BaseConnector
from edi_pipeline.core.enums import Rail
from edi_pipeline.schemas.claim import ClaimRecord
from edi_pipeline.schemas.edi import AdjudicationResponse
from edi_pipeline.utils.logging import get_logger

logger = get_logger(__name__)

SERVICE_CODE_PATTERN = re.compile(r"^[A-Z0-9]{4,7}$")


class NationalEClaimsConnector(BaseConnector):
    """National eClaims hub rail."""

    rail = Rail.NATIONAL_ECLAIMS
    sandbox_id_prefix = "ECL-SBX"

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

        if not claim.codes:
            errors.append("At least one service code is required")
        for line in claim.codes:
            if not SERVICE_CODE_PATTERN.match(line.code.upper()):
                errors.append(f"Invalid service code: {line.code}")
        return errors

    async def submit_claim(self, claim: ClaimRecord) -> AdjudicationResponse:
        await self.ensure_valid(claim)

        if self.is_simulated:
            return self._simulated_submission(claim)

        logger.info(f"Submitting eClaim {claim.id} for org {self.org_id}")
        body = await self._request_json(
            "POST",
            "/claims",
            {
                "claim_id": claim.id,
                "claim_type": claim.type.value,
                "patient_id": claim.patient_id,
                "provider_id": claim.provider_id,
                "insurer_id": claim.insurer_id,
                "amount": str(claim.amount),
                "services": [c.code.upper() for c in claim.codes],
            },
        )
        return self._parse_response(body, claim)

    async def poll_status(
        self, external_id: str, claim: Optional[ClaimRecord] = None
    ) -> AdjudicationResponse:
        if self.is_simulated:
            return self._simulated_poll(external_id, claim)

        body = await self._request_json("GET", f"/claims/{external_id}/status")
        return self._parse_response(body, claim)
