"""
Portal Upload Connector.

Workers' compensation boards take claims through a web portal. Submission
records a portal reference; status changes are entered by hand, so polling
always reports pending.
"""

import time
from typing import Optional

from edi_pipeline.connectors.base import BaseConnector
from edi_pipeline.core.enums import AdjudicationStatus, Rail
from edi_pipeline.schemas.claim import ClaimRecord
from edi_pipeline.schemas.edi import AdjudicationResponse
from edi_pipeline.utils.logging import get_logger

logger = get_logger(__name__)


class PortalConnector(BaseConnector):
    """Manual portal submission rail."""

    rail = Rail.PORTAL

    def _validation_errors(self, claim: ClaimRecord) -> list[str]:
        errors = []
        if not claim.id:
            errors.append("Claim ID is required")
        if not claim.patient_id:
            errors.append("Patient ID is required")
        if not claim.provider_id:
            errors.append("Provider ID is required")
        if not claim.codes:
            errors.append("At least one service code is required for portal submission")
        if claim.amount <= 0:
            errors.append("Valid claim amount is required")
        return errors

    async def submit_claim(self, claim: ClaimRecord) -> AdjudicationResponse:
        await self.ensure_valid(claim)

        external_id = f"PORTAL-{claim.id}-{int(time.time() * 1000)}"
        logger.info(f"Portal claim {claim.id} recorded as {external_id}, awaiting manual upload")

        return AdjudicationResponse(
            external_id=external_id,
            status=AdjudicationStatus.SUBMITTED,
            claim_id=claim.id,
            claim_type=claim.type,
            rail=self.rail,
            message="Claim recorded for portal upload; update status manually",
            rail_details={"requires_electronic_signature": True},
        )

    async def poll_status(
        self, external_id: str, claim: Optional[ClaimRecord] = None
    ) -> AdjudicationResponse:
        return AdjudicationResponse(
            external_id=external_id,
            status=AdjudicationStatus.PENDING,
            claim_id=claim.id if claim else None,
            rail=self.rail,
            message="Portal claims are updated manually",
        )
