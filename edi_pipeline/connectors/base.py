"""
Base Connector Abstract Class.

Every insurer rail implements the same three operations:
- validate: rail-specific claim checks, reported rather than raised
- submit_claim: one submission attempt, safe to repeat
- poll_status: adjudication status for an external id

Failures are raised as ``ConnectorError`` carrying a normalized code; the
code decides whether the submission queue retries.
"""

import random
from abc import ABC, abstractmethod
from typing import Any, Optional

import httpx

from edi_pipeline.connectors.carrier_sim import simulate_outcome
from edi_pipeline.core.enums import (
    RETRIABLE_ERROR_CODES,
    AdjudicationStatus,
    ClaimType,
    ConnectorErrorCode,
    Rail,
)
from edi_pipeline.schemas.claim import ClaimRecord
from edi_pipeline.schemas.edi import AdjudicationResponse, ValidationResult
from edi_pipeline.utils.logging import get_logger

logger = get_logger(__name__)


class ConnectorError(Exception):
    """Normalized connector failure."""

    def __init__(
        self,
        code: ConnectorErrorCode,
        message: str,
        status_code: Optional[int] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.retriable = code in RETRIABLE_ERROR_CODES

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code.value,
            "message": self.message,
            "retriable": self.retriable,
            "status_code": self.status_code,
            "details": self.details,
        }


def classify_http_error(status_code: int) -> ConnectorErrorCode:
    """Map an upstream HTTP status onto a connector error code."""
    if status_code == 400:
        return ConnectorErrorCode.VALIDATION_ERROR
    if status_code in (401, 403):
        return ConnectorErrorCode.AUTH_ERROR
    if status_code == 408:
        return ConnectorErrorCode.TIMEOUT
    if status_code == 409:
        return ConnectorErrorCode.DUPLICATE
    if status_code == 429:
        return ConnectorErrorCode.RATE_LIMIT
    if 400 <= status_code < 500:
        return ConnectorErrorCode.PAYER_REJECT
    if status_code >= 500:
        return ConnectorErrorCode.TRANSPORT_ERROR
    return ConnectorErrorCode.UNKNOWN


def should_retry(error: BaseException) -> bool:
    """Whether a failed attempt may be retried with backoff."""
    return bool(getattr(error, "retriable", False))


def calculate_backoff_delay(
    attempt: int,
    base_ms: int = 2000,
    max_ms: int = 300_000,
    rng: Optional[random.Random] = None,
) -> int:
    """
    Exponential backoff in milliseconds with up to 10% jitter.

    ``min(2^attempt * base_ms, max_ms)`` plus a random share of that delay.
    """
    rng = rng or random.Random()
    delay = min((2 ** attempt) * base_ms, max_ms)
    jitter = rng.random() * 0.1 * delay
    return int(delay + jitter)


class BaseConnector(ABC):
    """
    Abstract base for insurer rail connectors.

    Live connectors send JSON over the supplied ``httpx.AsyncClient``, which
    is expected to carry the network isolation hook. With ``simulate`` set
    and no endpoint configured, the deterministic carrier simulator answers.
    """

    rail: Rail
    sandbox_id_prefix: str = "SBX"

    def __init__(
        self,
        org_id: str,
        endpoint: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        simulate: bool = False,
    ):
        self.org_id = org_id
        self.endpoint = endpoint.rstrip("/") if endpoint else None
        self.http_client = http_client
        self.simulate = simulate

    @property
    def connector_name(self) -> str:
        return self.rail.value

    @property
    def is_simulated(self) -> bool:
        return self.simulate and not self.endpoint

    @abstractmethod
    def _validation_errors(self, claim: ClaimRecord) -> list[str]:
        """Rail-specific validation errors for a claim."""

    async def validate(self, claim: ClaimRecord) -> ValidationResult:
        errors = self._validation_errors(claim)
        if errors:
            logger.debug(f"{self.connector_name}: claim {claim.id} failed validation: {errors}")
        return ValidationResult.from_errors(errors)

    async def ensure_valid(self, claim: ClaimRecord) -> None:
        """Raise a validation ``ConnectorError`` if the claim is not submittable."""
        result = await self.validate(claim)
        if not result.valid:
            raise ConnectorError(
                ConnectorErrorCode.VALIDATION_ERROR,
                "; ".join(result.errors),
                details={"errors": result.errors},
            )

    @abstractmethod
    async def submit_claim(self, claim: ClaimRecord) -> AdjudicationResponse:
        """Submit a claim once."""

    @abstractmethod
    async def poll_status(
        self, external_id: str, claim: Optional[ClaimRecord] = None
    ) -> AdjudicationResponse:
        """Fetch the adjudication status of a submitted claim."""

    # =========================================================================
    # Simulation
    # =========================================================================

    def simulated_external_id(self, claim_id: str) -> str:
        return f"{self.sandbox_id_prefix}-{claim_id}"

    def _simulated_poll(
        self, external_id: str, claim: Optional[ClaimRecord]
    ) -> AdjudicationResponse:
        prefix = f"{self.sandbox_id_prefix}-"
        if not external_id.startswith(prefix):
            raise ConnectorError(
                ConnectorErrorCode.PAYER_REJECT,
                f"Unknown external id for simulated polling: {external_id}",
            )
        claim_id = external_id[len(prefix):]
        if claim is None or claim.id != claim_id:
            raise ConnectorError(
                ConnectorErrorCode.PAYER_REJECT,
                f"No claim {claim_id} known for external id {external_id}",
            )
        status = simulate_outcome(claim.amount)
        return AdjudicationResponse(
            external_id=external_id,
            status=status,
            claim_id=claim.id,
            claim_type=claim.type,
            rail=self.rail,
            message=f"Simulated {self.connector_name} status: {status.value}",
            environment="SANDBOX",
            sandbox=True,
        )

    # =========================================================================
    # HTTP
    # =========================================================================

    def _require_endpoint(self) -> str:
        if not self.endpoint:
            raise ConnectorError(
                ConnectorErrorCode.VALIDATION_ERROR,
                f"{self.connector_name} endpoint not configured",
            )
        if self.http_client is None:
            raise ConnectorError(
                ConnectorErrorCode.VALIDATION_ERROR,
                f"{self.connector_name} HTTP client not configured",
            )
        return self.endpoint

    async def _request_json(
        self,
        method: str,
        path: str,
        payload: Optional[dict[str, Any]] = None,
    ) -> dict[str, Any]:
        endpoint = self._require_endpoint()
        url = f"{endpoint}{path}"

        try:
            response = await self.http_client.request(
                method,
                url,
                json=payload,
                headers={"X-Org-Id": self.org_id},
            )
        except httpx.TimeoutException as e:
            raise ConnectorError(
                ConnectorErrorCode.TIMEOUT, f"{self.connector_name} request timed out: {e}"
            ) from e
        except httpx.TransportError as e:
            raise ConnectorError(
                ConnectorErrorCode.TRANSPORT_ERROR, f"{self.connector_name} transport error: {e}"
            ) from e

        if response.status_code >= 400:
            code = classify_http_error(response.status_code)
            raise ConnectorError(
                code,
                f"{self.connector_name} API error: HTTP {response.status_code}",
                status_code=response.status_code,
                details={"body": response.text[:500]},
            )

        try:
            body = response.json()
        except ValueError as e:
            raise ConnectorError(
                ConnectorErrorCode.UNKNOWN,
                f"{self.connector_name} returned a non-JSON body",
                status_code=response.status_code,
            ) from e
        if not isinstance(body, dict):
            raise ConnectorError(
                ConnectorErrorCode.UNKNOWN,
                f"{self.connector_name} returned an unexpected payload",
                status_code=response.status_code,
            )
        return body

    def _parse_response(
        self, body: dict[str, Any], claim: Optional[ClaimRecord] = None
    ) -> AdjudicationResponse:
        external_id = body.get("external_id") or body.get("externalId")
        if not external_id:
            raise ConnectorError(
                ConnectorErrorCode.UNKNOWN,
                f"{self.connector_name} response has no external id",
                details={"body": body},
            )
        raw_status = str(body.get("status", "")).strip().lower()
        try:
            status = AdjudicationStatus(_STATUS_ALIASES.get(raw_status, raw_status))
        except ValueError as e:
            raise ConnectorError(
                ConnectorErrorCode.UNKNOWN,
                f"{self.connector_name} returned unknown status {raw_status!r}",
                details={"body": body},
            ) from e

        return AdjudicationResponse(
            external_id=str(external_id),
            status=status,
            claim_id=claim.id if claim else None,
            claim_type=claim.type if claim else ClaimType.CLAIM,
            rail=self.rail,
            message=body.get("message"),
            raw=body,
        )

    def _simulated_submission(self, claim: ClaimRecord) -> AdjudicationResponse:
        external_id = self.simulated_external_id(claim.id)
        logger.info(f"{self.connector_name}: simulated submission of claim {claim.id} as {external_id}")
        return AdjudicationResponse(
            external_id=external_id,
            status=AdjudicationStatus.SUBMITTED,
            claim_id=claim.id,
            claim_type=claim.type,
            rail=self.rail,
            message=f"Claim accepted by simulated {self.connector_name}",
            environment="SANDBOX",
            sandbox=True,
        )


_STATUS_ALIASES = {
    "accepted": AdjudicationStatus.PAID.value,
    "approved": AdjudicationStatus.PAID.value,
    "rejected": AdjudicationStatus.DENIED.value,
    "inforequested": AdjudicationStatus.INFO_REQUESTED.value,
    "info_requested": AdjudicationStatus.INFO_REQUESTED.value,
    "received": AdjudicationStatus.SUBMITTED.value,
}
