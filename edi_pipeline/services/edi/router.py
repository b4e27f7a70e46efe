"""
EDI Router.

Single entry point for insurer operations. Resolves the claim's insurer and
rail, writes audit events, and dispatches either to the sandbox gateway or
to the live rail connector. The routing mode is fixed at construction.
"""

import asyncio
from typing import Any, Awaitable, Callable, Optional, TypeVar

from edi_pipeline.connectors.base import BaseConnector
from edi_pipeline.connectors.registry import ConnectorRegistry
from edi_pipeline.core.config import EDISettings
from edi_pipeline.core.enums import AuditEventType, ConnectorErrorCode, EDIMode, Rail
from edi_pipeline.gateways.base import GatewayTimeoutError
from edi_pipeline.gateways.network_isolation import NetworkIsolationGateway
from edi_pipeline.schemas.audit import AttemptDetails, ErrorDetails
from edi_pipeline.schemas.claim import ActorIdentity, ClaimRecord
from edi_pipeline.schemas.edi import AdjudicationResponse, BlockedAttempt, ValidationResult
from edi_pipeline.services.audit import AuditRecorder
from edi_pipeline.services.claim_store import ClaimStore
from edi_pipeline.services.edi.insurers import (
    InsurerDirectory,
    InsurerRailConfig,
    UnknownInsurerError,
    get_insurer_directory,
)
from edi_pipeline.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class ProductionNotConfirmedError(Exception):
    """Raised when production mode is active without the confirmation switch."""

    code = ConnectorErrorCode.SECURITY_VIOLATION
    retriable = False

    def __init__(self) -> None:
        super().__init__(
            "Production EDI mode requires EDI_PRODUCTION_CONFIRMED=true before "
            "live insurer traffic is sent"
        )


def error_code_of(error: BaseException) -> ConnectorErrorCode:
    code = getattr(error, "code", None)
    return code if isinstance(code, ConnectorErrorCode) else ConnectorErrorCode.UNKNOWN


class EDIRouter:
    """Routes claim submissions and status polls by mode and rail."""

    def __init__(
        self,
        settings: EDISettings,
        gateway: NetworkIsolationGateway,
        connectors: ConnectorRegistry,
        claim_store: ClaimStore,
        audit: AuditRecorder,
        insurers: Optional[InsurerDirectory] = None,
    ):
        self.settings = settings
        self.mode = settings.resolve_mode()
        self.gateway = gateway
        self.connectors = connectors
        self.claim_store = claim_store
        self.audit = audit
        self.insurers = insurers or get_insurer_directory()
        self.timeout_seconds = settings.CONNECTOR_TIMEOUT_SECONDS

        logger.info(
            f"EDI router initialized: mode={self.mode.value} "
            f"(requested={settings.MODE.value}, environment={settings.ENVIRONMENT.value}, "
            f"block_production={settings.BLOCK_PRODUCTION})"
        )

    @property
    def is_sandbox(self) -> bool:
        return self.mode == EDIMode.SANDBOX

    # =========================================================================
    # Resolution
    # =========================================================================

    async def resolve_insurer(self, claim: ClaimRecord) -> InsurerRailConfig:
        """Insurer rail configuration for a claim."""
        insurer = await self.claim_store.get_insurer(claim.insurer_id)
        if insurer is None:
            raise UnknownInsurerError(claim.insurer_id)
        return self.insurers.lookup(insurer.name)

    def connector_for(self, rail: Rail, org_id: str) -> BaseConnector:
        return self.connectors.create(rail, org_id)

    # =========================================================================
    # Operations
    # =========================================================================

    async def submit_claim(
        self,
        claim: ClaimRecord,
        actor: ActorIdentity,
        url: Optional[str] = None,
    ) -> AdjudicationResponse:
        """Submit a claim once through the sandbox gateway or live connector."""
        insurer = await self._resolve_or_audit(
            "submit_claim", AuditEventType.EDI_ERROR_SUBMIT_CLAIM, claim, actor
        )

        async def sandbox() -> AdjudicationResponse:
            return await self.gateway.submit_claim(claim, insurer, actor, url=url)

        async def production() -> AdjudicationResponse:
            connector = await self._production_connector(insurer, claim.org_id, actor, url, "POST")
            return await connector.submit_claim(claim)

        return await self._dispatch(
            "submit_claim",
            AuditEventType.EDI_SUBMIT_CLAIM,
            AuditEventType.EDI_ERROR_SUBMIT_CLAIM,
            claim,
            insurer,
            actor,
            sandbox if self.is_sandbox else production,
        )

    async def poll_status(
        self,
        claim: ClaimRecord,
        actor: ActorIdentity,
        url: Optional[str] = None,
    ) -> AdjudicationResponse:
        """Poll the insurer for a submitted claim's status."""
        if not claim.external_id:
            raise ValueError(f"Claim {claim.id} has no external id to poll")
        insurer = await self._resolve_or_audit(
            "poll_status", AuditEventType.EDI_ERROR_POLL_STATUS, claim, actor
        )
        external_id = claim.external_id

        async def sandbox() -> AdjudicationResponse:
            return await self.gateway.poll_status(external_id, insurer, actor, claim=claim, url=url)

        async def production() -> AdjudicationResponse:
            connector = await self._production_connector(insurer, claim.org_id, actor, url, "GET")
            return await connector.poll_status(external_id, claim)

        return await self._dispatch(
            "poll_status",
            AuditEventType.EDI_POLL_STATUS,
            AuditEventType.EDI_ERROR_POLL_STATUS,
            claim,
            insurer,
            actor,
            sandbox if self.is_sandbox else production,
        )

    async def validate_claim(
        self, claim: ClaimRecord, actor: Optional[ActorIdentity] = None
    ) -> ValidationResult:
        """Rail-specific validation; problems are reported, not raised."""
        try:
            insurer = await self.resolve_insurer(claim)
        except UnknownInsurerError as e:
            message = str(e)
            if self.is_sandbox:
                message = f"Insurer {e.insurer_name} is not supported in sandbox mode"
            return ValidationResult.from_errors([message])

        connector = self.connector_for(insurer.rail, claim.org_id)
        result = await connector.validate(claim)

        await self.audit.record(
            AuditEventType.EDI_VALIDATE_CLAIM,
            actor or ActorIdentity(org_id=claim.org_id),
            AttemptDetails(
                operation="validate_claim",
                mode=self.mode,
                claim_id=claim.id,
                insurer_name=insurer.name,
                rail=insurer.rail,
                context={"valid": result.valid, "errors": result.errors},
            ),
        )
        return result

    def is_url_allowed(self, url: str) -> bool:
        """Host policy decision for a URL, without recording anything."""
        return self.gateway.check_hostname(url).allowed

    def generate_tracking_number(self, kind: str = "CLAIM") -> str:
        return self.gateway.generate_tracking_number(kind)

    def supported_insurers(self) -> dict[str, list[str]]:
        """Insurer names grouped by rail."""
        return {rail.value: self.insurers.by_rail(rail) for rail in Rail}

    def get_blocked_attempts(self) -> list[BlockedAttempt]:
        return self.gateway.get_blocked_attempts()

    def clear_blocked_attempts(self) -> int:
        return self.gateway.clear_blocked_attempts()

    def statistics(self) -> dict[str, Any]:
        return {
            "mode": self.mode.value,
            "production_confirmed": self.settings.PRODUCTION_CONFIRMED,
            "audit_enabled": self.audit.enabled,
            "supported_insurers": len(self.insurers),
            "rails": [r.value for r in self.connectors.rails],
            "gateway": self.gateway.statistics(),
        }

    # =========================================================================
    # Internals
    # =========================================================================

    async def _production_connector(
        self,
        insurer: InsurerRailConfig,
        org_id: str,
        actor: ActorIdentity,
        url: Optional[str],
        method: str,
    ) -> BaseConnector:
        if not self.settings.PRODUCTION_CONFIRMED:
            raise ProductionNotConfirmedError()

        connector = self.connector_for(insurer.rail, org_id)
        # Same host check as sandbox; production mode always allows
        for target in (url, connector.endpoint):
            if target:
                await self.gateway.guard(target, method, actor)
        return connector

    async def _resolve_or_audit(
        self,
        operation: str,
        error_type: AuditEventType,
        claim: ClaimRecord,
        actor: ActorIdentity,
    ) -> InsurerRailConfig:
        try:
            return await self.resolve_insurer(claim)
        except UnknownInsurerError as e:
            await self._record_error(operation, error_type, claim, actor, e)
            raise

    async def _record_error(
        self,
        operation: str,
        error_type: AuditEventType,
        claim: ClaimRecord,
        actor: ActorIdentity,
        error: BaseException,
    ) -> None:
        logger.error(f"EDI {operation} failed for claim {claim.id}: {error}")
        await self.audit.record(
            error_type,
            actor,
            ErrorDetails(
                operation=operation,
                error=str(error),
                error_code=error_code_of(error),
                claim_id=claim.id,
                external_id=claim.external_id,
                context={"error_type": type(error).__name__},
            ),
        )

    async def _dispatch(
        self,
        operation: str,
        attempt_type: AuditEventType,
        error_type: AuditEventType,
        claim: ClaimRecord,
        insurer: InsurerRailConfig,
        actor: ActorIdentity,
        call: Callable[[], Awaitable[T]],
    ) -> T:
        await self.audit.record(
            attempt_type,
            actor,
            AttemptDetails(
                operation=operation,
                mode=self.mode,
                claim_id=claim.id,
                external_id=claim.external_id,
                insurer_name=insurer.name,
                rail=insurer.rail,
            ),
        )
        logger.info(
            f"EDI {operation}: claim={claim.id} insurer={insurer.name} "
            f"rail={insurer.rail.value} mode={self.mode.value}"
        )

        try:
            try:
                return await asyncio.wait_for(call(), timeout=self.timeout_seconds)
            except asyncio.TimeoutError as e:
                raise GatewayTimeoutError(
                    f"{operation} for claim {claim.id} timed out after {self.timeout_seconds}s",
                    gateway=insurer.rail.value,
                    original_error=e,
                ) from e
        except Exception as e:
            await self._record_error(operation, error_type, claim, actor, e)
            raise
