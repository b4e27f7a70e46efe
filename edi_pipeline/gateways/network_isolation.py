"""
Network Isolation Gateway.

In sandbox mode every EDI call is answered by the mock response generator
and no request may reach a production insurer host. Hostname decisions, in
order:

1. not sandbox -> allow
2. loopback or allow-listed prefix -> allow
3. deny-listed production domain (or subdomain) -> block
4. strict allow-list -> block, otherwise allow

Blocked requests are recorded, audited and raised as ``NetworkBlockedError``.
"""

import asyncio
import ipaddress
import random
import time
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional

import httpx

from edi_pipeline.core.config import EDISettings
from edi_pipeline.core.enums import AuditEventType, EDIMode
from edi_pipeline.gateways.base import (
    GatewayConfig,
    GatewayStats,
    NetworkBlockedError,
    SimulatedTransportError,
)
from edi_pipeline.schemas.audit import BlockedDetails, SandboxErrorDetails, SandboxSubmissionDetails
from edi_pipeline.schemas.claim import ActorIdentity, ClaimRecord
from edi_pipeline.schemas.edi import AdjudicationResponse, BlockedAttempt
from edi_pipeline.services.audit import AuditRecorder
from edi_pipeline.services.edi.insurers import InsurerRailConfig
from edi_pipeline.services.edi.responses import SANDBOX_WARNING, MockResponseGenerator
from edi_pipeline.utils.logging import get_logger

logger = get_logger(__name__)


# Production insurer and clearing-house domains
BLOCKED_DOMAINS: tuple[str, ...] = (
    "api.telus.com",
    "eclaims.telus.com",
    "telus.com",
    "telus.ca",
    "cdanet.ca",
    "itrans.ca",
    "sunlife.ca",
    "manulife.ca",
    "manulifegroup.com",
    "bluecross.ca",
    "canadalife.com",
    "desjardins.com",
    "greenshield.ca",
    "empire.ca",
    "ia.ca",
    "equitable.ca",
    "rbc.com",
    "td.com",
    "ssq.ca",
    "medavie.ca",
    "wsib.ca",
    "wsib.on.ca",
    "worksafebc.com",
    "wcb.ab.ca",
    "cnesst.gouv.qc.ca",
    "wcb.mb.ca",
    "wcbsask.com",
    "workplacenl.ca",
)


@dataclass(frozen=True)
class HostDecision:
    """Outcome of a hostname check."""

    allowed: bool
    reason: str
    hostname: str = ""


def normalize_hostname(value: str) -> str:
    """Lowercase hostname from a URL or bare host."""
    value = value.strip()
    if "://" not in value:
        value = f"https://{value}"
    host = httpx.URL(value).host or ""
    return host.lower().rstrip(".")


def is_loopback(hostname: str) -> bool:
    if hostname == "localhost" or hostname.endswith(".localhost"):
        return True
    try:
        return ipaddress.ip_address(hostname.strip("[]")).is_loopback
    except ValueError:
        return False


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class NetworkIsolationGateway:
    """
    Sandbox EDI gateway.

    Intercepts submissions and status polls in sandbox mode, enforces the
    outbound host policy, and tags every response as synthetic.
    """

    def __init__(
        self,
        settings: EDISettings,
        audit: AuditRecorder,
        generator: Optional[MockResponseGenerator] = None,
        rng: Optional[random.Random] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Optional[Callable[[], datetime]] = None,
        config: Optional[GatewayConfig] = None,
    ):
        self.settings = settings
        self.config = config or GatewayConfig.from_settings(settings)
        self.mode = settings.resolve_mode()
        self.allowlist = settings.allowlist_prefixes
        self.audit = audit
        self.rng = rng or random.Random()
        self.clock = clock or _utcnow
        self.generator = generator or MockResponseGenerator(
            prefix=self.config.sandbox_prefix, rng=self.rng, clock=self.clock
        )
        self._sleep = sleep
        self._blocked_attempts: deque[BlockedAttempt] = deque(
            maxlen=self.config.max_blocked_attempts
        )
        self.stats = GatewayStats()

        if self.is_sandbox_mode:
            logger.warning(
                f"EDI SANDBOX MODE ACTIVE: all insurer traffic is mocked "
                f"(delay={self.config.response_delay_ms}ms, error_rate={self.config.error_rate})"
            )

    @property
    def gateway_name(self) -> str:
        return "network_isolation"

    @property
    def is_sandbox_mode(self) -> bool:
        return self.mode == EDIMode.SANDBOX

    # =========================================================================
    # Host Policy
    # =========================================================================

    @staticmethod
    def is_production_endpoint(hostname: str) -> bool:
        """Whether a hostname is, or is under, a deny-listed production domain."""
        host = normalize_hostname(hostname)
        return any(host == d or host.endswith(f".{d}") for d in BLOCKED_DOMAINS)

    def matches_allowlist(self, hostname: str) -> bool:
        return any(
            hostname.startswith(prefix) or f".{prefix}" in hostname
            for prefix in self.allowlist
        )

    def check_hostname(self, hostname: str) -> HostDecision:
        """Decide whether a host may be contacted. No side effects."""
        host = normalize_hostname(hostname)

        if not self.is_sandbox_mode:
            return HostDecision(True, "production mode", host)
        if is_loopback(host):
            return HostDecision(True, "loopback", host)
        if self.matches_allowlist(host):
            return HostDecision(True, "allow-listed", host)
        if self.is_production_endpoint(host):
            return HostDecision(False, "production insurer endpoint", host)
        if self.config.strict_allowlist:
            return HostDecision(False, "not on strict allow-list", host)

        logger.warning(f"SANDBOX outbound request to unlisted host {host}")
        return HostDecision(True, "unlisted host allowed", host)

    async def guard(
        self,
        url: str,
        method: str = "POST",
        actor: Optional[ActorIdentity] = None,
    ) -> HostDecision:
        """Check a URL and block it if the policy says so."""
        decision = self.check_hostname(url)
        if not decision.allowed:
            await self._block(url, decision, method, actor)
        return decision

    async def _block(
        self,
        url: str,
        decision: HostDecision,
        method: str,
        actor: Optional[ActorIdentity],
    ) -> None:
        attempt = BlockedAttempt(
            timestamp=self.clock(),
            url=url,
            hostname=decision.hostname,
            method=method.upper(),
            org_id=actor.org_id if actor else None,
            user_id=actor.user_id if actor else None,
            reason=decision.reason,
        )
        self._blocked_attempts.append(attempt)
        self.stats.record_blocked()

        logger.bind(severity="CRITICAL", alert=True).error(
            f"BLOCKED PRODUCTION EDI ATTEMPT: {attempt.method} {url} "
            f"(org={attempt.org_id}, user={attempt.user_id}, reason={decision.reason})"
        )

        await self.audit.record(
            AuditEventType.EDI_PRODUCTION_BLOCKED,
            actor,
            BlockedDetails(
                url=url,
                hostname=decision.hostname,
                method=attempt.method,
                reason=decision.reason,
            ),
        )
        raise NetworkBlockedError(url, decision.hostname, decision.reason)

    def get_blocked_attempts(self) -> list[BlockedAttempt]:
        return list(self._blocked_attempts)

    def clear_blocked_attempts(self) -> int:
        """Drop the blocked attempt log; returns how many were removed."""
        count = len(self._blocked_attempts)
        self._blocked_attempts.clear()
        logger.info(f"Cleared {count} blocked attempts")
        return count

    # =========================================================================
    # Sandbox EDI Operations
    # =========================================================================

    async def submit_claim(
        self,
        claim: ClaimRecord,
        insurer: InsurerRailConfig,
        actor: Optional[ActorIdentity] = None,
        url: Optional[str] = None,
    ) -> AdjudicationResponse:
        """Produce a mock adjudication for a claim."""
        self._require_sandbox("submit_claim")
        if url:
            await self.guard(url, "POST", actor)

        logger.info(
            f"SANDBOX claim submission: claim={claim.id} insurer={insurer.name} rail={insurer.rail.value}"
        )
        started = time.perf_counter()
        await self._simulate_latency()
        await self._maybe_inject_error(claim, insurer, actor)

        response = self._tag(self.generator.generate(insurer, claim))
        self.stats.record_success((time.perf_counter() - started) * 1000)

        await self.audit.record(
            AuditEventType.EDI_SANDBOX_SUBMISSION,
            actor,
            SandboxSubmissionDetails(
                claim_id=claim.id,
                external_id=response.external_id,
                insurer_name=insurer.name,
                rail=insurer.rail,
                status=response.status,
                context={"environment": "SANDBOX"},
            ),
        )
        return response

    async def poll_status(
        self,
        external_id: str,
        insurer: InsurerRailConfig,
        actor: Optional[ActorIdentity] = None,
        claim: Optional[ClaimRecord] = None,
        url: Optional[str] = None,
    ) -> AdjudicationResponse:
        """Produce a mock status answer for a previously submitted claim."""
        self._require_sandbox("poll_status")
        if url:
            await self.guard(url, "GET", actor)

        logger.info(f"SANDBOX status poll: external_id={external_id} insurer={insurer.name}")
        started = time.perf_counter()
        await self._simulate_latency()
        await self._maybe_inject_error(claim, insurer, actor)

        response = self.generator.generate_status(insurer, external_id, claim)
        response = self._tag(response, prefix_external_id=False)
        self.stats.record_success((time.perf_counter() - started) * 1000)
        return response

    async def validate_configuration(
        self, config: dict[str, Any], actor: Optional[ActorIdentity] = None
    ) -> bool:
        """Accept any connector configuration in sandbox mode."""
        self._require_sandbox("validate_configuration")
        redacted = {k: ("[REDACTED]" if "secret" in k or "credential" in k else v) for k, v in config.items()}
        logger.info(f"SANDBOX configuration validation for org={actor.org_id if actor else None}: {redacted}")
        return True

    def generate_tracking_number(self, kind: str = "CLAIM") -> str:
        prefix = self.config.sandbox_prefix if self.is_sandbox_mode else ""
        return self.generator.tracking_number(kind, prefix=prefix)

    def statistics(self) -> dict[str, Any]:
        return {
            "mode": self.mode.value,
            "is_sandbox": self.is_sandbox_mode,
            "blocked_attempts": len(self._blocked_attempts),
            "response_delay_ms": self.config.response_delay_ms,
            "jitter_ms": self.config.jitter_ms,
            "error_rate": self.config.error_rate,
            "sandbox_prefix": self.config.sandbox_prefix,
            "strict_allowlist": self.config.strict_allowlist,
            "request_count": self.stats.request_count,
            "error_count": self.stats.error_count,
            "avg_latency_ms": round(self.stats.avg_latency_ms, 2),
        }

    # =========================================================================
    # Internals
    # =========================================================================

    def _require_sandbox(self, operation: str) -> None:
        if not self.is_sandbox_mode:
            raise RuntimeError(f"Sandbox gateway {operation} called in production mode")

    async def _simulate_latency(self) -> None:
        delay_ms = self.config.response_delay_ms + self.rng.random() * self.config.jitter_ms
        if delay_ms > 0:
            await self._sleep(delay_ms / 1000)

    async def _maybe_inject_error(
        self,
        claim: Optional[ClaimRecord],
        insurer: InsurerRailConfig,
        actor: Optional[ActorIdentity],
    ) -> None:
        if self.rng.random() >= self.config.error_rate:
            return

        message = f"SANDBOX: simulated network error talking to {insurer.name}"
        self.stats.record_failure(message)
        logger.warning(message)

        await self.audit.record(
            AuditEventType.EDI_SANDBOX_ERROR,
            actor,
            SandboxErrorDetails(
                claim_id=claim.id if claim else None,
                insurer_name=insurer.name,
                message=message,
            ),
        )
        raise SimulatedTransportError(message, gateway=self.gateway_name)

    def _tag(
        self, response: AdjudicationResponse, prefix_external_id: bool = True
    ) -> AdjudicationResponse:
        prefix = f"{self.config.sandbox_prefix}-"
        external_id = response.external_id
        if prefix_external_id and not external_id.startswith(prefix):
            external_id = f"{prefix}{external_id}"
        return response.model_copy(
            update={
                "external_id": external_id,
                "environment": "SANDBOX",
                "sandbox": True,
                "warning": SANDBOX_WARNING,
                "timestamp": self.clock(),
            }
        )
