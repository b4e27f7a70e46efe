"""
Gateway errors, configuration and statistics.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

from edi_pipeline.core.config import EDISettings
from edi_pipeline.core.enums import ConnectorErrorCode


class GatewayError(Exception):
    """Base exception for gateway errors."""

    code = ConnectorErrorCode.UNKNOWN
    retriable = False

    def __init__(
        self,
        message: str,
        gateway: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(message)
        self.gateway = gateway
        self.original_error = original_error

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code.value,
            "message": str(self),
            "retriable": self.retriable,
            "gateway": self.gateway,
        }


class NetworkBlockedError(GatewayError):
    """Raised when network isolation refuses an outbound request."""

    code = ConnectorErrorCode.SECURITY_VIOLATION

    def __init__(self, url: str, hostname: str, reason: str):
        super().__init__(
            f"SANDBOX SECURITY: outbound request to {hostname} blocked ({reason}). URL: {url}",
            gateway="network_isolation",
        )
        self.url = url
        self.hostname = hostname
        self.reason = reason


class SimulatedTransportError(GatewayError):
    """Injected sandbox transport failure."""

    code = ConnectorErrorCode.TRANSPORT_ERROR
    retriable = True


class GatewayTimeoutError(GatewayError):
    """Raised when a connector or gateway call exceeds its timeout."""

    code = ConnectorErrorCode.TIMEOUT
    retriable = True


@dataclass
class GatewayConfig:
    """Configuration for the sandbox gateway."""

    response_delay_ms: int = 2000
    jitter_ms: int = 1000
    error_rate: float = 0.05
    sandbox_prefix: str = "SANDBOX"
    strict_allowlist: bool = False
    max_blocked_attempts: int = 1000

    @classmethod
    def from_settings(cls, settings: EDISettings) -> "GatewayConfig":
        return cls(
            response_delay_ms=settings.RESPONSE_DELAY_MS,
            jitter_ms=settings.RESPONSE_JITTER_MS,
            error_rate=settings.ERROR_RATE,
            sandbox_prefix=settings.SANDBOX_PREFIX,
            strict_allowlist=settings.STRICT_ALLOWLIST,
            max_blocked_attempts=settings.BLOCKED_ATTEMPTS_MAX,
        )


@dataclass
class GatewayStats:
    """Running counters for gateway traffic."""

    request_count: int = 0
    error_count: int = 0
    blocked_count: int = 0
    avg_latency_ms: float = 0.0
    last_error: Optional[str] = None
    last_request_at: Optional[datetime] = None

    def record_success(self, latency_ms: float) -> None:
        self.request_count += 1
        self.last_request_at = datetime.now(timezone.utc)
        # Rolling average latency
        if self.request_count == 1:
            self.avg_latency_ms = latency_ms
        else:
            self.avg_latency_ms = self.avg_latency_ms * 0.9 + latency_ms * 0.1

    def record_failure(self, error: str) -> None:
        self.request_count += 1
        self.error_count += 1
        self.last_error = error
        self.last_request_at = datetime.now(timezone.utc)

    def record_blocked(self) -> None:
        self.blocked_count += 1
