"""
EDI Pipeline Configuration
Environment-driven settings for routing, isolation, queueing and polling.
Source: https://docs.pydantic.dev/latest/concepts/pydantic_settings/
"""

from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from edi_pipeline.core.enums import DeploymentEnvironment, EDIMode


DEFAULT_ALLOWLIST = "sandbox.,test.,mock.,dev.,staging."


class EDISettings(BaseSettings):
    """
    Claim submission pipeline settings.

    All values are read from ``EDI_``-prefixed environment variables or a
    local ``.env`` file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_prefix="EDI_",
    )

    # =========================================================================
    # Routing Mode
    # =========================================================================
    MODE: EDIMode = Field(
        default=EDIMode.SANDBOX,
        description="Requested routing mode: sandbox or production",
    )
    ENVIRONMENT: DeploymentEnvironment = Field(
        default=DeploymentEnvironment.DEVELOPMENT,
        description="Deployment tier; anything but production forces sandbox",
    )
    BLOCK_PRODUCTION: bool = Field(
        default=False,
        description="Force sandbox mode regardless of MODE",
    )
    PRODUCTION_CONFIRMED: bool = Field(
        default=False,
        description="Second switch required before live insurer traffic is sent",
    )

    # =========================================================================
    # Sandbox Simulation
    # =========================================================================
    RESPONSE_DELAY_MS: int = Field(
        default=2000,
        ge=0,
        description="Base simulated insurer latency",
    )
    RESPONSE_JITTER_MS: int = Field(
        default=1000,
        ge=0,
        description="Upper bound of random latency added to the base delay",
    )
    ERROR_RATE: float = Field(
        default=0.05,
        ge=0.0,
        le=1.0,
        description="Probability of a simulated transport error per sandbox call",
    )
    SANDBOX_PREFIX: str = Field(
        default="SANDBOX",
        description="Prefix for every identifier generated in sandbox mode",
    )

    # =========================================================================
    # Network Isolation
    # =========================================================================
    NETWORK_ALLOWLIST: str = Field(
        default=DEFAULT_ALLOWLIST,
        description="Comma-separated hostname prefixes allowed in sandbox mode",
    )
    STRICT_ALLOWLIST: bool = Field(
        default=False,
        description="Block every host that is not loopback or allow-listed",
    )
    BLOCKED_ATTEMPTS_MAX: int = Field(
        default=1000,
        ge=1,
        description="Blocked attempts kept in memory before the oldest is dropped",
    )
    AUDIT_ENABLED: bool = Field(
        default=True,
        description="Write audit events for EDI operations",
    )

    # =========================================================================
    # Connectors
    # =========================================================================
    CONNECTOR_TIMEOUT_SECONDS: float = Field(
        default=30.0,
        gt=0,
        description="Timeout for a single connector or gateway call",
    )
    CONNECTOR_SIMULATE: bool = Field(
        default=True,
        description="Use the deterministic carrier simulator when no endpoint is set",
    )
    NATIONAL_ECLAIMS_ENDPOINT: Optional[str] = Field(
        default=None,
        description="Base URL of the national eClaims hub",
    )
    DENTAL_NETWORK_ENDPOINT: Optional[str] = Field(
        default=None,
        description="Base URL of the dental network switch",
    )

    # =========================================================================
    # Submission Queue
    # =========================================================================
    QUEUE_STATE_PATH: str = Field(
        default="data/submission_queue.json",
        description="Path of the persisted job snapshot",
    )
    QUEUE_MAX_ATTEMPTS: int = Field(default=3, ge=1)
    QUEUE_BACKOFF_BASE_MS: int = Field(default=2000, ge=0)
    QUEUE_BACKOFF_MAX_MS: int = Field(default=300_000, ge=0)
    QUEUE_POLL_INTERVAL_SECONDS: float = Field(
        default=1.0,
        gt=0,
        description="How often the run loop looks for due jobs",
    )
    QUEUE_MAX_CONCURRENCY: int = Field(default=5, ge=1)

    # =========================================================================
    # Status Polling Scheduler
    # =========================================================================
    POLL_NATIONAL_ECLAIMS_SECONDS: float = Field(default=300.0, gt=0)
    POLL_DENTAL_NETWORK_SECONDS: float = Field(default=600.0, gt=0)
    POLL_PORTAL_SECONDS: float = Field(default=1800.0, gt=0)
    CLEANUP_INTERVAL_SECONDS: float = Field(default=86400.0, gt=0)
    JOB_RETENTION_HOURS: float = Field(default=24.0, gt=0)

    # =========================================================================
    # Logging
    # =========================================================================
    LOG_LEVEL: str = Field(default="INFO")
    LOG_JSON: bool = Field(default=False)
    LOG_FILE: Optional[str] = Field(default=None)

    @field_validator("SANDBOX_PREFIX")
    @classmethod
    def validate_prefix(cls, v: str) -> str:
        """Prefix becomes part of identifiers, keep it uppercase and non-empty."""
        v = v.strip().upper()
        if not v:
            raise ValueError("SANDBOX_PREFIX must not be empty")
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        valid = {"TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"}
        v = v.upper()
        if v not in valid:
            raise ValueError(f"LOG_LEVEL must be one of {sorted(valid)}")
        return v

    @property
    def allowlist_prefixes(self) -> list[str]:
        """Parsed allow-list, lowercase with empty entries dropped."""
        return [
            p.strip().lower() for p in self.NETWORK_ALLOWLIST.split(",") if p.strip()
        ]

    def resolve_mode(self) -> EDIMode:
        """
        Effective routing mode.

        Production is only honoured when requested, not blocked, and the
        deployment tier is production.
        """
        if self.BLOCK_PRODUCTION:
            return EDIMode.SANDBOX
        if self.ENVIRONMENT != DeploymentEnvironment.PRODUCTION:
            return EDIMode.SANDBOX
        return self.MODE

    @property
    def is_sandbox(self) -> bool:
        return self.resolve_mode() == EDIMode.SANDBOX


# Singleton instance
_edi_settings: Optional[EDISettings] = None


def get_edi_settings() -> EDISettings:
    """Get or create the pipeline settings singleton."""
    global _edi_settings
    if _edi_settings is None:
        _edi_settings = EDISettings()
    return _edi_settings


def reset_edi_settings() -> None:
    """Drop the cached settings (used after changing the environment)."""
    global _edi_settings
    _edi_settings = None
