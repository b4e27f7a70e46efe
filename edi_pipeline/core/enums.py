"""
Core Enumerations for the Claim Submission Pipeline.
"""

from enum import Enum


# =============================================================================
# Deployment Enums
# =============================================================================


class EDIMode(str, Enum):
    """Routing mode for insurer traffic."""

    SANDBOX = "sandbox"  # Mock adjudication, production hosts blocked
    PRODUCTION = "production"  # Live insurer connectors


class DeploymentEnvironment(str, Enum):
    """Deployment tier the process runs in."""

    DEVELOPMENT = "development"
    TESTING = "testing"
    STAGING = "staging"
    PRODUCTION = "production"


# =============================================================================
# Insurer / Claim Enums
# =============================================================================


class Rail(str, Enum):
    """Insurer communication rail."""

    PORTAL = "portal"  # Manual upload to a workers' comp style portal
    DENTAL_NETWORK = "dental_network"  # Dental EDI network (CDAnet style)
    NATIONAL_ECLAIMS = "national_eclaims"  # National health eClaims hub


class ClaimType(str, Enum):
    """Kind of submission."""

    CLAIM = "claim"
    PREAUTH = "preauth"


class ClaimStatus(str, Enum):
    """Claim lifecycle status as stored by claim storage."""

    DRAFT = "draft"
    SUBMITTED = "submitted"
    PENDING = "pending"
    PROCESSING = "processing"
    INFO_REQUESTED = "info_requested"
    PAID = "paid"
    DENIED = "denied"


# Statuses that still expect an adjudication change from the insurer
IN_FLIGHT_CLAIM_STATUSES = frozenset(
    {
        ClaimStatus.SUBMITTED,
        ClaimStatus.PENDING,
        ClaimStatus.PROCESSING,
        ClaimStatus.INFO_REQUESTED,
    }
)


class AdjudicationStatus(str, Enum):
    """Status reported by an insurer (or the mock generator)."""

    SUBMITTED = "submitted"
    PENDING = "pending"
    PROCESSING = "processing"
    INFO_REQUESTED = "info_requested"
    PAID = "paid"
    DENIED = "denied"

    def to_claim_status(self) -> ClaimStatus:
        """Map an insurer answer onto the stored claim status."""
        return ClaimStatus(self.value)


# =============================================================================
# Queue Enums
# =============================================================================


class JobState(str, Enum):
    """Submission job state machine."""

    QUEUED = "queued"
    RUNNING = "running"
    RETRYING = "retrying"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobState.SUCCEEDED, JobState.FAILED)


class ConnectorErrorCode(str, Enum):
    """Normalized failure codes across all rails."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    AUTH_ERROR = "AUTH_ERROR"
    TRANSPORT_ERROR = "TRANSPORT_ERROR"
    TIMEOUT = "TIMEOUT"
    RATE_LIMIT = "RATE_LIMIT"
    PAYER_REJECT = "PAYER_REJECT"
    DUPLICATE = "DUPLICATE"
    SECURITY_VIOLATION = "SECURITY_VIOLATION"
    UNKNOWN = "UNKNOWN"


RETRIABLE_ERROR_CODES = frozenset(
    {
        ConnectorErrorCode.TRANSPORT_ERROR,
        ConnectorErrorCode.TIMEOUT,
        ConnectorErrorCode.RATE_LIMIT,
    }
)


# =============================================================================
# Audit Enums
# =============================================================================


class AuditEventType(str, Enum):
    """Audit event types written by the pipeline."""

    EDI_SUBMIT_CLAIM = "edi_submit_claim"
    EDI_POLL_STATUS = "edi_poll_status"
    EDI_VALIDATE_CLAIM = "edi_validate_claim"
    EDI_ERROR_SUBMIT_CLAIM = "edi_error_submit_claim"
    EDI_ERROR_POLL_STATUS = "edi_error_poll_status"
    EDI_PRODUCTION_BLOCKED = "edi_production_blocked"
    EDI_SANDBOX_SUBMISSION = "edi_sandbox_submission"
    EDI_SANDBOX_ERROR = "edi_sandbox_error"
    CLAIM_STATUS_POLLED = "claim_status_polled"
