"""
Audit Event Schemas.

Audit details are a closed set of variants discriminated by ``kind``.
"""

from datetime import datetime, timezone
from typing import Annotated, Any, Literal, Optional, Union
from uuid import uuid4

from pydantic import BaseModel, Field

from edi_pipeline.core.enums import AdjudicationStatus, AuditEventType, ConnectorErrorCode, EDIMode, Rail


class _DetailsBase(BaseModel):
    context: dict[str, Any] = Field(
        default_factory=dict,
        description="Free-form diagnostic data",
    )


class AttemptDetails(_DetailsBase):
    """An EDI operation is about to be dispatched."""

    kind: Literal["attempt"] = "attempt"
    operation: str
    mode: EDIMode
    claim_id: Optional[str] = None
    external_id: Optional[str] = None
    insurer_name: Optional[str] = None
    rail: Optional[Rail] = None


class ErrorDetails(_DetailsBase):
    """An EDI operation failed."""

    kind: Literal["error"] = "error"
    operation: str
    error: str
    error_code: ConnectorErrorCode = ConnectorErrorCode.UNKNOWN
    claim_id: Optional[str] = None
    external_id: Optional[str] = None


class BlockedDetails(_DetailsBase):
    """Network isolation refused an outbound request."""

    kind: Literal["blocked"] = "blocked"
    url: str
    hostname: str
    method: str
    reason: str


class SandboxSubmissionDetails(_DetailsBase):
    """A mock adjudication was produced."""

    kind: Literal["sandbox_submission"] = "sandbox_submission"
    claim_id: Optional[str] = None
    external_id: str
    insurer_name: str
    rail: Rail
    status: AdjudicationStatus


class SandboxErrorDetails(_DetailsBase):
    """A simulated transport error was injected."""

    kind: Literal["sandbox_error"] = "sandbox_error"
    claim_id: Optional[str] = None
    insurer_name: Optional[str] = None
    message: str


class StatusChangeDetails(_DetailsBase):
    """Polling changed a claim's stored status."""

    kind: Literal["status_change"] = "status_change"
    claim_id: str
    external_id: str
    previous_status: str
    new_status: str
    changed_fields: list[str] = Field(default_factory=list)


AuditDetails = Annotated[
    Union[
        AttemptDetails,
        ErrorDetails,
        BlockedDetails,
        SandboxSubmissionDetails,
        SandboxErrorDetails,
        StatusChangeDetails,
    ],
    Field(discriminator="kind"),
]


class AuditEvent(BaseModel):
    """Audit event record."""

    event_id: str = Field(default_factory=lambda: str(uuid4()))
    org_id: Optional[str] = None
    actor_user_id: Optional[str] = None
    type: AuditEventType
    details: AuditDetails
    ip: Optional[str] = None
    user_agent: Optional[str] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
