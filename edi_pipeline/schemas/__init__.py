"""Pydantic schemas for the submission pipeline."""

from edi_pipeline.schemas.audit import (
    AttemptDetails,
    AuditDetails,
    AuditEvent,
    BlockedDetails,
    ErrorDetails,
    SandboxErrorDetails,
    SandboxSubmissionDetails,
    StatusChangeDetails,
)
from edi_pipeline.schemas.claim import ActorIdentity, ClaimRecord, ClaimUpdate, Insurer, ProcedureCode
from edi_pipeline.schemas.edi import (
    AdjudicationResponse,
    AuthorizationDetails,
    BlockedAttempt,
    DenialDetails,
    InfoRequestDetails,
    PaymentDetails,
    ProcessingDetails,
    RemittanceAdvice,
    ValidationResult,
)
from edi_pipeline.schemas.job import JobSnapshot, SubmissionJob

__all__ = [
    "ActorIdentity",
    "AdjudicationResponse",
    "AttemptDetails",
    "AuditDetails",
    "AuditEvent",
    "AuthorizationDetails",
    "BlockedAttempt",
    "BlockedDetails",
    "ClaimRecord",
    "ClaimUpdate",
    "DenialDetails",
    "ErrorDetails",
    "InfoRequestDetails",
    "Insurer",
    "JobSnapshot",
    "PaymentDetails",
    "ProcedureCode",
    "ProcessingDetails",
    "RemittanceAdvice",
    "SandboxErrorDetails",
    "SandboxSubmissionDetails",
    "StatusChangeDetails",
    "SubmissionJob",
    "ValidationResult",
]
