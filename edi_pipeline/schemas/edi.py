"""
Pydantic Schemas for EDI Submission and Adjudication.

Provides the normalized shapes shared by every rail:
- claim validation results
- adjudication responses (submit and poll)
- blocked outbound attempts
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, Field

from edi_pipeline.core.enums import AdjudicationStatus, ClaimType, Rail


# =============================================================================
# Validation
# =============================================================================


class ValidationResult(BaseModel):
    """Result of rail-specific claim validation."""

    valid: bool = Field(..., description="Whether the claim can be submitted")
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    @classmethod
    def from_errors(cls, errors: list[str], warnings: Optional[list[str]] = None) -> "ValidationResult":
        return cls(valid=not errors, errors=errors, warnings=warnings or [])


# =============================================================================
# Adjudication Details
# =============================================================================


class PaymentDetails(BaseModel):
    """Payment breakdown for an approved claim."""

    approved_amount: Decimal
    paid_amount: Decimal
    deductible: Decimal
    coinsurance: Decimal
    payment_method: str = "EFT"
    payment_date: date


class RemittanceAdvice(BaseModel):
    """Remittance advice accompanying a payment."""

    statement_number: str
    cheque_number: str
    procedure_code: str
    billed: Decimal
    allowed: Decimal
    deductible: Decimal
    coinsurance: Decimal
    copayment: Decimal = Decimal("0.00")
    paid: Decimal
    patient_responsibility: Decimal


class DenialDetails(BaseModel):
    """Why a claim was denied and how to appeal."""

    reason: str
    code: str
    appeal_deadline: date
    appeal_instructions: str


class InfoRequestDetails(BaseModel):
    """Documents the insurer needs before adjudicating."""

    requested_items: list[str]
    due_date: date
    contact_phone: str
    contact_email: str


class ProcessingDetails(BaseModel):
    """Progress of a claim still under review."""

    current_stage: str
    percent_complete: int = Field(..., ge=0, le=100)
    estimated_completion: date


class AuthorizationDetails(BaseModel):
    """Pre-authorization grant."""

    authorization_number: str
    valid_until: date
    authorized_services: list[str]
    max_authorized_amount: Decimal
    restrictions: list[str] = Field(default_factory=list)


# =============================================================================
# Adjudication Response
# =============================================================================


class AdjudicationResponse(BaseModel):
    """
    Normalized insurer answer for a submission or status poll.

    Sandbox responses and live connector responses share this shape.
    """

    external_id: str
    status: AdjudicationStatus
    claim_id: Optional[str] = None
    claim_type: ClaimType = ClaimType.CLAIM
    insurer_name: Optional[str] = None
    rail: Optional[Rail] = None
    message: Optional[str] = None
    submission_id: Optional[str] = None
    reference_number: Optional[str] = None

    payment: Optional[PaymentDetails] = None
    remittance_advice: Optional[RemittanceAdvice] = None
    denial: Optional[DenialDetails] = None
    info_request: Optional[InfoRequestDetails] = None
    processing: Optional[ProcessingDetails] = None
    authorization: Optional[AuthorizationDetails] = None

    rail_details: dict[str, Any] = Field(default_factory=dict)
    processing_time_ms: Optional[int] = None

    environment: str = "PRODUCTION"
    sandbox: bool = False
    warning: Optional[str] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    raw: dict[str, Any] = Field(default_factory=dict)


# =============================================================================
# Network Isolation
# =============================================================================


class BlockedAttempt(BaseModel):
    """Outbound request refused by network isolation."""

    timestamp: datetime
    url: str
    hostname: str
    method: str = "POST"
    org_id: Optional[str] = None
    user_id: Optional[str] = None
    reason: str
