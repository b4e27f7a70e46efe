"""
Claim Schemas.

Claim records are owned by claim storage; the pipeline reads them and writes
back adjudication results through ``ClaimUpdate``.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from edi_pipeline.core.enums import ClaimStatus, ClaimType


class ProcedureCode(BaseModel):
    """Procedure or service code line on a claim."""

    code: str = Field(..., min_length=1, max_length=20)
    description: Optional[str] = None
    amount: Optional[Decimal] = Field(default=None, ge=0)


class Insurer(BaseModel):
    """Insurer directory record."""

    id: str
    name: str


class ActorIdentity(BaseModel):
    """Organization and user an EDI operation is performed for."""

    model_config = ConfigDict(frozen=True)

    org_id: str
    user_id: str = "system"
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


class ClaimRecord(BaseModel):
    """Claim as stored by claim storage."""

    id: str
    org_id: str
    insurer_id: str
    patient_id: Optional[str] = None
    provider_id: Optional[str] = None
    type: ClaimType = ClaimType.CLAIM
    amount: Decimal = Field(..., description="Billed amount")
    codes: list[ProcedureCode] = Field(default_factory=list)
    status: ClaimStatus = ClaimStatus.DRAFT

    # Written back by the pipeline
    external_id: Optional[str] = None
    submission_id: Optional[str] = None
    approved_amount: Optional[Decimal] = None
    paid_amount: Optional[Decimal] = None
    payment_date: Optional[date] = None
    denial_reason: Optional[str] = None
    denial_code: Optional[str] = None
    appeal_deadline: Optional[date] = None
    requested_information: list[str] = Field(default_factory=list)
    info_due_date: Optional[date] = None
    last_submission_error: Optional[str] = None
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class ClaimUpdate(BaseModel):
    """Partial update applied to a claim record; unset fields are left alone."""

    status: Optional[ClaimStatus] = None
    external_id: Optional[str] = None
    submission_id: Optional[str] = None
    approved_amount: Optional[Decimal] = None
    paid_amount: Optional[Decimal] = None
    payment_date: Optional[date] = None
    denial_reason: Optional[str] = None
    denial_code: Optional[str] = None
    appeal_deadline: Optional[date] = None
    requested_information: Optional[list[str]] = None
    info_due_date: Optional[date] = None
    last_submission_error: Optional[str] = None
    updated_at: Optional[datetime] = None

    def changes(self) -> dict:
        """Fields explicitly set on this update."""
        return self.model_dump(exclude_unset=True)
