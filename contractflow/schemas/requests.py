# =====================================================
# FILE: contractflow/schemas/requests.py
# Request / response bodies for lifecycle operations
# =====================================================

from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from contractflow.models.enums import ContractType, RenewalMode, RiskLevel, SigningStatus


# =====================================================
# CONTRACT CREATION & VERSIONS
# =====================================================

class AllocationInput(BaseModel):
    property_id: Optional[int] = Field(None, description="None for a portfolio-wide allocation")
    monthly_values: Optional[Dict[str, Any]] = None
    manual_edits: Optional[Dict[str, Any]] = None
    allocated_value: Optional[Decimal] = None


class ContractCreateRequest(BaseModel):
    """New contract, created in DRAFT together with version 1"""
    title: str = Field(..., min_length=3, max_length=500)
    contract_type: Optional[str] = None
    risk_level: Optional[str] = None
    owner_id: Optional[int] = None
    counterparty_id: Optional[int] = None
    property_id: Optional[int] = None

    effective_date: Optional[date] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    value: Decimal = Field(Decimal("0"), ge=0)
    frequency: Optional[str] = None
    seasonal_months: Optional[List[int]] = None
    allocation_type: Optional[str] = None

    auto_renew: bool = False
    notice_period_days: Optional[int] = Field(None, ge=0, le=3650)
    renewal_term_months: Optional[int] = Field(None, ge=1, le=240)
    uplift_percent: Optional[Decimal] = None

    content: str = ""
    file_name: Optional[str] = None
    property_allocations: List[AllocationInput] = Field(default_factory=list)

    @field_validator("title")
    @classmethod
    def validate_title(cls, v):
        if not v or v.strip() == '':
            raise ValueError('Contract title cannot be empty')
        return v.strip()

    @field_validator("contract_type")
    @classmethod
    def validate_contract_type(cls, v):
        if v is not None and v not in {t.value for t in ContractType}:
            raise ValueError(f"Unknown contract type '{v}'")
        return v

    @field_validator("risk_level")
    @classmethod
    def validate_risk_level(cls, v):
        if v is not None and v not in {r.value for r in RiskLevel}:
            raise ValueError(f"Unknown risk level '{v}'")
        return v

    @field_validator("end_date")
    @classmethod
    def validate_end_date(cls, v, info):
        effective = info.data.get("effective_date")
        if v and effective and v < effective:
            raise ValueError('End date must not be before effective date')
        return v


class VersionSubmitRequest(BaseModel):
    """A new version entering review; its snapshot overwrites the contract terms"""
    content: str
    file_name: Optional[str] = None
    value: Optional[Decimal] = Field(None, ge=0)
    effective_date: Optional[date] = None
    end_date: Optional[date] = None
    frequency: Optional[str] = None
    seasonal_months: Optional[List[int]] = None
    property_id: Optional[int] = None


# =====================================================
# TRANSITIONS
# =====================================================

class TransitionRequest(BaseModel):
    action: str = Field(..., description="A ContractStatus value, APPROVE_STEP or REJECT_STEP")
    payload: Dict[str, Any] = Field(default_factory=dict)


class SigningStatusRequest(BaseModel):
    signing_status: SigningStatus


# =====================================================
# RENEWALS
# =====================================================

class RenewalDecisionRequest(BaseModel):
    mode: RenewalMode
    notes: Optional[str] = None


class RenewalNotesRequest(BaseModel):
    notes: Optional[str] = None


class RenewalTermsUpdate(BaseModel):
    renewal_term_months: int = Field(..., ge=1, le=240)
    notice_period_days: int = Field(..., ge=0, le=3650)
    uplift_percent: Decimal = Field(..., ge=-100, le=1000)


class StepOutcome(BaseModel):
    step: str
    ok: bool
    error: Optional[str] = None


class RenegotiationResult(BaseModel):
    """Outcome of the best-effort successor creation sequence"""
    successor_id: Optional[int] = None
    steps: List[StepOutcome] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return all(step.ok for step in self.steps)

    @property
    def failed_steps(self) -> List[str]:
        return [step.step for step in self.steps if not step.ok]


# =====================================================
# COMMENTS & FEEDBACK
# =====================================================

class CommentCreateRequest(BaseModel):
    content: str = Field(..., min_length=1)


class CommentResolveRequest(BaseModel):
    resolved: bool = True


class FeedbackCreateRequest(BaseModel):
    feedback: str = Field(..., min_length=1)


# =====================================================
# SWEEP
# =====================================================

class SweepReport(BaseModel):
    expired: List[int] = Field(default_factory=list)
    failures: Dict[int, str] = Field(default_factory=dict)


# =====================================================
# APPROVALS
# =====================================================

class ApprovalRequestBody(BaseModel):
    approver_ids: List[int] = Field(..., min_length=1)


class StepDecisionRequest(BaseModel):
    step_id: Optional[int] = None
    comment: Optional[str] = None


# =====================================================
# COUNTERPARTIES & PROPERTIES
# =====================================================

class CounterpartyCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    counterparty_type: Optional[str] = Field(None, max_length=50)
    city: Optional[str] = Field(None, max_length=100)
    country: Optional[str] = Field(None, max_length=100)
    contact_name: Optional[str] = Field(None, max_length=255)
    contact_email: Optional[str] = Field(None, max_length=255)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        if not v.strip():
            raise ValueError('Counterparty name cannot be empty')
        return v.strip()


class PropertyCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    address_line1: Optional[str] = Field(None, max_length=255)
    city: Optional[str] = Field(None, max_length=100)
    country: Optional[str] = Field(None, max_length=100)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        if not v.strip():
            raise ValueError('Property name cannot be empty')
        return v.strip()


class CounterpartyView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    counterparty_type: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None
    contact_name: Optional[str] = None
    contact_email: Optional[str] = None


class PropertyView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    address_line1: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None


# =====================================================
# NOTIFICATIONS
# =====================================================

class NotificationView(BaseModel):
    id: int
    notification_type: Optional[str] = None
    message: Optional[str] = None
    related_entity_type: Optional[str] = None
    related_entity_id: Optional[int] = None
    is_read: bool = False
    created_at: Optional[str] = None


class NotificationReadRequest(BaseModel):
    notification_ids: Optional[List[int]] = None
