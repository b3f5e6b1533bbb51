# =====================================================
# FILE: contractflow/schemas/aggregate.py
# Assembled Contract view (contract + every child collection)
# =====================================================

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from contractflow.models.enums import (
    ContractStatus,
    ApprovalStatus,
    RenewalStatus,
    RenewalMode,
    SigningStatus,
)


# =====================================================
# REFERENCE OBJECTS
# =====================================================

class UserRef(BaseModel):
    id: int
    name: str
    email: Optional[str] = None
    role: Optional[str] = None


class CounterpartyRef(BaseModel):
    id: int
    name: str
    counterparty_type: Optional[str] = None


class PropertyRef(BaseModel):
    id: int
    name: str
    city: Optional[str] = None


# =====================================================
# CHILD COLLECTIONS
# =====================================================

class CommentView(BaseModel):
    id: int
    version_id: int
    author: Optional[UserRef] = None
    content: str
    resolved_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class VersionView(BaseModel):
    id: int
    version_number: int
    author: Optional[UserRef] = None
    content: Optional[str] = None
    file_name: Optional[str] = None
    value: Optional[Decimal] = None
    effective_date: Optional[date] = None
    end_date: Optional[date] = None
    frequency: Optional[str] = None
    seasonal_months: Optional[List[int]] = None
    property: Optional[PropertyRef] = None
    comments: List[CommentView] = Field(default_factory=list)
    created_at: Optional[datetime] = None


class ApprovalStepView(BaseModel):
    id: int
    approver: UserRef
    status: ApprovalStatus
    approved_at: Optional[datetime] = None
    comment: Optional[str] = None


class AllocationView(BaseModel):
    id: int
    property_id: Optional[int] = None  # None = portfolio-wide
    property: Optional[PropertyRef] = None
    monthly_values: Optional[Dict[str, Any]] = None
    manual_edits: Optional[Dict[str, Any]] = None
    allocated_value: Optional[Decimal] = None


class FeedbackView(BaseModel):
    id: int
    renewal_request_id: int
    user: Optional[UserRef] = None
    feedback: str
    created_at: Optional[datetime] = None


class RenewalRequestView(BaseModel):
    id: int
    contract_id: int
    status: RenewalStatus
    mode: Optional[RenewalMode] = None
    renewal_term_months: Optional[int] = None
    notice_period_days: Optional[int] = None
    uplift_percent: Optional[Decimal] = None
    notice_deadline: Optional[date] = None
    internal_decision_deadline: Optional[date] = None
    notes: Optional[str] = None
    renewal_owner: Optional[UserRef] = None
    feedback: List[FeedbackView] = Field(default_factory=list)
    created_at: Optional[datetime] = None


class AuditEntryView(BaseModel):
    id: int
    user: Optional[UserRef] = None
    entity_type: str
    entity_id: Optional[int] = None
    action_type: str
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    created_at: Optional[datetime] = None


# =====================================================
# CONTRACT AGGREGATE
# =====================================================

class ContractAggregate(BaseModel):
    """A fully assembled contract: never carries a bare owner/counterparty/property id."""
    id: int
    company_id: int
    title: str
    contract_type: Optional[str] = None
    status: ContractStatus
    risk_level: Optional[str] = None

    owner: UserRef
    counterparty: CounterpartyRef
    property: Optional[PropertyRef] = None

    effective_date: Optional[date] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    value: Optional[Decimal] = None
    frequency: Optional[str] = None
    seasonal_months: Optional[List[int]] = None
    allocation_type: Optional[str] = None

    submitted_at: Optional[datetime] = None
    review_started_at: Optional[datetime] = None
    approval_started_at: Optional[datetime] = None
    approval_completed_at: Optional[datetime] = None
    sent_for_signature_at: Optional[datetime] = None
    executed_at: Optional[datetime] = None
    active_at: Optional[datetime] = None
    expired_at: Optional[datetime] = None
    terminated_at: Optional[datetime] = None
    superseded_at: Optional[datetime] = None
    archived_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    draft_version_id: Optional[int] = None
    executed_version_id: Optional[int] = None

    auto_renew: bool = False
    notice_period_days: Optional[int] = None
    renewal_term_months: Optional[int] = None
    uplift_percent: Optional[Decimal] = None
    parent_contract_id: Optional[int] = None

    signing_status: Optional[SigningStatus] = None
    signing_status_updated_at: Optional[datetime] = None

    versions: List[VersionView] = Field(default_factory=list)
    approval_steps: List[ApprovalStepView] = Field(default_factory=list)
    property_allocations: List[AllocationView] = Field(default_factory=list)
    renewal_request: Optional[RenewalRequestView] = None
    audit_logs: List[AuditEntryView] = Field(default_factory=list)

    def latest_version(self) -> Optional[VersionView]:
        return self.versions[-1] if self.versions else None
