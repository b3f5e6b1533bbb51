# =====================================================
# FILE: contractflow/models/contract.py
# Contract, versions, approval steps, allocations, comments
# =====================================================

from sqlalchemy import (
    Column, String, Boolean, DateTime, Date, Integer,
    ForeignKey, Text, Numeric, JSON, UniqueConstraint
)

from contractflow.core.database import Base
from contractflow.models.enums import ContractStatus, ApprovalStatus
from contractflow.utils.datetime_helpers import utcnow


class Contract(Base):
    """
    Normalized contract row. Child collections live in their own tables and
    are joined back by the aggregate assembler.
    """

    __tablename__ = "contracts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    company_id = Column(Integer, ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)

    title = Column(String(500), nullable=False)
    contract_type = Column(String(50))
    status = Column(String(50), nullable=False, default=ContractStatus.DRAFT.value, index=True)
    risk_level = Column(String(20))

    # Parties
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    counterparty_id = Column(Integer, ForeignKey("counterparties.id"), nullable=False)
    property_id = Column(Integer, ForeignKey("properties.id"), nullable=True)

    # Term and money
    effective_date = Column(Date)
    start_date = Column(Date)
    end_date = Column(Date, index=True)
    value = Column(Numeric(14, 2), default=0)
    frequency = Column(String(50))
    seasonal_months = Column(JSON)
    allocation_type = Column(String(50))

    # Stage timestamps
    submitted_at = Column(DateTime)
    review_started_at = Column(DateTime)
    approval_started_at = Column(DateTime)
    approval_completed_at = Column(DateTime)
    sent_for_signature_at = Column(DateTime)
    executed_at = Column(DateTime)
    active_at = Column(DateTime)
    expired_at = Column(DateTime)
    terminated_at = Column(DateTime)
    superseded_at = Column(DateTime)
    archived_at = Column(DateTime)

    draft_version_id = Column(Integer, nullable=True)
    executed_version_id = Column(Integer, nullable=True)

    # Renewal defaults
    auto_renew = Column(Boolean, default=False)
    notice_period_days = Column(Integer)
    renewal_term_months = Column(Integer)
    uplift_percent = Column(Numeric(6, 2))

    # Renewal lineage (successor -> predecessor)
    parent_contract_id = Column(Integer, ForeignKey("contracts.id"), nullable=True, index=True)

    signing_status = Column(String(50))
    signing_status_updated_at = Column(DateTime)

    created_by = Column(Integer, ForeignKey("users.id"))
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<Contract(id={self.id}, title='{self.title}', status='{self.status}')>"


class ContractVersion(Base):
    __tablename__ = "contract_versions"
    __table_args__ = (
        UniqueConstraint("contract_id", "version_number", name="uq_contract_version_number"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    company_id = Column(Integer, ForeignKey("companies.id", ondelete="CASCADE"), nullable=False)
    contract_id = Column(Integer, ForeignKey("contracts.id", ondelete="CASCADE"), nullable=False, index=True)
    version_number = Column(Integer, nullable=False)
    author_id = Column(Integer, ForeignKey("users.id"))
    content = Column(Text)
    file_name = Column(String(255))

    # Snapshot of the commercial terms at this version
    value = Column(Numeric(14, 2))
    effective_date = Column(Date)
    end_date = Column(Date)
    frequency = Column(String(50))
    seasonal_months = Column(JSON)
    property_id = Column(Integer, ForeignKey("properties.id"), nullable=True)

    created_at = Column(DateTime, default=utcnow)


class ApprovalStep(Base):
    __tablename__ = "approval_steps"

    id = Column(Integer, primary_key=True, autoincrement=True)
    company_id = Column(Integer, ForeignKey("companies.id", ondelete="CASCADE"), nullable=False)
    contract_id = Column(Integer, ForeignKey("contracts.id", ondelete="CASCADE"), nullable=False, index=True)
    approver_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    status = Column(String(20), nullable=False, default=ApprovalStatus.PENDING.value)
    approved_at = Column(DateTime)
    comment = Column(Text)
    created_at = Column(DateTime, default=utcnow)


class PropertyAllocation(Base):
    __tablename__ = "contract_property_allocations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    company_id = Column(Integer, ForeignKey("companies.id", ondelete="CASCADE"), nullable=False)
    contract_id = Column(Integer, ForeignKey("contracts.id", ondelete="CASCADE"), nullable=False, index=True)
    # NULL means portfolio-wide
    property_id = Column(Integer, ForeignKey("properties.id"), nullable=True)
    monthly_values = Column(JSON)
    manual_edits = Column(JSON)
    allocated_value = Column(Numeric(14, 2))
    created_at = Column(DateTime, default=utcnow)


class Comment(Base):
    __tablename__ = "comments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    company_id = Column(Integer, ForeignKey("companies.id", ondelete="CASCADE"), nullable=False)
    version_id = Column(Integer, ForeignKey("contract_versions.id", ondelete="CASCADE"), nullable=False, index=True)
    author_id = Column(Integer, ForeignKey("users.id"))
    content = Column(Text, nullable=False)
    resolved_at = Column(DateTime)
    created_at = Column(DateTime, default=utcnow)
