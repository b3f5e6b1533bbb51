# =====================================================
# FILE: contractflow/models/renewal.py
# Renewal requests and the feedback collected on them
# =====================================================

from sqlalchemy import Column, String, DateTime, Date, Integer, ForeignKey, Text, Numeric

from contractflow.core.database import Base
from contractflow.models.enums import RenewalStatus
from contractflow.utils.datetime_helpers import utcnow


class RenewalRequest(Base):
    __tablename__ = "renewal_requests"

    id = Column(Integer, primary_key=True, autoincrement=True)
    company_id = Column(Integer, ForeignKey("companies.id", ondelete="CASCADE"), nullable=False)
    contract_id = Column(Integer, ForeignKey("contracts.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(String(20), nullable=False, default=RenewalStatus.QUEUED.value, index=True)
    # NULL until decided
    mode = Column(String(20), nullable=True)
    renewal_term_months = Column(Integer)
    notice_period_days = Column(Integer)
    uplift_percent = Column(Numeric(6, 2))
    notice_deadline = Column(Date)
    internal_decision_deadline = Column(Date)
    notes = Column(Text)
    renewal_owner_id = Column(Integer, ForeignKey("users.id"))
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<RenewalRequest(id={self.id}, contract_id={self.contract_id}, status='{self.status}')>"


class RenewalFeedback(Base):
    __tablename__ = "renewal_feedback"

    id = Column(Integer, primary_key=True, autoincrement=True)
    company_id = Column(Integer, ForeignKey("companies.id", ondelete="CASCADE"), nullable=False)
    renewal_request_id = Column(Integer, ForeignKey("renewal_requests.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"))
    feedback = Column(Text, nullable=False)
    created_at = Column(DateTime, default=utcnow)
