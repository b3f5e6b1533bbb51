# =====================================================
# FILE: contractflow/models/audit.py
# Audit Log Model for tracking lifecycle actions
# =====================================================

from sqlalchemy import Column, String, Integer, ForeignKey, Text, DateTime, JSON

from contractflow.core.database import Base
from contractflow.utils.datetime_helpers import utcnow


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    company_id = Column(Integer, ForeignKey("companies.id", ondelete="CASCADE"), nullable=False)
    contract_id = Column(Integer, ForeignKey("contracts.id", ondelete="CASCADE"), index=True)
    user_id = Column(Integer, ForeignKey("users.id"))
    entity_type = Column(String(50), nullable=False)  # contract, renewal_request
    entity_id = Column(Integer)
    action_type = Column(String(50), nullable=False)  # status_change, signing_update, ...
    old_value = Column(Text)
    new_value = Column(Text)
    action_details = Column(JSON)
    created_at = Column(DateTime, default=utcnow, nullable=False)
