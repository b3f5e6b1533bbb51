# =====================================================
# FILE: contractflow/models/party.py
# Counterparties and Properties referenced by contracts
# =====================================================

from sqlalchemy import Column, String, DateTime, Integer, ForeignKey

from contractflow.core.database import Base
from contractflow.utils.datetime_helpers import utcnow


class Counterparty(Base):
    __tablename__ = "counterparties"

    id = Column(Integer, primary_key=True, autoincrement=True)
    company_id = Column(Integer, ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    counterparty_type = Column(String(50))
    city = Column(String(100))
    country = Column(String(100))
    contact_name = Column(String(255))
    contact_email = Column(String(255))
    created_at = Column(DateTime, default=utcnow)


class Property(Base):
    __tablename__ = "properties"

    id = Column(Integer, primary_key=True, autoincrement=True)
    company_id = Column(Integer, ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    address_line1 = Column(String(255))
    city = Column(String(100))
    country = Column(String(100))
    created_at = Column(DateTime, default=utcnow)
