# =====================================================
# FILE: contractflow/models/user.py
# Company and User models
# =====================================================

from sqlalchemy import Column, String, Boolean, DateTime, Integer, ForeignKey

from contractflow.core.database import Base
from contractflow.utils.datetime_helpers import utcnow


class Company(Base):
    __tablename__ = "companies"

    id = Column(Integer, primary_key=True, autoincrement=True)
    company_name = Column(String(255), nullable=False)
    slug = Column(String(100), unique=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=utcnow)


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    company_id = Column(Integer, ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    job_title = Column(String(100))
    department = Column(String(100))
    user_role = Column(String(100))
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=utcnow)

    @property
    def display_name(self) -> str:
        if self.first_name and self.last_name:
            return f"{self.first_name} {self.last_name}"
        return self.first_name or (self.email.split('@')[0] if self.email else "Unknown User")
