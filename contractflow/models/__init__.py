# =====================================================
# FILE: contractflow/models/__init__.py
# =====================================================

from contractflow.core.database import Base

from contractflow.models.user import User, Company
from contractflow.models.party import Counterparty, Property
from contractflow.models.contract import (
    Contract,
    ContractVersion,
    ApprovalStep,
    PropertyAllocation,
    Comment,
)
from contractflow.models.renewal import RenewalRequest, RenewalFeedback
from contractflow.models.audit import AuditLog
from contractflow.models.notification import Notification

__all__ = [
    # Core
    "Base",

    # User & Company
    "User",
    "Company",

    # Parties
    "Counterparty",
    "Property",

    # Contract
    "Contract",
    "ContractVersion",
    "ApprovalStep",
    "PropertyAllocation",
    "Comment",

    # Renewal
    "RenewalRequest",
    "RenewalFeedback",

    # Audit & Notifications
    "AuditLog",
    "Notification",
]
