# =====================================================
# FILE: contractflow/models/enums.py
# Lifecycle vocabularies shared by store, services and API
# =====================================================

from enum import Enum


class ContractStatus(str, Enum):
    DRAFT = "DRAFT"
    IN_REVIEW = "IN_REVIEW"
    PENDING_APPROVAL = "PENDING_APPROVAL"
    SENT_FOR_SIGNATURE = "SENT_FOR_SIGNATURE"
    FULLY_EXECUTED = "FULLY_EXECUTED"
    ACTIVE = "ACTIVE"
    EXPIRED = "EXPIRED"
    TERMINATED = "TERMINATED"
    SUPERSEDED = "SUPERSEDED"
    ARCHIVED = "ARCHIVED"


class StepAction(str, Enum):
    APPROVE_STEP = "APPROVE_STEP"
    REJECT_STEP = "REJECT_STEP"


class ApprovalStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class SigningStatus(str, Enum):
    AWAITING_INTERNAL = "AWAITING_INTERNAL"
    SENT_TO_COUNTERPARTY = "SENT_TO_COUNTERPARTY"
    VIEWED_BY_COUNTERPARTY = "VIEWED_BY_COUNTERPARTY"
    SIGNED_BY_COUNTERPARTY = "SIGNED_BY_COUNTERPARTY"


# Forward-only order of the signing sub-machine
SIGNING_ORDER = [
    SigningStatus.AWAITING_INTERNAL,
    SigningStatus.SENT_TO_COUNTERPARTY,
    SigningStatus.VIEWED_BY_COUNTERPARTY,
    SigningStatus.SIGNED_BY_COUNTERPARTY,
]


class RenewalStatus(str, Enum):
    QUEUED = "QUEUED"
    IN_PROGRESS = "IN_PROGRESS"
    ACTIVATED = "ACTIVATED"
    CANCELLED = "CANCELLED"


OPEN_RENEWAL_STATUSES = (RenewalStatus.QUEUED.value, RenewalStatus.IN_PROGRESS.value)


class RenewalMode(str, Enum):
    NEW_CONTRACT = "NEW_CONTRACT"
    RENEW_AS_IS = "RENEW_AS_IS"
    AMENDMENT = "AMENDMENT"
    TERMINATE = "TERMINATE"


class ContractType(str, Enum):
    NDA = "NDA"
    MSA = "MSA"
    SOW = "SOW"
    VENDOR = "Vendor"
    EMPLOYMENT = "Employment"
    LEASE = "Lease"
    SAAS = "SaaS"
    OTHER = "Other"


class RiskLevel(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"


class NotificationType(str, Enum):
    STATUS_CHANGE = "STATUS_CHANGE"
    APPROVAL_REQUEST = "APPROVAL_REQUEST"
    SIGNING_UPDATE = "SIGNING_UPDATE"
    RENEWAL_UPDATE = "RENEWAL_UPDATE"
    RENEWAL_REMINDER = "RENEWAL_REMINDER"


class EntityType(str, Enum):
    CONTRACT = "contract"
    RENEWAL_REQUEST = "renewal_request"
