# =====================================================
# FILE: contractflow/services/audit_service.py
# Service Layer for the Lifecycle Audit Trail
# =====================================================

from sqlalchemy.orm import Session
from datetime import datetime
from typing import Optional, Dict, Any
import logging

from contractflow.models.audit import AuditLog
from contractflow.models.enums import EntityType
from contractflow.utils.datetime_helpers import utcnow

logger = logging.getLogger(__name__)


class AuditService:
    """
    Writes audit rows into the caller's session. The row is committed (or
    rolled back) together with the write it describes.
    """

    def __init__(self, db: Session):
        self.db = db

    def log_action(
        self,
        company_id: int,
        action_type: str,
        user_id: Optional[int] = None,
        contract_id: Optional[int] = None,
        entity_type: str = EntityType.CONTRACT.value,
        entity_id: Optional[int] = None,
        old_value: Optional[str] = None,
        new_value: Optional[str] = None,
        action_details: Optional[Dict[str, Any]] = None,
        created_at: Optional[datetime] = None
    ) -> AuditLog:
        """
        Stage an audit log entry

        Returns:
            The pending AuditLog row
        """
        entry = AuditLog(
            company_id=company_id,
            contract_id=contract_id,
            user_id=user_id,
            entity_type=entity_type,
            entity_id=entity_id if entity_id is not None else contract_id,
            action_type=action_type,
            old_value=old_value,
            new_value=new_value,
            action_details=action_details or {},
            created_at=created_at or utcnow()
        )
        self.db.add(entry)
        logger.debug(f" Audit staged: {action_type} on {entity_type} {entry.entity_id} by user {user_id}")
        return entry


# =====================================================
# CONVENIENCE FUNCTIONS FOR COMMON ACTIONS
# =====================================================

def log_status_change(
    db: Session,
    company_id: int,
    contract_id: int,
    user_id: Optional[int],
    old_status: Optional[str],
    new_status: str,
    at: Optional[datetime] = None,
    details: Optional[Dict[str, Any]] = None
) -> AuditLog:
    """Audit a contract status edge"""
    return AuditService(db).log_action(
        company_id=company_id,
        action_type="status_change",
        user_id=user_id,
        contract_id=contract_id,
        old_value=old_status,
        new_value=new_status,
        action_details=details,
        created_at=at
    )


def log_renewal_action(
    db: Session,
    company_id: int,
    contract_id: int,
    renewal_request_id: int,
    user_id: Optional[int],
    action_type: str,
    old_status: Optional[str] = None,
    new_status: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
    at: Optional[datetime] = None
) -> AuditLog:
    """Audit a write against a renewal request"""
    return AuditService(db).log_action(
        company_id=company_id,
        action_type=action_type,
        user_id=user_id,
        contract_id=contract_id,
        entity_type=EntityType.RENEWAL_REQUEST.value,
        entity_id=renewal_request_id,
        old_value=old_status,
        new_value=new_status,
        action_details=details,
        created_at=at
    )
