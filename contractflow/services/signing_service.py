# =====================================================
# FILE: contractflow/services/signing_service.py
# Signing sub-machine (forward-only while SENT_FOR_SIGNATURE)
# =====================================================

from typing import Optional
import logging

from contractflow.core.context import RequestContext
from contractflow.core.exceptions import ValidationError
from contractflow.models.enums import ContractStatus, EntityType, NotificationType, SigningStatus
from contractflow.models.contract import Contract
from contractflow.schemas.aggregate import ContractAggregate
from contractflow.services.workflow_rules import WorkflowRules

logger = logging.getLogger(__name__)


class SigningService:
    """
    AWAITING_INTERNAL -> SENT_TO_COUNTERPARTY -> VIEWED_BY_COUNTERPARTY ->
    SIGNED_BY_COUNTERPARTY. Backward writes are refused locally, repeated
    writes are no-ops. Reaching SIGNED_BY_COUNTERPARTY leaves the contract
    status alone; FULLY_EXECUTED is a separate transition.
    """

    def __init__(self, store, notifier):
        self.store = store
        self.notifier = notifier

    def update_signing_status(self, context: RequestContext, aggregate: ContractAggregate, new_status) -> Optional[Contract]:
        context.require()
        try:
            new_status = SigningStatus(new_status)
        except ValueError:
            raise ValidationError(f"Unknown signing status '{new_status}'")

        if aggregate.status != ContractStatus.SENT_FOR_SIGNATURE:
            raise ValidationError(
                f"Contract {aggregate.id} is {aggregate.status.value}; signing status only changes while SENT_FOR_SIGNATURE"
            )

        current = aggregate.signing_status
        if current == new_status:
            logger.info(f" Contract {aggregate.id} already {new_status.value}; nothing to do")
            return None

        if WorkflowRules.signing_rank(new_status) < WorkflowRules.signing_rank(current):
            raise ValidationError(
                f"Signing status cannot move backward from {current.value} to {new_status.value}"
            )

        contract = self.store.update_signing_status(
            context.company_id, aggregate.id, new_status, current, context.user_id
        )
        self.notifier.emit(
            aggregate.owner.id,
            NotificationType.SIGNING_UPDATE,
            f"Signing status of '{aggregate.title}' is now {new_status.value}",
            EntityType.CONTRACT.value,
            aggregate.id
        )
        return contract
