# =====================================================
# FILE: contractflow/services/approval_service.py
# Approval sub-machine: request, approve and reject steps
# =====================================================

from typing import List, Optional
import logging

from contractflow.core.context import RequestContext
from contractflow.core.exceptions import ValidationError
from contractflow.models.enums import ApprovalStatus, ContractStatus, StepAction
from contractflow.schemas.aggregate import ContractAggregate
from contractflow.services.contract_store import TransitionOutcome

logger = logging.getLogger(__name__)


class ApprovalService:
    """
    Steps are created by IN_REVIEW -> PENDING_APPROVAL and resolved through
    the APPROVE_STEP / REJECT_STEP pseudo-actions. Approving the last pending
    step sends the contract for signature in the same commit; rejecting any
    step returns it to IN_REVIEW.
    """

    def __init__(self, state_machine):
        self.state_machine = state_machine

    def request_approval(self, context: RequestContext, contract_id: int, approver_ids: List[int]) -> TransitionOutcome:
        if not approver_ids:
            raise ValidationError("At least one approver is required")
        return self.state_machine.transition(
            context, contract_id, ContractStatus.PENDING_APPROVAL.value, {"approvers": list(approver_ids)}
        )

    def approve_step(
        self,
        context: RequestContext,
        contract_id: int,
        step_id: Optional[int] = None,
        comment: Optional[str] = None
    ) -> TransitionOutcome:
        return self._resolve(context, contract_id, StepAction.APPROVE_STEP, step_id, comment)

    def reject_step(
        self,
        context: RequestContext,
        contract_id: int,
        step_id: Optional[int] = None,
        comment: Optional[str] = None
    ) -> TransitionOutcome:
        return self._resolve(context, contract_id, StepAction.REJECT_STEP, step_id, comment)

    def _resolve(self, context, contract_id, action, step_id, comment) -> TransitionOutcome:
        payload = {}
        if step_id is not None:
            payload["step_id"] = step_id
        if comment:
            payload["comment"] = comment
        outcome = self.state_machine.transition(context, contract_id, action.value, payload)
        logger.info(f" {action.value} by user {context.user_id} on contract {contract_id}")
        return outcome

    @staticmethod
    def pending_steps_for(aggregate: ContractAggregate, user_id: int):
        """Steps still waiting on this user"""
        return [
            step for step in aggregate.approval_steps
            if step.approver.id == user_id and step.status == ApprovalStatus.PENDING
        ]

    @staticmethod
    def all_approved(aggregate: ContractAggregate) -> bool:
        return bool(aggregate.approval_steps) and all(
            step.status == ApprovalStatus.APPROVED for step in aggregate.approval_steps
        )
