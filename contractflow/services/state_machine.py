# =====================================================
# FILE: contractflow/services/state_machine.py
# Contract State Machine: validated transitions + side effects
# =====================================================

from typing import Any, Dict, Optional
import logging

from contractflow.core.context import RequestContext
from contractflow.core.exceptions import RemoteTransitionError, ValidationError
from contractflow.models.enums import (
    ContractStatus,
    EntityType,
    NotificationType,
    SigningStatus,
    StepAction,
)
from contractflow.services.contract_store import TransitionOutcome
from contractflow.services.workflow_rules import WorkflowRules

logger = logging.getLogger(__name__)


class ContractStateMachine:
    """
    Entry point for every status change. The store decides; this layer
    checks the request, then fires notifications and the supersession
    follow-up once the commit has happened.
    """

    def __init__(self, store, notifier, supersession):
        self.store = store
        self.notifier = notifier
        self.supersession = supersession

    def transition(
        self,
        context: RequestContext,
        contract_id: int,
        action: str,
        payload: Optional[Dict[str, Any]] = None
    ) -> TransitionOutcome:
        context.require()
        try:
            parsed = WorkflowRules.parse_action(action)
        except ValueError:
            raise ValidationError(f"Unknown transition action '{action}'")
        if parsed in WorkflowRules.CASCADE_ONLY_STATUSES:
            raise ValidationError(
                f"{parsed.value} is set only when a renewal successor of contract {contract_id} is activated"
            )

        payload = self._normalize_payload(parsed, dict(payload or {}))

        try:
            outcome = self.store.transition(
                context.company_id, contract_id, parsed.value, payload, context.user_id
            )
        except RemoteTransitionError as e:
            logger.warning(f" Transition {parsed.value} rejected for contract {contract_id}: {e.message}")
            raise

        self._notify(outcome, parsed, payload)

        contract = outcome.contract
        if outcome.superseded_parent_id:
            self.supersession.notify_superseded(context, contract.id, outcome.superseded_parent_id, contract.owner_id)
        elif outcome.cascade_error:
            logger.warning(
                f" Contract {contract.id} activated but parent {contract.parent_contract_id} "
                f"was not superseded in the same commit: {outcome.cascade_error}"
            )
            if self.supersession.complete(context, contract.id, contract.parent_contract_id, outcome.cascade_error):
                outcome.superseded_parent_id = contract.parent_contract_id
        return outcome

    @staticmethod
    def _normalize_payload(action, payload: Dict[str, Any]) -> Dict[str, Any]:
        if action == ContractStatus.PENDING_APPROVAL:
            approvers = payload.get("approvers") or []
            try:
                payload["approvers"] = [
                    int(a["id"] if isinstance(a, dict) else a) for a in approvers
                ]
            except (KeyError, TypeError, ValueError):
                raise ValidationError("approvers must be a list of user ids")
        if payload.get("signing_status") is not None:
            try:
                payload["signing_status"] = SigningStatus(payload["signing_status"]).value
            except ValueError:
                raise ValidationError(f"Unknown signing status '{payload['signing_status']}'")
        if payload.get("step_id") is not None:
            try:
                payload["step_id"] = int(payload["step_id"])
            except (TypeError, ValueError):
                raise ValidationError("step_id must be an integer")
        return payload

    def _notify(self, outcome: TransitionOutcome, action, payload: Dict[str, Any]):
        contract = outcome.contract
        new_status = ContractStatus(contract.status)

        if isinstance(action, StepAction):
            verb = "approved" if action == StepAction.APPROVE_STEP else "rejected"
            self.notifier.emit(
                contract.owner_id,
                NotificationType.STATUS_CHANGE,
                f"An approval step on '{contract.title}' was {verb}",
                EntityType.CONTRACT.value,
                contract.id
            )

        if new_status == outcome.previous_status:
            return

        self.notifier.emit(
            contract.owner_id,
            NotificationType.STATUS_CHANGE,
            f"Contract '{contract.title}' moved from {outcome.previous_status.value} to {new_status.value}",
            EntityType.CONTRACT.value,
            contract.id
        )
        if new_status == ContractStatus.PENDING_APPROVAL:
            for approver_id in payload.get("approvers", []):
                self.notifier.emit(
                    approver_id,
                    NotificationType.APPROVAL_REQUEST,
                    f"Your approval is requested for '{contract.title}'",
                    EntityType.CONTRACT.value,
                    contract.id
                )
