# =====================================================
# FILE: contractflow/services/workflow_rules.py
# Contract status edge table and stage timestamps
# =====================================================

from typing import Dict, FrozenSet, Optional, Union

from contractflow.models.enums import ContractStatus, StepAction, SIGNING_ORDER, SigningStatus


class WorkflowRules:
    """
    Static rules of the contract state machine. The store consults these
    inside its transaction; callers may consult them for UI hints, never as
    a substitute for the store's answer.
    """

    # Valid status transitions
    STATUS_TRANSITIONS: Dict[ContractStatus, FrozenSet[ContractStatus]] = {
        ContractStatus.DRAFT: frozenset({ContractStatus.IN_REVIEW}),
        ContractStatus.IN_REVIEW: frozenset({ContractStatus.PENDING_APPROVAL}),
        ContractStatus.PENDING_APPROVAL: frozenset({
            ContractStatus.SENT_FOR_SIGNATURE,
            ContractStatus.IN_REVIEW,
        }),
        ContractStatus.SENT_FOR_SIGNATURE: frozenset({ContractStatus.FULLY_EXECUTED}),
        ContractStatus.FULLY_EXECUTED: frozenset({ContractStatus.ACTIVE}),
        ContractStatus.ACTIVE: frozenset({
            ContractStatus.EXPIRED,
            ContractStatus.TERMINATED,
            ContractStatus.SUPERSEDED,
            ContractStatus.IN_REVIEW,
        }),
        ContractStatus.EXPIRED: frozenset({ContractStatus.SUPERSEDED}),
        ContractStatus.TERMINATED: frozenset(),
        ContractStatus.SUPERSEDED: frozenset(),
        ContractStatus.ARCHIVED: frozenset(),
    }

    # Column stamped with the commit time when a status is entered
    STAGE_TIMESTAMPS: Dict[ContractStatus, Optional[str]] = {
        ContractStatus.DRAFT: None,
        ContractStatus.IN_REVIEW: "review_started_at",
        ContractStatus.PENDING_APPROVAL: "approval_started_at",
        ContractStatus.SENT_FOR_SIGNATURE: "sent_for_signature_at",
        ContractStatus.FULLY_EXECUTED: "executed_at",
        ContractStatus.ACTIVE: "active_at",
        ContractStatus.EXPIRED: "expired_at",
        ContractStatus.TERMINATED: "terminated_at",
        ContractStatus.SUPERSEDED: "superseded_at",
        ContractStatus.ARCHIVED: "archived_at",
    }

    # Written only by the supersession cascade, never requested directly
    CASCADE_ONLY_STATUSES = frozenset({ContractStatus.SUPERSEDED})

    # No outgoing edges, archiving included
    TERMINAL_STATUSES = frozenset({
        ContractStatus.TERMINATED,
        ContractStatus.SUPERSEDED,
        ContractStatus.ARCHIVED,
    })

    # Statuses in which a new version may be submitted for review
    VERSIONABLE_STATUSES = frozenset({
        ContractStatus.DRAFT,
        ContractStatus.IN_REVIEW,
        ContractStatus.PENDING_APPROVAL,
    })

    @staticmethod
    def parse_action(action: Union[str, ContractStatus, StepAction]) -> Union[ContractStatus, StepAction]:
        """Map the wire action name onto a status or a step pseudo-action"""
        value = action.value if hasattr(action, "value") else str(action)
        if value in StepAction.__members__:
            return StepAction(value)
        return ContractStatus(value)

    @staticmethod
    def validate_status_transition(
        current_status: ContractStatus,
        new_status: ContractStatus
    ) -> bool:
        """Check if status transition is valid"""
        if new_status == ContractStatus.ARCHIVED:
            return current_status not in WorkflowRules.TERMINAL_STATUSES
        allowed = WorkflowRules.STATUS_TRANSITIONS.get(current_status, frozenset())
        return new_status in allowed

    @staticmethod
    def signing_rank(status: Optional[Union[str, SigningStatus]]) -> int:
        """Position in the forward-only signing order; -1 when not started"""
        if status is None:
            return -1
        return SIGNING_ORDER.index(SigningStatus(status))
