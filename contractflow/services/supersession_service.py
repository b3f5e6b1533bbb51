# =====================================================
# FILE: contractflow/services/supersession_service.py
# Predecessor -> SUPERSEDED once its renewal successor is ACTIVE
# =====================================================

from typing import Dict, Iterable, List
import logging

from tenacity import RetryCallState, RetryError, Retrying, retry_if_exception_type, stop_after_attempt

from contractflow.core.config import Settings, settings as default_settings
from contractflow.core.context import RequestContext
from contractflow.core.exceptions import CascadingUpdateError
from contractflow.models.enums import ContractStatus, EntityType, NotificationType
from contractflow.schemas.aggregate import ContractAggregate

logger = logging.getLogger(__name__)

# Parent statuses from which supersession is still possible
SUPERSEDABLE = (ContractStatus.ACTIVE, ContractStatus.EXPIRED)


class SupersessionService:
    """
    Compensating side of the cascade. The store first attempts the parent
    update inside the successor's own commit; when that fails this service
    retries it in separate transactions and, on load, reconciles any ACTIVE
    successor whose parent was left behind.
    """

    def __init__(self, store, notifier, attempts: int = None, config: Settings = None):
        config = config or default_settings
        self.store = store
        self.notifier = notifier
        self.attempts = attempts or config.CASCADE_RETRY_ATTEMPTS

    def complete(
        self,
        context: RequestContext,
        successor_id: int,
        parent_id: int,
        reason: str,
        owner_id: int = None
    ) -> bool:
        """Retry the cascade; a final failure is logged as a consistency warning"""

        def log_failure(retry_state: RetryCallState):
            logger.warning(
                f" Supersession retry {retry_state.attempt_number}/{self.attempts} for contract {parent_id} "
                f"failed: {retry_state.outcome.exception().reason}"
            )

        retrying = Retrying(
            stop=stop_after_attempt(self.attempts),
            retry=retry_if_exception_type(CascadingUpdateError),
            after=log_failure
        )
        try:
            retrying(self.store.supersede_parent, context.company_id, parent_id, successor_id, context.user_id)
        except RetryError as e:
            error = CascadingUpdateError(successor_id, parent_id, e.last_attempt.exception().reason or reason)
            logger.warning(f" Consistency warning: {error}")
            return False

        self.notify_superseded(context, successor_id, parent_id, owner_id)
        return True

    def notify_superseded(self, context: RequestContext, successor_id: int, parent_id: int, owner_id: int = None):
        self.notifier.emit(
            owner_id or context.user_id,
            NotificationType.STATUS_CHANGE,
            f"Contract #{parent_id} was superseded by its renewal #{successor_id}",
            EntityType.CONTRACT.value,
            parent_id
        )

    def pending_cascades(self, aggregates: Iterable[ContractAggregate]) -> Dict[int, int]:
        """successor id -> parent id for every ACTIVE successor whose parent is not yet SUPERSEDED"""
        by_id = {aggregate.id: aggregate for aggregate in aggregates}
        pending = {}
        for aggregate in by_id.values():
            if aggregate.status != ContractStatus.ACTIVE or not aggregate.parent_contract_id:
                continue
            parent = by_id.get(aggregate.parent_contract_id)
            if parent is not None and parent.status in SUPERSEDABLE:
                pending[aggregate.id] = parent.id
        return pending

    def reconcile(self, context: RequestContext, aggregates: Iterable[ContractAggregate]) -> List[int]:
        """Re-apply missed cascades; returns the ids of parents that were superseded"""
        aggregates = list(aggregates)
        owners = {aggregate.id: aggregate.owner.id for aggregate in aggregates}
        superseded = []
        for successor_id, parent_id in sorted(self.pending_cascades(aggregates).items()):
            logger.warning(f" Contract {successor_id} is ACTIVE but parent {parent_id} is not superseded; reconciling")
            if self.complete(context, successor_id, parent_id, "parent left behind by an earlier activation", owners.get(parent_id)):
                superseded.append(parent_id)
        return superseded
