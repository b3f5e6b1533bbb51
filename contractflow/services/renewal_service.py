# =====================================================
# FILE: contractflow/services/renewal_service.py
# Renewal Workflow Engine: requests, decisions, renew-as-is, successors
# =====================================================

from datetime import date
from decimal import Decimal
from typing import Any, Dict, Optional, Tuple
import logging

from contractflow.core.config import Settings, settings as default_settings
from contractflow.core.context import RequestContext
from contractflow.core.exceptions import RemoteTransitionError, StepFailure, ValidationError
from contractflow.models.contract import Contract
from contractflow.models.enums import (
    ContractStatus,
    EntityType,
    NotificationType,
    OPEN_RENEWAL_STATUSES,
    RenewalMode,
    RenewalStatus,
)
from contractflow.models.renewal import RenewalRequest
from contractflow.schemas.aggregate import ContractAggregate, RenewalRequestView
from contractflow.schemas.requests import RenegotiationResult, RenewalTermsUpdate, StepOutcome
from contractflow.utils.datetime_helpers import add_days, add_months, apply_uplift, to_day

logger = logging.getLogger(__name__)

# Renewal requests are raised while the contract is still running
RENEWABLE_STATUSES = (ContractStatus.ACTIVE,)

# Decision modes handled by decide_renewal; the other two have dedicated operations
DECISION_TRANSITIONS = {
    RenewalMode.AMENDMENT: (ContractStatus.IN_REVIEW, RenewalStatus.IN_PROGRESS),
    RenewalMode.TERMINATE: (ContractStatus.TERMINATED, RenewalStatus.CANCELLED),
}


class RenewalService:
    """Renewal requests and the four ways a contract can be carried past its end date"""

    def __init__(self, store, state_machine, notifier, config: Settings = None):
        self.store = store
        self.state_machine = state_machine
        self.notifier = notifier
        self.config = config or default_settings

    # =====================================================
    # TERMS & DEADLINES
    # =====================================================

    def resolve_terms(self, contract: ContractAggregate) -> Tuple[int, Decimal, int]:
        """
        Term months, uplift percent and notice days: the open renewal request
        wins, then the contract's own stored defaults, then configuration.
        """
        request = contract.renewal_request
        term = (request.renewal_term_months if request else None) or contract.renewal_term_months \
            or self.config.DEFAULT_RENEWAL_TERM_MONTHS
        uplift = request.uplift_percent if request and request.uplift_percent is not None else None
        if uplift is None:
            uplift = contract.uplift_percent if contract.uplift_percent is not None else self.config.DEFAULT_UPLIFT_PERCENT
        notice = (request.notice_period_days if request else None) or contract.notice_period_days \
            or self.config.DEFAULT_NOTICE_PERIOD_DAYS
        return int(term), Decimal(str(uplift)), int(notice)

    def compute_deadlines(self, end_date: date, notice_period_days: Optional[int] = None) -> Tuple[date, date]:
        """(notice deadline, internal decision deadline)"""
        notice_days = notice_period_days or self.config.DEFAULT_NOTICE_PERIOD_DAYS
        notice_deadline = add_days(to_day(end_date), -notice_days)
        internal_deadline = add_days(notice_deadline, -self.config.INTERNAL_DECISION_LEAD_DAYS)
        return notice_deadline, internal_deadline

    @staticmethod
    def compute_renew_as_is(end_date: date, value, term_months: int, uplift_percent) -> Tuple[date, Decimal]:
        return add_months(to_day(end_date), term_months), apply_uplift(value, uplift_percent)

    @staticmethod
    def compute_successor_terms(end_date: date, value, term_months: int, uplift_percent) -> Tuple[date, date, Decimal]:
        """(effective date, end date, value) of a NEW_CONTRACT successor"""
        effective = add_days(to_day(end_date), 1)
        return effective, add_months(effective, term_months), apply_uplift(value, uplift_percent)

    # =====================================================
    # REQUESTS
    # =====================================================

    @staticmethod
    def undecided_request(contract: ContractAggregate, request_id: Optional[int] = None) -> RenewalRequestView:
        """The contract's open renewal request, provided no mode has been chosen on it yet"""
        request = contract.renewal_request
        if request is None or request.status.value not in OPEN_RENEWAL_STATUSES:
            if request_id is None:
                raise ValidationError(f"Contract {contract.id} has no open renewal request")
            raise ValidationError(f"Renewal request {request_id} is not open")
        if request_id is not None and request.id != request_id:
            raise ValidationError(f"Renewal request {request_id} is not open")
        if request.mode is not None:
            raise ValidationError(
                f"Renewal request {request.id} was already decided as {request.mode.value}"
            )
        return request

    def create_renewal_request(self, context: RequestContext, contract: ContractAggregate) -> RenewalRequest:
        context.require()
        if contract.status not in RENEWABLE_STATUSES:
            raise ValidationError(
                f"Contract {contract.id} is {contract.status.value}; only ACTIVE contracts can be renewed"
            )
        if contract.renewal_request is not None and contract.renewal_request.status.value in OPEN_RENEWAL_STATUSES:
            raise ValidationError(f"Contract {contract.id} already has an open renewal request")
        if contract.end_date is None:
            raise ValidationError(f"Contract {contract.id} has no end date to renew from")

        notice_days = contract.notice_period_days or self.config.DEFAULT_NOTICE_PERIOD_DAYS
        notice_deadline, internal_deadline = self.compute_deadlines(contract.end_date, notice_days)
        request = self.store.insert_renewal_request(context.company_id, contract.id, context.user_id, {
            "renewal_owner_id": contract.owner.id,
            "uplift_percent": contract.uplift_percent if contract.uplift_percent is not None else Decimal("0"),
            "renewal_term_months": contract.renewal_term_months,
            "notice_period_days": contract.notice_period_days,
            "notice_deadline": notice_deadline,
            "internal_decision_deadline": internal_deadline,
        })
        self._notify(contract.owner.id, f"Renewal of '{contract.title}' queued; notice deadline {notice_deadline}", request.id)
        return request

    def decide_renewal(
        self,
        context: RequestContext,
        contract: ContractAggregate,
        request_id: int,
        mode: RenewalMode,
        notes: Optional[str] = None
    ) -> RenewalRequest:
        """AMENDMENT reopens the contract for review; TERMINATE ends it and cancels the request"""
        context.require()
        mode = RenewalMode(mode)
        if mode not in DECISION_TRANSITIONS:
            raise ValidationError(
                f"Mode {mode.value} has its own operation and cannot be used as a renewal decision"
            )
        self.undecided_request(contract, request_id)

        contract_status, request_status = DECISION_TRANSITIONS[mode]
        self.state_machine.transition(context, contract.id, contract_status.value, {"reason": f"renewal_{mode.value.lower()}"})
        try:
            updated = self.store.update_renewal_request(context.company_id, request_id, {
                "status": request_status.value,
                "mode": mode.value,
                "notes": notes,
            }, context.user_id, action_type="renewal_decided", require_undecided=True)
        except RemoteTransitionError as e:
            failure = StepFailure("update_renewal_request", e.message)
            logger.error(
                f" Contract {contract.id} moved to {contract_status.value} but renewal request "
                f"{request_id} was not updated: {failure}"
            )
            raise failure from e
        self._notify(contract.owner.id, f"Renewal decision for '{contract.title}': {mode.value}", request_id)
        return updated

    def renew_as_is(self, context: RequestContext, contract: ContractAggregate, notes: Optional[str] = None) -> Tuple[Contract, RenewalRequest]:
        context.require()
        request = self.undecided_request(contract)
        if contract.end_date is None:
            raise ValidationError(f"Contract {contract.id} has no end date to renew from")

        term, uplift, _ = self.resolve_terms(contract)
        new_end_date, new_value = self.compute_renew_as_is(contract.end_date, contract.value, term, uplift)
        updated_contract, updated_request = self.store.apply_renew_as_is(
            context.company_id, contract.id, request.id, new_end_date, new_value, notes, context.user_id
        )
        self._notify(
            contract.owner.id,
            f"'{contract.title}' renewed as-is until {new_end_date} at {new_value}",
            request.id
        )
        return updated_contract, updated_request

    def start_renegotiation(self, context: RequestContext, contract: ContractAggregate, notes: Optional[str] = None) -> RenegotiationResult:
        """
        Create the NEW_CONTRACT successor as a sequence of separately committed
        steps. The successor insert must succeed; later steps are attempted
        regardless and each outcome is reported.
        """
        context.require()
        request = self.undecided_request(contract)
        if contract.end_date is None:
            raise ValidationError(f"Contract {contract.id} has no end date to renew from")

        term, uplift, notice = self.resolve_terms(contract)
        effective, end, value = self.compute_successor_terms(contract.end_date, contract.value, term, uplift)
        result = RenegotiationResult()

        successor = self.store.insert_successor_contract(context.company_id, context.user_id, {
            "title": f"[RENEWAL] {contract.title}",
            "contract_type": contract.contract_type,
            "risk_level": contract.risk_level,
            "owner_id": contract.owner.id,
            "counterparty_id": contract.counterparty.id,
            "property_id": contract.property.id if contract.property else None,
            "effective_date": effective,
            "start_date": effective,
            "end_date": end,
            "value": value,
            "frequency": contract.frequency,
            "seasonal_months": contract.seasonal_months,
            "allocation_type": contract.allocation_type,
            "auto_renew": contract.auto_renew,
            "notice_period_days": notice,
            "renewal_term_months": term,
            "uplift_percent": uplift,
            "parent_contract_id": contract.id,
        })
        result.successor_id = successor.id
        result.steps.append(StepOutcome(step="create_contract", ok=True))

        latest = contract.latest_version()
        self._run_step(result, "copy_version", lambda: self.store.insert_initial_version(
            context.company_id, successor.id, context.user_id, {
                "content": latest.content if latest else "",
                "file_name": latest.file_name if latest else None,
                "value": value,
                "effective_date": effective,
                "end_date": end,
                "frequency": contract.frequency,
                "seasonal_months": contract.seasonal_months,
                "property_id": contract.property.id if contract.property else None,
            }
        ))

        allocations = [
            {
                "property_id": allocation.property_id,
                "monthly_values": allocation.monthly_values,
                "manual_edits": allocation.manual_edits,
                "allocated_value": allocation.allocated_value,
            }
            for allocation in contract.property_allocations
        ]
        if allocations:
            self._run_step(result, "copy_allocations", lambda: self.store.insert_allocations(
                context.company_id, successor.id, allocations
            ))

        self._run_step(result, "update_renewal_request", lambda: self.store.update_renewal_request(
            context.company_id, request.id, {
                "status": RenewalStatus.IN_PROGRESS.value,
                "mode": RenewalMode.NEW_CONTRACT.value,
                "notes": notes,
            }, context.user_id, action_type="renegotiation_started", require_undecided=True
        ))

        if result.ok:
            logger.info(f" Renegotiation of contract {contract.id} created draft {successor.id}")
        else:
            logger.warning(
                f" Renegotiation of contract {contract.id} created draft {successor.id} "
                f"with failed steps: {', '.join(result.failed_steps)}"
            )
        self.notifier.emit(
            contract.owner.id,
            NotificationType.RENEWAL_UPDATE,
            f"Renewal draft '{successor.title}' created for '{contract.title}'",
            EntityType.CONTRACT.value,
            successor.id
        )
        return result

    @staticmethod
    def _run_step(result: RenegotiationResult, step: str, operation):
        try:
            operation()
        except Exception as e:
            failure = StepFailure(step, str(e))
            logger.error(f" {failure}")
            result.steps.append(StepOutcome(step=step, ok=False, error=failure.reason))
            return
        result.steps.append(StepOutcome(step=step, ok=True))

    def update_renewal_terms(self, context: RequestContext, request_id: int, terms: RenewalTermsUpdate) -> RenewalRequest:
        context.require()
        values: Dict[str, Any] = {
            "renewal_term_months": terms.renewal_term_months,
            "notice_period_days": terms.notice_period_days,
            "uplift_percent": terms.uplift_percent,
        }
        return self.store.update_renewal_request(
            context.company_id, request_id, values, context.user_id,
            action_type="renewal_terms_updated"
        )

    def _notify(self, user_id: int, message: str, request_id: int):
        self.notifier.emit(
            user_id,
            NotificationType.RENEWAL_UPDATE,
            message,
            EntityType.RENEWAL_REQUEST.value,
            request_id
        )
