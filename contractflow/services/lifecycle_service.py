# =====================================================
# FILE: contractflow/services/lifecycle_service.py
# Coordinator exposing every lifecycle operation to the API and scheduler
# =====================================================

from datetime import date
from typing import Callable, List, Optional, Tuple
import logging

from contractflow.core.config import Settings, settings as default_settings
from contractflow.core.context import RequestContext
from contractflow.core.exceptions import NotFoundError, StepFailure, ValidationError
from contractflow.models.enums import EntityType, NotificationType, RenewalMode, SigningStatus
from contractflow.models.notification import Notification
from contractflow.models.party import Counterparty, Property
from contractflow.schemas.aggregate import ContractAggregate
from contractflow.schemas.requests import (
    ContractCreateRequest,
    CounterpartyCreateRequest,
    PropertyCreateRequest,
    RenegotiationResult,
    RenewalTermsUpdate,
    VersionSubmitRequest,
)
from contractflow.services.aggregate_assembler import AggregateAssembler
from contractflow.services.approval_service import ApprovalService
from contractflow.services.contract_repository import ContractRepository
from contractflow.services.contract_store import ContractStore
from contractflow.services.expiry_sweeper import ExpirySweeper
from contractflow.services.notification_service import (
    DatabaseNotificationChannel,
    EmailNotificationChannel,
    NotificationDispatcher,
)
from contractflow.services.renewal_service import RenewalService
from contractflow.services.signing_service import SigningService
from contractflow.services.state_machine import ContractStateMachine
from contractflow.services.supersession_service import SupersessionService
from contractflow.utils.datetime_helpers import add_days, to_day

logger = logging.getLogger(__name__)


def build_notifier(store: ContractStore, config: Settings = None) -> NotificationDispatcher:
    """In-app notifications plus an email copy"""

    def user_email(user_id: int) -> Optional[str]:
        user = store.get_user(user_id)
        return user.email if user else None

    return NotificationDispatcher(
        [DatabaseNotificationChannel(store), EmailNotificationChannel(user_email, config)],
        config=config
    )


class LifecycleService:
    """
    Owns the contract cache and wires the state machine, approval and signing
    sub-machines, renewal engine, assembler and expiry sweeper together. Every
    write refreshes the affected aggregates from the store afterwards.
    """

    def __init__(
        self,
        store: ContractStore = None,
        notifier=None,
        config: Settings = None,
        clock: Callable = None
    ):
        self.config = config or default_settings
        self.store = store or ContractStore()
        self.notifier = notifier or build_notifier(self.store, self.config)
        self.clock = clock or self.store.clock

        self.supersession = SupersessionService(self.store, self.notifier, config=self.config)
        self.state_machine = ContractStateMachine(self.store, self.notifier, self.supersession)
        self.approvals = ApprovalService(self.state_machine)
        self.signing = SigningService(self.store, self.notifier)
        self.renewals = RenewalService(self.store, self.state_machine, self.notifier, self.config)
        self.assembler = AggregateAssembler(self.store, config=self.config)
        self.repository = ContractRepository(self.assembler)
        self.sweeper = ExpirySweeper(self.state_machine, clock=self.clock, config=self.config)

    # =====================================================
    # LOADING
    # =====================================================

    def load_aggregates(self, context: RequestContext) -> List[ContractAggregate]:
        """Assemble the company's contracts, expire overdue ones and reconcile supersession"""
        context.require()
        aggregates = self.assembler.assemble(context.company_id)
        self.sweeper.sweep(context, aggregates)
        superseded = self.supersession.reconcile(context, aggregates)
        self.repository.replace(context.company_id, aggregates)
        for parent_id in superseded:
            self.repository.refresh(context.company_id, parent_id)
        return self.repository.list_contracts(context.company_id)

    def get_contract(self, context: RequestContext, contract_id: int) -> ContractAggregate:
        context.require()
        aggregate = self.repository.get(context.company_id, contract_id)
        if aggregate is None:
            aggregate = self.repository.refresh(context.company_id, contract_id)
        if aggregate is None:
            raise NotFoundError(f"Contract {contract_id} not found")
        return aggregate

    def _refresh(self, context: RequestContext, contract_id: int) -> ContractAggregate:
        aggregate = self.repository.refresh(context.company_id, contract_id)
        if aggregate is None:
            raise NotFoundError(f"Contract {contract_id} not found")
        return aggregate

    def _contract_for_request(self, context: RequestContext, request_id: int) -> ContractAggregate:
        context.require()
        aggregate = self.repository.find_by_renewal_request(context.company_id, request_id)
        if aggregate is None:
            request = self.store.get_renewal_request(context.company_id, request_id)
            aggregate = self._refresh(context, request.contract_id)
        return aggregate

    # =====================================================
    # CONTRACTS
    # =====================================================

    def create_contract(self, context: RequestContext, data: ContractCreateRequest) -> ContractAggregate:
        context.require()
        owner_id = data.owner_id or context.user_id
        if not owner_id:
            raise ValidationError("A contract owner is required")
        if not data.counterparty_id:
            raise ValidationError("A counterparty is required")

        fields = data.model_dump(exclude={"content", "file_name", "property_allocations"})
        fields["owner_id"] = owner_id
        contract = self.store.create_contract(
            context.company_id,
            context.user_id,
            fields,
            content=data.content,
            file_name=data.file_name,
            allocations=[a.model_dump() for a in data.property_allocations]
        )
        return self._refresh(context, contract.id)

    def submit_version(self, context: RequestContext, contract_id: int, data: VersionSubmitRequest) -> ContractAggregate:
        context.require()
        contract, version = self.store.submit_version(
            context.company_id, contract_id, context.user_id, data.model_dump()
        )
        self.notifier.emit(
            contract.owner_id,
            NotificationType.STATUS_CHANGE,
            f"Version {version.version_number} of '{contract.title}' submitted for review",
            EntityType.CONTRACT.value,
            contract.id
        )
        return self._refresh(context, contract_id)

    def transition(self, context: RequestContext, contract_id: int, action: str, payload: Optional[dict] = None) -> ContractAggregate:
        outcome = self.state_machine.transition(context, contract_id, action, payload)
        if outcome.superseded_parent_id:
            self.repository.refresh(context.company_id, outcome.superseded_parent_id)
        return self._refresh(context, contract_id)

    def request_approval(self, context: RequestContext, contract_id: int, approver_ids: List[int]) -> ContractAggregate:
        self.approvals.request_approval(context, contract_id, approver_ids)
        return self._refresh(context, contract_id)

    def approve_step(self, context: RequestContext, contract_id: int, step_id: Optional[int] = None, comment: Optional[str] = None) -> ContractAggregate:
        self.approvals.approve_step(context, contract_id, step_id, comment)
        return self._refresh(context, contract_id)

    def reject_step(self, context: RequestContext, contract_id: int, step_id: Optional[int] = None, comment: Optional[str] = None) -> ContractAggregate:
        self.approvals.reject_step(context, contract_id, step_id, comment)
        return self._refresh(context, contract_id)

    def update_signing_status(self, context: RequestContext, contract_id: int, signing_status: SigningStatus) -> ContractAggregate:
        aggregate = self.get_contract(context, contract_id)
        if self.signing.update_signing_status(context, aggregate, signing_status) is None:
            return aggregate
        return self._refresh(context, contract_id)

    # =====================================================
    # RENEWALS
    # =====================================================

    def create_renewal_request(self, context: RequestContext, contract_id: int) -> ContractAggregate:
        aggregate = self.get_contract(context, contract_id)
        self.renewals.create_renewal_request(context, aggregate)
        return self._refresh(context, contract_id)

    def decide_renewal(self, context: RequestContext, request_id: int, mode: RenewalMode, notes: Optional[str] = None) -> ContractAggregate:
        aggregate = self._contract_for_request(context, request_id)
        try:
            self.renewals.decide_renewal(context, aggregate, request_id, mode, notes)
        except StepFailure:
            # The contract transition committed even though the request update did not
            self.repository.refresh(context.company_id, aggregate.id)
            raise
        return self._refresh(context, aggregate.id)

    def renew_as_is(self, context: RequestContext, contract_id: int, notes: Optional[str] = None) -> ContractAggregate:
        aggregate = self.get_contract(context, contract_id)
        self.renewals.renew_as_is(context, aggregate, notes)
        return self._refresh(context, contract_id)

    def start_renegotiation(
        self,
        context: RequestContext,
        contract_id: int,
        notes: Optional[str] = None
    ) -> Tuple[RenegotiationResult, Optional[ContractAggregate]]:
        aggregate = self.get_contract(context, contract_id)
        result = self.renewals.start_renegotiation(context, aggregate, notes)
        self._refresh(context, contract_id)
        successor = self.repository.refresh(context.company_id, result.successor_id)
        return result, successor

    def update_renewal_terms(self, context: RequestContext, request_id: int, terms: RenewalTermsUpdate) -> ContractAggregate:
        aggregate = self._contract_for_request(context, request_id)
        self.renewals.update_renewal_terms(context, request_id, terms)
        return self._refresh(context, aggregate.id)

    # =====================================================
    # COUNTERPARTIES & PROPERTIES
    # =====================================================

    def list_counterparties(self, context: RequestContext) -> List[Counterparty]:
        context.require()
        return self.store.fetch_counterparties(context.company_id)

    def create_counterparty(self, context: RequestContext, data: CounterpartyCreateRequest) -> Counterparty:
        context.require()
        return self.store.create_counterparty(context.company_id, data.model_dump())

    def list_properties(self, context: RequestContext) -> List[Property]:
        context.require()
        return self.store.fetch_properties(context.company_id)

    def create_property(self, context: RequestContext, data: PropertyCreateRequest) -> Property:
        context.require()
        return self.store.create_property(context.company_id, data.model_dump())

    # =====================================================
    # COMMENTS & FEEDBACK
    # =====================================================

    def add_comment(self, context: RequestContext, contract_id: int, version_id: int, content: str) -> ContractAggregate:
        aggregate = self.get_contract(context, contract_id)
        if version_id not in {v.id for v in aggregate.versions}:
            raise NotFoundError(f"Version {version_id} not found on contract {contract_id}")
        self.store.add_comment(context.company_id, version_id, context.user_id, content)
        return self._refresh(context, contract_id)

    def resolve_comment(self, context: RequestContext, comment_id: int, resolved: bool = True) -> ContractAggregate:
        context.require()
        _, contract_id = self.store.resolve_comment(context.company_id, comment_id, resolved)
        return self._refresh(context, contract_id)

    def add_renewal_feedback(self, context: RequestContext, request_id: int, feedback: str) -> ContractAggregate:
        aggregate = self._contract_for_request(context, request_id)
        self.store.add_feedback(context.company_id, request_id, context.user_id, feedback)
        return self._refresh(context, aggregate.id)

    # =====================================================
    # NOTIFICATIONS & REMINDERS
    # =====================================================

    def list_notifications(self, context: RequestContext, limit: int = 50) -> List[Notification]:
        context.require()
        return self.store.fetch_notifications(context.user_id, limit)

    def mark_notifications_read(self, context: RequestContext, notification_ids: Optional[List[int]] = None) -> int:
        context.require()
        return self.store.mark_notifications_read(context.user_id, notification_ids)

    def send_renewal_reminders(self, today: Optional[date] = None) -> int:
        """Remind owners of ACTIVE contracts ending in exactly N days, once per N"""
        today = today or to_day(self.clock())
        sent = 0
        for days in self.config.RENEWAL_REMINDER_DAYS:
            marker = f"ends in {days} days"
            for contract in self.store.fetch_active_contracts_ending_on(add_days(today, days)):
                if self.store.notification_exists(
                    contract.owner_id, NotificationType.RENEWAL_REMINDER.value, contract.id, marker
                ):
                    continue
                self.notifier.emit(
                    contract.owner_id,
                    NotificationType.RENEWAL_REMINDER,
                    f"Contract '{contract.title}' {marker} ({contract.end_date})",
                    EntityType.CONTRACT.value,
                    contract.id
                )
                sent += 1
        logger.info(f"Renewal reminder check complete. {sent} reminders sent.")
        return sent

    def sweep_all_companies(self) -> int:
        """Scheduled load + sweep for every active company"""
        swept = 0
        for company_id in self.store.list_company_ids():
            self.load_aggregates(RequestContext.system(company_id))
            swept += 1
        return swept

    def shutdown(self):
        self.notifier.shutdown()
