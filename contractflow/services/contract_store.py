# =====================================================
# FILE: contractflow/services/contract_store.py
# Transactional store: company-scoped reads and atomic writes
# =====================================================

from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple
import logging

from sqlalchemy import func, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from contractflow.core.database import SessionLocal, session_scope
from contractflow.core.exceptions import (
    CascadingUpdateError,
    NotFoundError,
    RemoteTransitionError,
    ValidationError,
)
from contractflow.models.audit import AuditLog
from contractflow.models.contract import (
    ApprovalStep,
    Comment,
    Contract,
    ContractVersion,
    PropertyAllocation,
)
from contractflow.models.enums import (
    ApprovalStatus,
    ContractStatus,
    OPEN_RENEWAL_STATUSES,
    RenewalMode,
    RenewalStatus,
    SigningStatus,
    StepAction,
)
from contractflow.models.notification import Notification
from contractflow.models.party import Counterparty, Property
from contractflow.models.renewal import RenewalFeedback, RenewalRequest
from contractflow.models.user import Company, User
from contractflow.services.audit_service import AuditService, log_renewal_action, log_status_change
from contractflow.services.workflow_rules import WorkflowRules
from contractflow.utils.datetime_helpers import utcnow

logger = logging.getLogger(__name__)

# Columns a successor or new contract may be created with
CONTRACT_FIELDS = (
    "title", "contract_type", "risk_level", "owner_id", "counterparty_id", "property_id",
    "effective_date", "start_date", "end_date", "value", "frequency", "seasonal_months",
    "allocation_type", "auto_renew", "notice_period_days", "renewal_term_months",
    "uplift_percent", "parent_contract_id",
)

VERSION_SNAPSHOT_FIELDS = (
    "content", "file_name", "value", "effective_date", "end_date",
    "frequency", "seasonal_months", "property_id",
)


@dataclass
class TransitionOutcome:
    """Committed transition plus the state of the supersession side effect"""
    contract: Contract
    previous_status: ContractStatus
    superseded_parent_id: Optional[int] = None
    cascade_error: Optional[str] = None


class ContractStore:
    """
    The only component that talks to the database. Every public write is one
    session and one commit; status changes are compare-and-set updates on the
    observed status, so of two racing writers exactly one wins.
    """

    def __init__(self, session_factory: sessionmaker = None, clock: Callable[[], datetime] = utcnow):
        self.session_factory = session_factory or SessionLocal
        self.clock = clock

    # =====================================================
    # SESSION HELPERS
    # =====================================================

    @contextmanager
    def _write(self, contract_id: Optional[int] = None):
        try:
            with session_scope(self.session_factory) as db:
                yield db
        except SQLAlchemyError as e:
            raise RemoteTransitionError(f"Store write failed: {e}", contract_id) from e

    @contextmanager
    def _read(self):
        db = self.session_factory()
        try:
            yield db
        finally:
            db.close()

    @staticmethod
    def _get_contract(db: Session, company_id: int, contract_id: int) -> Contract:
        contract = db.query(Contract).filter(
            Contract.id == contract_id,
            Contract.company_id == company_id
        ).first()
        if not contract:
            raise NotFoundError(f"Contract {contract_id} not found")
        return contract

    @staticmethod
    def _get_renewal_request(db: Session, company_id: int, request_id: int) -> RenewalRequest:
        request = db.query(RenewalRequest).filter(
            RenewalRequest.id == request_id,
            RenewalRequest.company_id == company_id
        ).first()
        if not request:
            raise NotFoundError(f"Renewal request {request_id} not found")
        return request

    @staticmethod
    def _compare_and_set(db: Session, contract: Contract, expected: ContractStatus, values: Dict[str, Any]):
        """UPDATE ... WHERE status = <observed>; zero rows means someone else won"""
        result = db.execute(
            update(Contract)
            .where(Contract.id == contract.id, Contract.status == expected.value)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise RemoteTransitionError(
                f"Contract {contract.id} was modified concurrently (expected status {expected.value})",
                contract.id
            )

    # =====================================================
    # CONTRACT TRANSITIONS
    # =====================================================

    def transition(
        self,
        company_id: int,
        contract_id: int,
        action: str,
        payload: Optional[Dict[str, Any]] = None,
        actor_id: Optional[int] = None
    ) -> TransitionOutcome:
        """
        Validate the current status and apply the new one, its stage timestamp,
        side-effect rows and an audit entry as one commit.
        """
        payload = payload or {}
        try:
            parsed = WorkflowRules.parse_action(action)
        except ValueError:
            raise RemoteTransitionError(f"Unknown transition action '{action}'", contract_id)
        if parsed in WorkflowRules.CASCADE_ONLY_STATUSES:
            raise RemoteTransitionError(
                f"Contract {contract_id} can only be superseded by activating its renewal successor", contract_id
            )

        with self._write(contract_id) as db:
            contract = self._get_contract(db, company_id, contract_id)
            current = ContractStatus(contract.status)
            now = self.clock()
            outcome = TransitionOutcome(contract=contract, previous_status=current)

            if isinstance(parsed, StepAction):
                self._apply_step_action(db, contract, current, parsed, payload, actor_id, now)
            else:
                self._apply_status_edge(db, contract, current, parsed, payload, actor_id, now)
                if parsed == ContractStatus.ACTIVE and contract.parent_contract_id:
                    try:
                        self._supersede_parent(db, company_id, contract.parent_contract_id, contract.id, actor_id, now)
                        outcome.superseded_parent_id = contract.parent_contract_id
                    except CascadingUpdateError as e:
                        outcome.cascade_error = e.reason

            db.flush()
            db.refresh(contract)

        logger.info(f" Contract {contract_id}: {current.value} -> {contract.status} ({parsed.value})")
        return outcome

    def _apply_status_edge(
        self,
        db: Session,
        contract: Contract,
        current: ContractStatus,
        target: ContractStatus,
        payload: Dict[str, Any],
        actor_id: Optional[int],
        now: datetime
    ):
        if not WorkflowRules.validate_status_transition(current, target):
            raise RemoteTransitionError(
                f"Transition {current.value} -> {target.value} is not allowed",
                contract.id
            )

        values: Dict[str, Any] = {"status": target.value, "updated_at": now}
        stamp = WorkflowRules.STAGE_TIMESTAMPS[target]
        if stamp:
            values[stamp] = now

        if target == ContractStatus.IN_REVIEW and current == ContractStatus.DRAFT:
            values["submitted_at"] = contract.submitted_at or now

        elif target == ContractStatus.PENDING_APPROVAL:
            approver_ids = self._unique_ids(payload.get("approvers") or [])
            if not approver_ids:
                raise RemoteTransitionError("At least one approver is required", contract.id)
            try:
                self._require_users(db, contract.company_id, approver_ids)
            except NotFoundError as e:
                raise RemoteTransitionError(str(e), contract.id) from e
            db.query(ApprovalStep).filter(
                ApprovalStep.contract_id == contract.id
            ).delete(synchronize_session=False)
            for approver_id in approver_ids:
                db.add(ApprovalStep(
                    company_id=contract.company_id,
                    contract_id=contract.id,
                    approver_id=approver_id,
                    status=ApprovalStatus.PENDING.value,
                    created_at=now
                ))
            values["approval_completed_at"] = None

        elif target == ContractStatus.SENT_FOR_SIGNATURE:
            steps = db.query(ApprovalStep).filter(ApprovalStep.contract_id == contract.id).all()
            if not steps or any(step.status != ApprovalStatus.APPROVED.value for step in steps):
                raise RemoteTransitionError(
                    "All approval steps must be approved before sending for signature",
                    contract.id
                )
            values["approval_completed_at"] = contract.approval_completed_at or now
            values["signing_status"] = SigningStatus(
                payload.get("signing_status") or SigningStatus.AWAITING_INTERNAL
            ).value
            values["signing_status_updated_at"] = now

        elif target == ContractStatus.FULLY_EXECUTED:
            values["executed_version_id"] = contract.draft_version_id or self._latest_version_id(db, contract.id)

        self._compare_and_set(db, contract, current, values)
        log_status_change(
            db, contract.company_id, contract.id, actor_id,
            current.value, target.value, at=now,
            details={k: v for k, v in payload.items() if k in ("approvers", "signing_status", "reason")}
        )

    def _apply_step_action(
        self,
        db: Session,
        contract: Contract,
        current: ContractStatus,
        action: StepAction,
        payload: Dict[str, Any],
        actor_id: Optional[int],
        now: datetime
    ):
        if current != ContractStatus.PENDING_APPROVAL:
            raise RemoteTransitionError(
                f"Contract {contract.id} is not awaiting approval (status {current.value})",
                contract.id
            )

        step = self._resolve_step(db, contract, payload.get("step_id"), actor_id)
        if step.status != ApprovalStatus.PENDING.value:
            raise RemoteTransitionError(f"Approval step {step.id} is already {step.status}", contract.id)

        new_step_status = (
            ApprovalStatus.APPROVED if action == StepAction.APPROVE_STEP else ApprovalStatus.REJECTED
        )
        result = db.execute(
            update(ApprovalStep)
            .where(ApprovalStep.id == step.id, ApprovalStep.status == ApprovalStatus.PENDING.value)
            .values(status=new_step_status.value, approved_at=now, comment=payload.get("comment"))
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise RemoteTransitionError(f"Approval step {step.id} was resolved concurrently", contract.id)

        AuditService(db).log_action(
            company_id=contract.company_id,
            action_type="approval_step",
            user_id=actor_id,
            contract_id=contract.id,
            old_value=ApprovalStatus.PENDING.value,
            new_value=new_step_status.value,
            action_details={"step_id": step.id, "approver_id": step.approver_id},
            created_at=now
        )

        if new_step_status == ApprovalStatus.REJECTED:
            self._compare_and_set(db, contract, current, {
                "status": ContractStatus.IN_REVIEW.value,
                "review_started_at": now,
                "updated_at": now,
            })
            log_status_change(
                db, contract.company_id, contract.id, actor_id,
                current.value, ContractStatus.IN_REVIEW.value, at=now,
                details={"reason": "approval_rejected", "step_id": step.id}
            )
            return

        outstanding = db.query(func.count(ApprovalStep.id)).filter(
            ApprovalStep.contract_id == contract.id,
            ApprovalStep.status != ApprovalStatus.APPROVED.value
        ).scalar()
        if outstanding == 0:
            # Last approval moves the contract on within the same commit
            self._compare_and_set(db, contract, current, {
                "status": ContractStatus.SENT_FOR_SIGNATURE.value,
                "approval_completed_at": now,
                "sent_for_signature_at": now,
                "signing_status": SigningStatus.AWAITING_INTERNAL.value,
                "signing_status_updated_at": now,
                "updated_at": now,
            })
            log_status_change(
                db, contract.company_id, contract.id, actor_id,
                current.value, ContractStatus.SENT_FOR_SIGNATURE.value, at=now,
                details={"reason": "all_steps_approved"}
            )

    @staticmethod
    def _resolve_step(db: Session, contract: Contract, step_id: Optional[int], actor_id: Optional[int]) -> ApprovalStep:
        query = db.query(ApprovalStep).filter(ApprovalStep.contract_id == contract.id)
        if step_id is not None:
            step = query.filter(ApprovalStep.id == int(step_id)).first()
            if not step:
                raise RemoteTransitionError(f"Approval step {step_id} not found on contract {contract.id}", contract.id)
            return step
        step = query.filter(
            ApprovalStep.approver_id == actor_id,
            ApprovalStep.status == ApprovalStatus.PENDING.value
        ).order_by(ApprovalStep.id).first()
        if not step:
            raise RemoteTransitionError(
                f"User {actor_id} has no pending approval step on contract {contract.id}",
                contract.id
            )
        return step

    def _supersede_parent(
        self,
        db: Session,
        company_id: int,
        parent_id: int,
        successor_id: int,
        actor_id: Optional[int],
        now: datetime
    ):
        """Parent -> SUPERSEDED and its open renewal request -> ACTIVATED"""
        parent = db.query(Contract).filter(
            Contract.id == parent_id,
            Contract.company_id == company_id
        ).first()
        if not parent:
            raise CascadingUpdateError(successor_id, parent_id, "parent contract not found")

        current = ContractStatus(parent.status)
        if current == ContractStatus.SUPERSEDED:
            return
        if not WorkflowRules.validate_status_transition(current, ContractStatus.SUPERSEDED):
            raise CascadingUpdateError(
                successor_id, parent_id, f"parent is {current.value} and cannot be superseded"
            )

        result = db.execute(
            update(Contract)
            .where(Contract.id == parent_id, Contract.status == current.value)
            .values(status=ContractStatus.SUPERSEDED.value, superseded_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise CascadingUpdateError(successor_id, parent_id, "parent was modified concurrently")

        log_status_change(
            db, company_id, parent_id, actor_id,
            current.value, ContractStatus.SUPERSEDED.value, at=now,
            details={"successor_id": successor_id}
        )

        open_requests = db.query(RenewalRequest).filter(
            RenewalRequest.contract_id == parent_id,
            RenewalRequest.status.in_(OPEN_RENEWAL_STATUSES)
        ).all()
        for request in open_requests:
            db.execute(
                update(RenewalRequest)
                .where(RenewalRequest.id == request.id)
                .values(status=RenewalStatus.ACTIVATED.value, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            log_renewal_action(
                db, company_id, parent_id, request.id, actor_id, "renewal_activated",
                old_status=request.status, new_status=RenewalStatus.ACTIVATED.value,
                details={"successor_id": successor_id}, at=now
            )

    def supersede_parent(self, company_id: int, parent_id: int, successor_id: int, actor_id: Optional[int] = None):
        """Standalone cascade, used as the compensating retry"""
        try:
            with self._write(parent_id) as db:
                self._supersede_parent(db, company_id, parent_id, successor_id, actor_id, self.clock())
        except RemoteTransitionError as e:
            raise CascadingUpdateError(successor_id, parent_id, e.message) from e
        logger.info(f" Contract {parent_id} superseded by {successor_id}")

    # =====================================================
    # SIGNING
    # =====================================================

    def update_signing_status(
        self,
        company_id: int,
        contract_id: int,
        new_status: SigningStatus,
        expected_status: Optional[SigningStatus],
        actor_id: Optional[int] = None
    ) -> Contract:
        """Conditional write: applies only if the stored signing status is still the expected one"""
        new_status = SigningStatus(new_status)
        with self._write(contract_id) as db:
            contract = self._get_contract(db, company_id, contract_id)
            if contract.status != ContractStatus.SENT_FOR_SIGNATURE.value:
                raise RemoteTransitionError(
                    f"Contract {contract_id} is not out for signature (status {contract.status})",
                    contract_id
                )
            if WorkflowRules.signing_rank(new_status) < WorkflowRules.signing_rank(contract.signing_status):
                raise RemoteTransitionError(
                    f"Signing status cannot move from {contract.signing_status} to {new_status.value}",
                    contract_id
                )

            now = self.clock()
            expected_clause = (
                Contract.signing_status == SigningStatus(expected_status).value
                if expected_status is not None else Contract.signing_status.is_(None)
            )
            result = db.execute(
                update(Contract)
                .where(
                    Contract.id == contract_id,
                    Contract.status == ContractStatus.SENT_FOR_SIGNATURE.value,
                    expected_clause
                )
                .values(signing_status=new_status.value, signing_status_updated_at=now, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise RemoteTransitionError(
                    f"Signing status of contract {contract_id} changed concurrently",
                    contract_id
                )

            AuditService(db).log_action(
                company_id=company_id,
                action_type="signing_update",
                user_id=actor_id,
                contract_id=contract_id,
                old_value=expected_status.value if expected_status is not None else None,
                new_value=new_status.value,
                created_at=now
            )
            db.flush()
            db.refresh(contract)

        logger.info(f" Contract {contract_id} signing status -> {new_status.value}")
        return contract

    # =====================================================
    # CREATION & VERSIONS
    # =====================================================

    def _insert_contract(self, db: Session, company_id: int, actor_id: Optional[int], fields: Dict[str, Any], now: datetime) -> Contract:
        self._require_users(db, company_id, [fields["owner_id"]])
        counterparty = db.query(Counterparty.id).filter(
            Counterparty.id == fields["counterparty_id"],
            Counterparty.company_id == company_id
        ).first()
        if not counterparty:
            raise NotFoundError(f"Counterparty {fields['counterparty_id']} not found")
        if fields.get("property_id") is not None:
            self._require_properties(db, company_id, [fields["property_id"]])

        contract = Contract(
            company_id=company_id,
            status=ContractStatus.DRAFT.value,
            created_by=actor_id,
            created_at=now,
            updated_at=now,
            **{key: fields.get(key) for key in CONTRACT_FIELDS if key in fields}
        )
        if contract.start_date is None:
            contract.start_date = contract.effective_date
        db.add(contract)
        db.flush()
        return contract

    @staticmethod
    def _insert_version(
        db: Session,
        contract: Contract,
        version_number: int,
        author_id: Optional[int],
        snapshot: Dict[str, Any],
        now: datetime
    ) -> ContractVersion:
        version = ContractVersion(
            company_id=contract.company_id,
            contract_id=contract.id,
            version_number=version_number,
            author_id=author_id,
            created_at=now,
            **{key: snapshot.get(key) for key in VERSION_SNAPSHOT_FIELDS}
        )
        db.add(version)
        db.flush()
        return version

    def _insert_allocations(self, db: Session, contract: Contract, allocations: Iterable[Dict[str, Any]], now: datetime) -> int:
        allocations = list(allocations)
        property_ids = [a["property_id"] for a in allocations if a.get("property_id") is not None]
        if property_ids:
            self._require_properties(db, contract.company_id, property_ids)
        for allocation in allocations:
            db.add(PropertyAllocation(
                company_id=contract.company_id,
                contract_id=contract.id,
                property_id=allocation.get("property_id"),
                monthly_values=allocation.get("monthly_values"),
                manual_edits=allocation.get("manual_edits"),
                allocated_value=allocation.get("allocated_value"),
                created_at=now
            ))
        return len(allocations)

    def create_contract(
        self,
        company_id: int,
        actor_id: int,
        fields: Dict[str, Any],
        content: str = "",
        file_name: Optional[str] = None,
        allocations: Optional[List[Dict[str, Any]]] = None
    ) -> Contract:
        """DRAFT contract, version 1 and allocations in one commit"""
        with self._write() as db:
            now = self.clock()
            contract = self._insert_contract(db, company_id, actor_id, fields, now)
            snapshot = dict(fields, content=content, file_name=file_name)
            version = self._insert_version(db, contract, 1, actor_id, snapshot, now)
            contract.draft_version_id = version.id
            self._insert_allocations(db, contract, allocations or [], now)
            log_status_change(db, company_id, contract.id, actor_id, None, ContractStatus.DRAFT.value, at=now,
                              details={"reason": "contract_created"})
            db.flush()
            db.refresh(contract)

        logger.info(f" Contract created: {contract.id} '{contract.title}'")
        return contract

    def submit_version(
        self,
        company_id: int,
        contract_id: int,
        actor_id: int,
        snapshot: Dict[str, Any]
    ) -> Tuple[Contract, ContractVersion]:
        """
        New version enters review: its terms overwrite the contract's, the
        contract returns to IN_REVIEW and every approval step is discarded.
        """
        with self._write(contract_id) as db:
            contract = self._get_contract(db, company_id, contract_id)
            current = ContractStatus(contract.status)
            if current not in WorkflowRules.VERSIONABLE_STATUSES:
                raise RemoteTransitionError(
                    f"Cannot submit a new version while contract {contract_id} is {current.value}",
                    contract_id
                )

            now = self.clock()
            latest = db.query(func.max(ContractVersion.version_number)).filter(
                ContractVersion.contract_id == contract_id
            ).scalar() or 0

            merged = {
                key: snapshot.get(key) if snapshot.get(key) is not None else getattr(contract, key, None)
                for key in VERSION_SNAPSHOT_FIELDS if key not in ("content", "file_name")
            }
            merged.update(content=snapshot.get("content"), file_name=snapshot.get("file_name"))
            version = self._insert_version(db, contract, latest + 1, actor_id, merged, now)

            values = {key: merged[key] for key in ("value", "effective_date", "end_date", "frequency", "seasonal_months", "property_id")}
            values.update(
                status=ContractStatus.IN_REVIEW.value,
                review_started_at=now,
                submitted_at=now,
                approval_started_at=None,
                approval_completed_at=None,
                draft_version_id=version.id,
                updated_at=now,
            )
            self._compare_and_set(db, contract, current, values)

            removed = db.query(ApprovalStep).filter(
                ApprovalStep.contract_id == contract_id
            ).delete(synchronize_session=False)

            log_status_change(
                db, company_id, contract_id, actor_id, current.value, ContractStatus.IN_REVIEW.value, at=now,
                details={"reason": "version_submitted", "version_number": latest + 1, "approval_steps_removed": removed}
            )
            db.flush()
            db.refresh(contract)

        logger.info(f" Contract {contract_id}: version {version.version_number} submitted for review")
        return contract, version

    def insert_successor_contract(self, company_id: int, actor_id: int, fields: Dict[str, Any]) -> Contract:
        with self._write() as db:
            now = self.clock()
            contract = self._insert_contract(db, company_id, actor_id, fields, now)
            log_status_change(db, company_id, contract.id, actor_id, None, ContractStatus.DRAFT.value, at=now,
                              details={"reason": "renewal_successor", "parent_contract_id": fields.get("parent_contract_id")})
            db.flush()
            db.refresh(contract)
        logger.info(f" Successor contract {contract.id} created from {fields.get('parent_contract_id')}")
        return contract

    def insert_initial_version(self, company_id: int, contract_id: int, actor_id: int, snapshot: Dict[str, Any]) -> ContractVersion:
        with self._write(contract_id) as db:
            contract = self._get_contract(db, company_id, contract_id)
            now = self.clock()
            version = self._insert_version(db, contract, 1, actor_id, snapshot, now)
            contract.draft_version_id = version.id
            contract.updated_at = now
        return version

    def insert_allocations(self, company_id: int, contract_id: int, allocations: List[Dict[str, Any]]) -> int:
        with self._write(contract_id) as db:
            contract = self._get_contract(db, company_id, contract_id)
            count = self._insert_allocations(db, contract, allocations, self.clock())
        return count

    # =====================================================
    # RENEWAL REQUESTS
    # =====================================================

    def insert_renewal_request(self, company_id: int, contract_id: int, actor_id: int, fields: Dict[str, Any]) -> RenewalRequest:
        with self._write(contract_id) as db:
            contract = self._get_contract(db, company_id, contract_id)
            existing = db.query(RenewalRequest.id).filter(
                RenewalRequest.contract_id == contract_id,
                RenewalRequest.status.in_(OPEN_RENEWAL_STATUSES)
            ).first()
            if existing:
                raise ValidationError(f"Contract {contract_id} already has an open renewal request ({existing.id})")

            now = self.clock()
            request = RenewalRequest(
                company_id=company_id,
                contract_id=contract.id,
                status=RenewalStatus.QUEUED.value,
                mode=None,
                created_at=now,
                updated_at=now,
                **fields
            )
            db.add(request)
            db.flush()
            log_renewal_action(db, company_id, contract_id, request.id, actor_id, "renewal_requested",
                               new_status=RenewalStatus.QUEUED.value, at=now)
            db.refresh(request)

        logger.info(f" Renewal request {request.id} queued for contract {contract_id}")
        return request

    def update_renewal_request(
        self,
        company_id: int,
        request_id: int,
        values: Dict[str, Any],
        actor_id: Optional[int] = None,
        action_type: str = "renewal_updated",
        require_open: bool = True,
        require_undecided: bool = False
    ) -> RenewalRequest:
        """Conditional update; `require_undecided` also demands that no mode has been chosen yet"""
        with self._write() as db:
            request = self._get_renewal_request(db, company_id, request_id)
            old_status = request.status
            now = self.clock()
            conditions = [RenewalRequest.id == request_id]
            if require_open:
                conditions.append(RenewalRequest.status.in_(OPEN_RENEWAL_STATUSES))
            if require_undecided:
                conditions.append(RenewalRequest.mode.is_(None))
            result = db.execute(
                update(RenewalRequest)
                .where(*conditions)
                .values(updated_at=now, **values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise RemoteTransitionError(
                    f"Renewal request {request_id} is no longer open or was already decided "
                    f"(status {old_status}, mode {request.mode})",
                    request.contract_id
                )
            log_renewal_action(
                db, company_id, request.contract_id, request_id, actor_id, action_type,
                old_status=old_status, new_status=values.get("status", old_status),
                details={k: str(v) for k, v in values.items() if k != "status"}, at=now
            )
            db.flush()
            db.refresh(request)
        return request

    def apply_renew_as_is(
        self,
        company_id: int,
        contract_id: int,
        request_id: int,
        new_end_date: date,
        new_value: Decimal,
        notes: Optional[str],
        actor_id: Optional[int] = None
    ) -> Tuple[Contract, RenewalRequest]:
        """Extend the contract in place and activate its renewal request in one commit"""
        with self._write(contract_id) as db:
            contract = self._get_contract(db, company_id, contract_id)
            request = self._get_renewal_request(db, company_id, request_id)
            if request.contract_id != contract.id:
                raise RemoteTransitionError(
                    f"Renewal request {request_id} does not belong to contract {contract_id}", contract_id
                )

            now = self.clock()
            old_end_date = contract.end_date
            result = db.execute(
                update(Contract)
                .where(Contract.id == contract_id, Contract.end_date == old_end_date)
                .values(end_date=new_end_date, value=new_value, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise RemoteTransitionError(f"Contract {contract_id} was modified concurrently", contract_id)

            result = db.execute(
                update(RenewalRequest)
                .where(
                    RenewalRequest.id == request_id,
                    RenewalRequest.status.in_(OPEN_RENEWAL_STATUSES),
                    RenewalRequest.mode.is_(None)
                )
                .values(
                    status=RenewalStatus.ACTIVATED.value,
                    mode=RenewalMode.RENEW_AS_IS.value,
                    notes=notes,
                    updated_at=now
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise RemoteTransitionError(f"Renewal request {request_id} is no longer open or was already decided", contract_id)

            log_renewal_action(
                db, company_id, contract_id, request_id, actor_id, "renewed_as_is",
                old_status=request.status, new_status=RenewalStatus.ACTIVATED.value,
                details={"old_end_date": str(old_end_date), "new_end_date": str(new_end_date), "new_value": str(new_value)},
                at=now
            )
            db.flush()
            db.refresh(contract)
            db.refresh(request)

        logger.info(f" Contract {contract_id} renewed as-is until {new_end_date}")
        return contract, request

    def get_renewal_request(self, company_id: int, request_id: int) -> RenewalRequest:
        with self._read() as db:
            return self._get_renewal_request(db, company_id, request_id)

    # =====================================================
    # COMMENTS & FEEDBACK
    # =====================================================

    def add_comment(self, company_id: int, version_id: int, actor_id: int, content: str) -> Comment:
        with self._write() as db:
            version = db.query(ContractVersion).filter(
                ContractVersion.id == version_id,
                ContractVersion.company_id == company_id
            ).first()
            if not version:
                raise NotFoundError(f"Contract version {version_id} not found")
            comment = Comment(
                company_id=company_id,
                version_id=version_id,
                author_id=actor_id,
                content=content,
                created_at=self.clock()
            )
            db.add(comment)
            db.flush()
            db.refresh(comment)
        return comment

    def resolve_comment(self, company_id: int, comment_id: int, resolved: bool) -> Tuple[Comment, int]:
        """Returns the comment and the id of the contract it belongs to"""
        with self._write() as db:
            comment = db.query(Comment).filter(
                Comment.id == comment_id,
                Comment.company_id == company_id
            ).first()
            if not comment:
                raise NotFoundError(f"Comment {comment_id} not found")
            comment.resolved_at = self.clock() if resolved else None
            contract_id = db.query(ContractVersion.contract_id).filter(
                ContractVersion.id == comment.version_id
            ).scalar()
            db.flush()
            db.refresh(comment)
        return comment, contract_id

    def add_feedback(self, company_id: int, request_id: int, actor_id: int, feedback: str) -> RenewalFeedback:
        with self._write() as db:
            request = self._get_renewal_request(db, company_id, request_id)
            entry = RenewalFeedback(
                company_id=company_id,
                renewal_request_id=request.id,
                user_id=actor_id,
                feedback=feedback,
                created_at=self.clock()
            )
            db.add(entry)
            db.flush()
            db.refresh(entry)
        return entry

    # =====================================================
    # COUNTERPARTIES & PROPERTIES
    # =====================================================

    def create_counterparty(self, company_id: int, fields: Dict[str, Any]) -> Counterparty:
        with self._write() as db:
            counterparty = Counterparty(company_id=company_id, created_at=self.clock(), **fields)
            db.add(counterparty)
            db.flush()
            db.refresh(counterparty)
        logger.info(f" Counterparty {counterparty.id} '{counterparty.name}' created for company {company_id}")
        return counterparty

    def create_property(self, company_id: int, fields: Dict[str, Any]) -> Property:
        with self._write() as db:
            prop = Property(company_id=company_id, created_at=self.clock(), **fields)
            db.add(prop)
            db.flush()
            db.refresh(prop)
        logger.info(f" Property {prop.id} '{prop.name}' created for company {company_id}")
        return prop

    # =====================================================
    # COMPANY-SCOPED READS
    # =====================================================

    def list_company_ids(self) -> List[int]:
        with self._read() as db:
            return [row.id for row in db.query(Company.id).filter(Company.is_active.is_(True)).order_by(Company.id)]

    def fetch_users(self, company_id: int) -> List[User]:
        with self._read() as db:
            return db.query(User).filter(User.company_id == company_id).all()

    def fetch_counterparties(self, company_id: int) -> List[Counterparty]:
        with self._read() as db:
            return db.query(Counterparty).filter(Counterparty.company_id == company_id).order_by(Counterparty.name, Counterparty.id).all()

    def fetch_properties(self, company_id: int) -> List[Property]:
        with self._read() as db:
            return db.query(Property).filter(Property.company_id == company_id).order_by(Property.name, Property.id).all()

    def fetch_contracts(self, company_id: int, contract_ids: Optional[List[int]] = None) -> List[Contract]:
        with self._read() as db:
            query = db.query(Contract).filter(Contract.company_id == company_id)
            if contract_ids is not None:
                query = query.filter(Contract.id.in_(contract_ids))
            return query.all()

    def fetch_versions(self, company_id: int, contract_ids: List[int]) -> List[ContractVersion]:
        with self._read() as db:
            return db.query(ContractVersion).filter(
                ContractVersion.company_id == company_id,
                ContractVersion.contract_id.in_(contract_ids)
            ).all()

    def fetch_approval_steps(self, company_id: int, contract_ids: List[int]) -> List[ApprovalStep]:
        with self._read() as db:
            return db.query(ApprovalStep).filter(
                ApprovalStep.company_id == company_id,
                ApprovalStep.contract_id.in_(contract_ids)
            ).all()

    def fetch_allocations(self, company_id: int, contract_ids: List[int]) -> List[PropertyAllocation]:
        with self._read() as db:
            return db.query(PropertyAllocation).filter(
                PropertyAllocation.company_id == company_id,
                PropertyAllocation.contract_id.in_(contract_ids)
            ).all()

    def fetch_open_renewal_requests(self, company_id: int, contract_ids: List[int]) -> List[RenewalRequest]:
        with self._read() as db:
            return db.query(RenewalRequest).filter(
                RenewalRequest.company_id == company_id,
                RenewalRequest.contract_id.in_(contract_ids),
                RenewalRequest.status.in_(OPEN_RENEWAL_STATUSES)
            ).all()

    def fetch_audit_logs(self, company_id: int, contract_ids: List[int]) -> List[AuditLog]:
        with self._read() as db:
            return db.query(AuditLog).filter(
                AuditLog.company_id == company_id,
                AuditLog.contract_id.in_(contract_ids)
            ).all()

    def fetch_comments(self, company_id: int, version_ids: List[int]) -> List[Comment]:
        with self._read() as db:
            return db.query(Comment).filter(
                Comment.company_id == company_id,
                Comment.version_id.in_(version_ids)
            ).all()

    def fetch_feedback(self, company_id: int, request_ids: List[int]) -> List[RenewalFeedback]:
        with self._read() as db:
            return db.query(RenewalFeedback).filter(
                RenewalFeedback.company_id == company_id,
                RenewalFeedback.renewal_request_id.in_(request_ids)
            ).all()

    def fetch_active_contracts_ending_on(self, end_date: date) -> List[Contract]:
        """Reminder query; runs across every company"""
        with self._read() as db:
            return db.query(Contract).filter(
                Contract.status == ContractStatus.ACTIVE.value,
                Contract.end_date == end_date
            ).order_by(Contract.id).all()

    def get_user(self, user_id: int) -> Optional[User]:
        with self._read() as db:
            return db.query(User).filter(User.id == user_id).first()

    # =====================================================
    # NOTIFICATIONS
    # =====================================================

    def insert_notification(
        self,
        user_id: int,
        notification_type: str,
        message: str,
        related_entity_type: Optional[str],
        related_entity_id: Optional[int]
    ) -> Notification:
        with session_scope(self.session_factory) as db:
            notification = Notification(
                user_id=user_id,
                notification_type=notification_type,
                message=message,
                related_entity_type=related_entity_type,
                related_entity_id=related_entity_id,
                is_read=False,
                created_at=self.clock()
            )
            db.add(notification)
            db.flush()
            db.refresh(notification)
        return notification

    def fetch_notifications(self, user_id: int, limit: int = 50) -> List[Notification]:
        with self._read() as db:
            return db.query(Notification).filter(
                Notification.user_id == user_id
            ).order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).all()

    def mark_notifications_read(self, user_id: int, notification_ids: Optional[List[int]] = None) -> int:
        with self._write() as db:
            query = db.query(Notification).filter(
                Notification.user_id == user_id,
                Notification.is_read.is_(False)
            )
            if notification_ids is not None:
                query = query.filter(Notification.id.in_(notification_ids))
            count = query.update(
                {Notification.is_read: True, Notification.read_at: self.clock()},
                synchronize_session=False
            )
        return count

    def notification_exists(self, user_id: int, notification_type: str, related_entity_id: int, marker: str) -> bool:
        with self._read() as db:
            return db.query(Notification.id).filter(
                Notification.user_id == user_id,
                Notification.notification_type == notification_type,
                Notification.related_entity_id == related_entity_id,
                Notification.message.like(f"%{marker}%")
            ).first() is not None

    # =====================================================
    # REFERENCE CHECKS
    # =====================================================

    @staticmethod
    def _unique_ids(values: Iterable[Any]) -> List[int]:
        seen: List[int] = []
        for value in values:
            item = int(value["id"] if isinstance(value, dict) else value)
            if item not in seen:
                seen.append(item)
        return seen

    @staticmethod
    def _require_users(db: Session, company_id: int, user_ids: List[int]):
        found = {row.id for row in db.query(User.id).filter(User.company_id == company_id, User.id.in_(user_ids))}
        missing = [uid for uid in user_ids if uid not in found]
        if missing:
            raise NotFoundError(f"Users not found in company {company_id}: {missing}")

    @staticmethod
    def _require_properties(db: Session, company_id: int, property_ids: List[int]):
        found = {row.id for row in db.query(Property.id).filter(Property.company_id == company_id, Property.id.in_(property_ids))}
        missing = [pid for pid in property_ids if pid not in found]
        if missing:
            raise NotFoundError(f"Properties not found in company {company_id}: {missing}")

    @staticmethod
    def _latest_version_id(db: Session, contract_id: int) -> Optional[int]:
        row = db.query(ContractVersion.id).filter(
            ContractVersion.contract_id == contract_id
        ).order_by(ContractVersion.version_number.desc()).first()
        return row.id if row else None
