"""Unit tests for the contract state machine and its edge table."""

import pytest
from concurrent.futures import ThreadPoolExecutor

from contractflow.core.context import RequestContext
from contractflow.core.exceptions import NotFoundError, RemoteTransitionError, ValidationError
from contractflow.models.contract import Contract
from contractflow.models.enums import ContractStatus, NotificationType, StepAction
from contractflow.services.workflow_rules import WorkflowRules

from tests.conftest import FIXED_NOW


class TestWorkflowRules:
    def test_forward_edges(self):
        assert WorkflowRules.validate_status_transition(ContractStatus.DRAFT, ContractStatus.IN_REVIEW)
        assert WorkflowRules.validate_status_transition(ContractStatus.FULLY_EXECUTED, ContractStatus.ACTIVE)
        assert WorkflowRules.validate_status_transition(ContractStatus.ACTIVE, ContractStatus.SUPERSEDED)
        assert WorkflowRules.validate_status_transition(ContractStatus.EXPIRED, ContractStatus.SUPERSEDED)

    def test_skipping_stages_is_rejected(self):
        assert not WorkflowRules.validate_status_transition(ContractStatus.DRAFT, ContractStatus.ACTIVE)
        assert not WorkflowRules.validate_status_transition(ContractStatus.IN_REVIEW, ContractStatus.SENT_FOR_SIGNATURE)

    def test_terminal_statuses_have_no_way_out(self):
        for status in WorkflowRules.TERMINAL_STATUSES:
            assert not WorkflowRules.validate_status_transition(status, ContractStatus.ACTIVE)
            assert not WorkflowRules.validate_status_transition(status, ContractStatus.ARCHIVED)

    def test_archive_is_reachable_from_non_terminal_statuses(self):
        for status in (ContractStatus.DRAFT, ContractStatus.ACTIVE, ContractStatus.EXPIRED):
            assert WorkflowRules.validate_status_transition(status, ContractStatus.ARCHIVED)

    def test_parse_action(self):
        assert WorkflowRules.parse_action("APPROVE_STEP") == StepAction.APPROVE_STEP
        assert WorkflowRules.parse_action("ACTIVE") == ContractStatus.ACTIVE
        with pytest.raises(ValueError):
            WorkflowRules.parse_action("PUBLISHED")

    def test_signing_rank(self):
        assert WorkflowRules.signing_rank(None) == -1
        assert WorkflowRules.signing_rank("AWAITING_INTERNAL") == 0
        assert WorkflowRules.signing_rank("SIGNED_BY_COUNTERPARTY") == 3


class TestTransitions:
    def test_new_contract_is_draft_with_first_version(self, make_contract):
        aggregate = make_contract()

        assert aggregate.status == ContractStatus.DRAFT
        assert [v.version_number for v in aggregate.versions] == [1]
        assert aggregate.draft_version_id == aggregate.versions[0].id
        assert aggregate.owner.name == "Olivia Owner"
        assert aggregate.counterparty.name == "CleanCo Ltd"
        assert aggregate.start_date == aggregate.effective_date

    def test_transition_stamps_stage_timestamp_and_audits(self, lifecycle, context, make_contract):
        aggregate = make_contract()

        updated = lifecycle.transition(context, aggregate.id, "IN_REVIEW")

        assert updated.status == ContractStatus.IN_REVIEW
        assert updated.review_started_at == FIXED_NOW
        assert updated.submitted_at == FIXED_NOW
        status_changes = [log for log in updated.audit_logs if log.action_type == "status_change"]
        assert [(log.old_value, log.new_value) for log in status_changes] == [
            (None, "DRAFT"),
            ("DRAFT", "IN_REVIEW"),
        ]

    def test_invalid_edge_is_rejected_by_store(self, lifecycle, context, make_contract):
        aggregate = make_contract()

        with pytest.raises(RemoteTransitionError):
            lifecycle.transition(context, aggregate.id, "ACTIVE")

        assert lifecycle.get_contract(context, aggregate.id).status == ContractStatus.DRAFT

    def test_unknown_action_is_validation_error(self, lifecycle, context, make_contract):
        aggregate = make_contract()
        with pytest.raises(ValidationError):
            lifecycle.transition(context, aggregate.id, "PUBLISHED")

    def test_missing_context_fails_before_store(self, lifecycle, seed, make_contract):
        aggregate = make_contract()
        with pytest.raises(ValidationError):
            lifecycle.transition(RequestContext(company_id=seed.company_id, user_id=None), aggregate.id, "IN_REVIEW")
        with pytest.raises(ValidationError):
            lifecycle.transition(RequestContext(company_id=None, user_id=seed.owner_id), aggregate.id, "IN_REVIEW")

    def test_contract_of_other_company_is_not_found(self, lifecycle, seed, make_contract):
        aggregate = make_contract()
        foreign = RequestContext(company_id=seed.other_company_id, user_id=seed.outsider_id)
        with pytest.raises(NotFoundError):
            lifecycle.transition(foreign, aggregate.id, "IN_REVIEW")

    def test_racing_transitions_have_exactly_one_winner(self, lifecycle, context, make_contract):
        aggregate = make_contract()

        with ThreadPoolExecutor(max_workers=2) as pool:
            futures = [
                pool.submit(lifecycle.state_machine.transition, context, aggregate.id, "IN_REVIEW")
                for _ in range(2)
            ]
            outcomes, errors = [], []
            for future in futures:
                try:
                    outcomes.append(future.result())
                except RemoteTransitionError as e:
                    errors.append(e)

        assert len(outcomes) == 1
        assert len(errors) == 1
        assert lifecycle.repository.refresh(context.company_id, aggregate.id).status == ContractStatus.IN_REVIEW

    def test_compare_and_set_detects_stale_status(self, store, session_factory, make_contract):
        aggregate = make_contract()
        db = session_factory()
        try:
            contract = db.query(Contract).filter(Contract.id == aggregate.id).one()
            with pytest.raises(RemoteTransitionError, match="modified concurrently"):
                store._compare_and_set(db, contract, ContractStatus.IN_REVIEW, {"status": ContractStatus.PENDING_APPROVAL.value})
            db.rollback()
        finally:
            db.close()

    def test_archive_from_active(self, lifecycle, context, make_contract, activate):
        aggregate = make_contract()
        activate(aggregate.id)

        archived = lifecycle.transition(context, aggregate.id, "ARCHIVED")

        assert archived.status == ContractStatus.ARCHIVED
        assert archived.archived_at == FIXED_NOW

    def test_full_walk_to_active_records_executed_version(self, lifecycle, context, make_contract, activate):
        aggregate = make_contract()

        active = activate(aggregate.id)

        assert active.status == ContractStatus.ACTIVE
        assert active.executed_version_id == aggregate.versions[0].id
        assert active.active_at == FIXED_NOW
        assert active.executed_at == FIXED_NOW

    def test_status_change_notifies_owner(self, lifecycle, context, make_contract, notifier, channel, seed):
        aggregate = make_contract()

        lifecycle.transition(context, aggregate.id, "IN_REVIEW")
        notifier.drain()

        messages = channel.for_user(seed.owner_id)
        assert any(
            m.notification_type == NotificationType.STATUS_CHANGE.value and "DRAFT to IN_REVIEW" in m.message
            for m in messages
        )

    def test_notification_failure_does_not_fail_transition(self, lifecycle, context, make_contract, notifier):
        class BrokenChannel:
            name = "broken"

            def deliver(self, message):
                raise RuntimeError("smtp down")

        notifier.channels = [BrokenChannel()]
        aggregate = make_contract()

        updated = lifecycle.transition(context, aggregate.id, "IN_REVIEW")
        notifier.drain()

        assert updated.status == ContractStatus.IN_REVIEW

    def test_archive_of_terminated_contract_is_rejected(self, lifecycle, context, make_contract, activate):
        aggregate = make_contract()
        activate(aggregate.id)
        lifecycle.transition(context, aggregate.id, "TERMINATED")

        with pytest.raises(RemoteTransitionError):
            lifecycle.transition(context, aggregate.id, "ARCHIVED")

        assert lifecycle.get_contract(context, aggregate.id).status == ContractStatus.TERMINATED


class TestSupersededIsCascadeOnly:
    def test_manual_supersede_is_validation_error(self, lifecycle, context, make_contract, activate):
        aggregate = make_contract()
        activate(aggregate.id)

        with pytest.raises(ValidationError, match="renewal successor"):
            lifecycle.transition(context, aggregate.id, "SUPERSEDED")

        current = lifecycle.get_contract(context, aggregate.id)
        assert current.status == ContractStatus.ACTIVE
        assert current.superseded_at is None

    def test_store_refuses_direct_supersede(self, store, context, make_contract, activate):
        aggregate = make_contract()
        activate(aggregate.id)

        with pytest.raises(RemoteTransitionError, match="can only be superseded"):
            store.transition(context.company_id, aggregate.id, "SUPERSEDED", {}, context.user_id)
