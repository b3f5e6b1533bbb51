"""Unit tests for successor activation and the supersession cascade."""

import logging

import pytest
from datetime import date

from contractflow.core.config import Settings
from contractflow.core.exceptions import CascadingUpdateError
from contractflow.models.contract import Contract
from contractflow.models.enums import ContractStatus, RenewalStatus
from contractflow.models.renewal import RenewalRequest
from contractflow.services.supersession_service import SupersessionService


@pytest.fixture
def renewal_pair(lifecycle, context, make_contract, activate):
    """ACTIVE parent with an IN_PROGRESS request and its DRAFT successor"""
    parent = activate(make_contract(end_date=date(2024, 12, 31)).id)
    lifecycle.create_renewal_request(context, parent.id)
    result, successor = lifecycle.start_renegotiation(context, parent.id)
    assert result.ok
    return parent, successor


def _request_statuses(session_factory, contract_id):
    db = session_factory()
    try:
        return [r.status for r in db.query(RenewalRequest).filter(RenewalRequest.contract_id == contract_id)]
    finally:
        db.close()


class TestSupersession:
    def test_successor_activation_supersedes_parent(self, lifecycle, context, renewal_pair, activate, session_factory):
        parent, successor = renewal_pair

        activated = activate(successor.id)

        assert activated.status == ContractStatus.ACTIVE
        superseded = lifecycle.get_contract(context, parent.id)
        assert superseded.status == ContractStatus.SUPERSEDED
        assert superseded.superseded_at is not None
        assert superseded.renewal_request is None
        assert _request_statuses(session_factory, parent.id) == [RenewalStatus.ACTIVATED.value]
        assert any(log.action_type == "renewal_activated" for log in superseded.audit_logs)

    def test_outcome_reports_superseded_parent(self, lifecycle, context, approver_context, renewal_pair, seed):
        parent, successor = renewal_pair
        lifecycle.transition(context, successor.id, "IN_REVIEW")
        lifecycle.request_approval(context, successor.id, [seed.approver_id])
        lifecycle.approve_step(approver_context, successor.id)
        lifecycle.transition(context, successor.id, "FULLY_EXECUTED")

        outcome = lifecycle.state_machine.transition(context, successor.id, "ACTIVE")

        assert outcome.superseded_parent_id == parent.id
        assert outcome.cascade_error is None

    def test_expired_parent_can_be_superseded(self, lifecycle, context, renewal_pair, activate):
        parent, successor = renewal_pair
        lifecycle.transition(context, parent.id, "EXPIRED")

        activate(successor.id)

        assert lifecycle.get_contract(context, parent.id).status == ContractStatus.SUPERSEDED

    def test_cascade_failure_keeps_successor_active(self, lifecycle, context, renewal_pair, activate, caplog):
        parent, successor = renewal_pair
        lifecycle.transition(context, parent.id, "TERMINATED")

        with caplog.at_level(logging.WARNING):
            activated = activate(successor.id)

        assert activated.status == ContractStatus.ACTIVE
        assert lifecycle.get_contract(context, parent.id).status == ContractStatus.TERMINATED
        assert "Consistency warning" in caplog.text

    def test_compensating_retry_completes_cascade(self, lifecycle, store, context, renewal_pair, activate, monkeypatch):
        parent, successor = renewal_pair
        real_supersede = store._supersede_parent
        calls = []

        def flaky_supersede(db, company_id, parent_id, successor_id, actor_id, now):
            calls.append(parent_id)
            if len(calls) == 1:
                raise CascadingUpdateError(successor_id, parent_id, "lock wait timeout")
            return real_supersede(db, company_id, parent_id, successor_id, actor_id, now)

        monkeypatch.setattr(store, "_supersede_parent", flaky_supersede)

        activate(successor.id)

        assert calls == [parent.id, parent.id]
        assert lifecycle.get_contract(context, parent.id).status == ContractStatus.SUPERSEDED

    def test_standalone_cascade_raises_for_missing_parent(self, store, seed, renewal_pair):
        _, successor = renewal_pair
        with pytest.raises(CascadingUpdateError) as exc_info:
            store.supersede_parent(seed.company_id, 99999, successor.id)
        assert exc_info.value.parent_id == 99999
        assert "not found" in exc_info.value.reason

    def test_load_reconciles_left_behind_parent(self, lifecycle, context, make_contract, activate, session_factory):
        parent = activate(make_contract(title="Security patrol 2024").id)
        successor = activate(make_contract(title="Security patrol 2025", effective_date=date(2025, 1, 1), end_date=date(2025, 12, 31)).id)

        # Lineage recorded after the fact, so no cascade ran at activation
        db = session_factory()
        try:
            db.query(Contract).filter(Contract.id == successor.id).update({"parent_contract_id": parent.id})
            db.commit()
        finally:
            db.close()

        loaded = {a.id: a for a in lifecycle.load_aggregates(context)}

        assert loaded[successor.id].status == ContractStatus.ACTIVE
        assert loaded[parent.id].status == ContractStatus.SUPERSEDED
        assert lifecycle.supersession.pending_cascades(loaded.values()) == {}


class RecordingStore:
    """supersede_parent raises each queued error in turn, then succeeds"""

    def __init__(self, errors):
        self.errors = list(errors)
        self.calls = 0

    def supersede_parent(self, company_id, parent_id, successor_id, actor_id=None):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)


class TestCompensatingRetry:
    def test_attempts_come_from_settings(self, context, notifier, caplog):
        store = RecordingStore([CascadingUpdateError(2, 1, "deadlock")] * 5)
        service = SupersessionService(store, notifier, config=Settings(CASCADE_RETRY_ATTEMPTS=4))

        with caplog.at_level(logging.WARNING):
            assert service.complete(context, 2, 1, "initial failure") is False

        assert store.calls == 4
        assert "Supersession retry 4/4 for contract 1 failed: deadlock" in caplog.text
        assert "Consistency warning" in caplog.text

    def test_success_notifies_parent_owner(self, context, notifier, channel, seed):
        store = RecordingStore([CascadingUpdateError(2, 1, "deadlock")])
        service = SupersessionService(store, notifier, attempts=3)

        assert service.complete(context, 2, 1, "initial failure", owner_id=seed.approver_id) is True
        notifier.drain()

        assert store.calls == 2
        assert [m.related_entity_id for m in channel.for_user(seed.approver_id)] == [1]

    def test_unexpected_error_is_not_retried(self, context, notifier):
        store = RecordingStore([RuntimeError("connection reset")])
        service = SupersessionService(store, notifier, attempts=3)

        with pytest.raises(RuntimeError, match="connection reset"):
            service.complete(context, 2, 1, "initial failure")

        assert store.calls == 1
