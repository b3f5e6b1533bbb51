"""Unit tests for the expiry sweep."""

import logging
import threading

import pytest
from datetime import date, datetime
from types import SimpleNamespace

from contractflow.core.context import RequestContext
from contractflow.core.exceptions import RemoteTransitionError
from contractflow.models.enums import ContractStatus
from contractflow.schemas.aggregate import ContractAggregate, CounterpartyRef, UserRef
from contractflow.services.expiry_sweeper import ExpirySweeper

from tests.conftest import FIXED_NOW


class FakeStateMachine:
    """Records sweep transitions; contract ids in `failing` are rejected"""

    def __init__(self, failing=()):
        self.failing = set(failing)
        self.calls = []
        self._lock = threading.Lock()

    def transition(self, context, contract_id, action, payload=None):
        with self._lock:
            self.calls.append((contract_id, action))
        if contract_id in self.failing:
            raise RemoteTransitionError(f"Contract {contract_id} was modified concurrently", contract_id)
        contract = SimpleNamespace(status=action, expired_at=FIXED_NOW, updated_at=FIXED_NOW)
        return SimpleNamespace(contract=contract)


def _aggregate(contract_id, status=ContractStatus.ACTIVE, end_date=date(2024, 5, 31)):
    return ContractAggregate(
        id=contract_id,
        company_id=1,
        title=f"Contract {contract_id}",
        status=status,
        owner=UserRef(id=1, name="Owner"),
        counterparty=CounterpartyRef(id=1, name="Vendor"),
        end_date=end_date,
    )


@pytest.fixture
def system_context():
    return RequestContext.system(1)


class TestSelectOverdue:
    def test_only_active_contracts_past_end_date(self):
        today = date(2024, 6, 15)
        aggregates = [
            _aggregate(1),
            _aggregate(2, end_date=date(2024, 6, 15)),
            _aggregate(3, status=ContractStatus.SENT_FOR_SIGNATURE),
            _aggregate(4, end_date=None),
            _aggregate(5, status=ContractStatus.EXPIRED),
        ]
        assert [a.id for a in ExpirySweeper.select_overdue(aggregates, today)] == [1]


class TestSweep:
    def test_expires_and_merges_in_place(self, system_context):
        state_machine = FakeStateMachine()
        sweeper = ExpirySweeper(state_machine, max_workers=4, clock=lambda: FIXED_NOW)
        aggregates = [_aggregate(i) for i in (3, 1, 2)] + [_aggregate(4, end_date=date(2025, 1, 1))]

        report = sweeper.sweep(system_context, aggregates)

        assert report.expired == [1, 2, 3]
        assert report.failures == {}
        assert sorted(call[0] for call in state_machine.calls) == [1, 2, 3]
        assert all(action == "EXPIRED" for _, action in state_machine.calls)
        statuses = {a.id: a.status for a in aggregates}
        assert statuses == {1: ContractStatus.EXPIRED, 2: ContractStatus.EXPIRED, 3: ContractStatus.EXPIRED, 4: ContractStatus.ACTIVE}
        assert aggregates[0].expired_at == FIXED_NOW

    def test_partial_failure_keeps_failed_items_active(self, system_context, caplog):
        state_machine = FakeStateMachine(failing={2})
        sweeper = ExpirySweeper(state_machine, max_workers=4, clock=lambda: FIXED_NOW)
        aggregates = [_aggregate(i) for i in (1, 2, 3)]

        with caplog.at_level(logging.ERROR):
            report = sweeper.sweep(system_context, aggregates)

        assert report.expired == [1, 3]
        assert list(report.failures) == [2]
        assert "modified concurrently" in report.failures[2]
        assert aggregates[1].status == ContractStatus.ACTIVE
        assert "Expiry sweep incomplete" in caplog.text

    def test_nothing_overdue(self, system_context):
        state_machine = FakeStateMachine()
        sweeper = ExpirySweeper(state_machine, clock=lambda: datetime(2024, 1, 1))
        report = sweeper.sweep(system_context, [_aggregate(1)])
        assert report.expired == []
        assert state_machine.calls == []


class TestSweepOnLoad:
    def test_load_expires_overdue_contracts_once(self, lifecycle, context, make_contract, activate, notifier, channel):
        overdue = [
            activate(make_contract(title=f"Overdue {n}", end_date=date(2024, 3, 31)).id).id
            for n in range(3)
        ]
        current = activate(make_contract(title="Still running").id).id

        def expiry_rows(aggregate):
            return [log for log in aggregate.audit_logs if log.new_value == ContractStatus.EXPIRED.value]

        first = {a.id: a for a in lifecycle.load_aggregates(context)}
        notifier.drain()
        messages_after_first = len(channel.messages)

        assert all(first[i].status == ContractStatus.EXPIRED for i in overdue)
        assert all(first[i].expired_at == FIXED_NOW for i in overdue)
        assert all(len(expiry_rows(first[i])) == 1 for i in overdue)
        assert first[current].status == ContractStatus.ACTIVE

        second = {a.id: a for a in lifecycle.load_aggregates(context)}
        notifier.drain()

        for contract_id in overdue:
            assert second[contract_id].status == ContractStatus.EXPIRED
            assert second[contract_id].expired_at == first[contract_id].expired_at
            assert len(expiry_rows(second[contract_id])) == 1
        assert second[current].status == ContractStatus.ACTIVE
        assert len(channel.messages) == messages_after_first

    def test_sweep_all_companies_uses_system_context(self, lifecycle, make_contract, activate, seed):
        contract_id = activate(make_contract(end_date=date(2024, 3, 31)).id).id

        assert lifecycle.sweep_all_companies() == 2

        expired = lifecycle.get_contract(RequestContext.system(seed.company_id), contract_id)
        assert expired.status == ContractStatus.EXPIRED
        audit = [log for log in expired.audit_logs if log.new_value == "EXPIRED"][0]
        assert audit.user is None
