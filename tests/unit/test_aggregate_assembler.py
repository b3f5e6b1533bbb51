"""Unit tests for aggregate assembly and the per-company contract cache."""

import pytest
from datetime import date
from decimal import Decimal

from contractflow.models.contract import Contract
from contractflow.services.aggregate_assembler import AggregateAssembler, ReferenceLookup
from contractflow.services.contract_repository import ContractRepository
from contractflow.services.contract_store import ContractStore


class ShuffledStore(ContractStore):
    """Returns every collection in reverse order"""

    def fetch_contracts(self, company_id, contract_ids=None):
        return list(reversed(super().fetch_contracts(company_id, contract_ids)))

    def fetch_versions(self, company_id, contract_ids):
        return list(reversed(super().fetch_versions(company_id, contract_ids)))

    def fetch_approval_steps(self, company_id, contract_ids):
        return list(reversed(super().fetch_approval_steps(company_id, contract_ids)))

    def fetch_audit_logs(self, company_id, contract_ids):
        return list(reversed(super().fetch_audit_logs(company_id, contract_ids)))


@pytest.fixture
def populated(lifecycle, context, make_contract, seed):
    """Three contracts with versions, steps, allocations and comments"""
    first = make_contract(
        title="Lift maintenance",
        property_allocations=[
            {"property_id": seed.property_id, "allocated_value": Decimal("600")},
            {"property_id": None, "allocated_value": Decimal("400")},
        ],
    )
    second = make_contract(title="Waste collection")
    third = make_contract(title="Landscaping")

    lifecycle.add_comment(context, first.id, first.versions[0].id, "Check the response times")
    lifecycle.transition(context, second.id, "IN_REVIEW")
    lifecycle.request_approval(context, second.id, [seed.approver_id, seed.second_approver_id])
    return [first.id, second.id, third.id]


class TestAssembler:
    def test_output_is_independent_of_store_order(self, store, session_factory, clock, populated, seed):
        plain = AggregateAssembler(store, max_workers=4).assemble(seed.company_id)
        shuffled = AggregateAssembler(ShuffledStore(session_factory, clock=clock), max_workers=4).assemble(seed.company_id)

        assert [a.id for a in plain] == populated
        assert [a.model_dump() for a in plain] == [a.model_dump() for a in shuffled]

    def test_children_are_joined(self, store, populated, seed):
        aggregates = {a.id: a for a in AggregateAssembler(store).assemble(seed.company_id)}
        first, second, _ = (aggregates[i] for i in populated)

        assert [a.property.name if a.property else None for a in first.property_allocations] == ["Riverside Tower", None]
        assert first.property_allocations[1].property_id is None
        assert [c.content for c in first.versions[0].comments] == ["Check the response times"]
        assert first.versions[0].comments[0].author.name == "Olivia Owner"
        assert [s.approver.name for s in second.approval_steps] == ["Adam Approver", "Fay Finance"]
        assert second.audit_logs[-1].new_value == "PENDING_APPROVAL"

    def test_subset_assembly(self, store, populated, seed):
        aggregates = AggregateAssembler(store).assemble(seed.company_id, [populated[1]])
        assert [a.id for a in aggregates] == [populated[1]]
        assert len(aggregates[0].approval_steps) == 2

    def test_company_scope(self, store, populated, seed):
        assert AggregateAssembler(store).assemble(seed.other_company_id) == []

    def test_missing_references_become_placeholders(self, store, session_factory, populated, seed):
        db = session_factory()
        try:
            db.query(Contract).filter(Contract.id == populated[0]).update(
                {"counterparty_id": 9999, "property_id": 8888}
            )
            db.commit()
        finally:
            db.close()

        aggregate = AggregateAssembler(store).assemble(seed.company_id, [populated[0]])[0]

        assert aggregate.counterparty.id == 9999
        assert aggregate.counterparty.name == "Unknown counterparty"
        assert aggregate.property.name == "Unknown property"

    def test_only_open_renewal_request_is_attached(self, lifecycle, context, store, make_contract, activate, seed):
        contract = activate(make_contract(end_date=date(2024, 1, 31)).id)
        lifecycle.create_renewal_request(context, contract.id)
        lifecycle.renew_as_is(context, contract.id)
        second = lifecycle.create_renewal_request(context, contract.id)

        aggregate = AggregateAssembler(store).assemble(seed.company_id, [contract.id])[0]

        assert aggregate.renewal_request.id == second.renewal_request.id


class TestReferenceLookup:
    def test_unknown_user_placeholder(self):
        lookup = ReferenceLookup([], [], [])
        assert lookup.user(None) is None
        assert lookup.user(42).name == "Unknown user"
        assert lookup.property(None) is None


class TestContractRepository:
    def test_load_refresh_and_invalidate(self, store, populated, seed):
        repository = ContractRepository(AggregateAssembler(store))
        assert not repository.is_loaded(seed.company_id)

        repository.load(seed.company_id)
        assert repository.is_loaded(seed.company_id)
        assert [a.id for a in repository.list_contracts(seed.company_id)] == populated
        assert repository.get(seed.company_id, populated[0]).title == "Lift maintenance"

        assert repository.refresh(seed.company_id, 99999) is None
        repository.invalidate(seed.company_id)
        assert repository.list_contracts(seed.company_id) == []
