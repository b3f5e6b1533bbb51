"""Unit tests for counterparties, properties and contract classification."""

import pytest
from pydantic import ValidationError as SchemaError

from contractflow.core.context import RequestContext
from contractflow.core.exceptions import NotFoundError, ValidationError
from contractflow.schemas.requests import (
    ContractCreateRequest,
    CounterpartyCreateRequest,
    PropertyCreateRequest,
)


class TestContractClassification:
    def test_known_type_and_risk_are_accepted(self):
        request = ContractCreateRequest(title="Lift maintenance", contract_type="MSA", risk_level="High")
        assert request.contract_type == "MSA"
        assert request.risk_level == "High"

    def test_unknown_contract_type_is_rejected(self):
        with pytest.raises(SchemaError, match="Unknown contract type 'Spaceship'"):
            ContractCreateRequest(title="Lift maintenance", contract_type="Spaceship")

    def test_unknown_risk_level_is_rejected(self):
        with pytest.raises(SchemaError, match="Unknown risk level 'Extreme'"):
            ContractCreateRequest(title="Lift maintenance", risk_level="Extreme")


class TestCounterparties:
    def test_created_counterparty_can_be_contracted(self, lifecycle, context, make_contract):
        created = lifecycle.create_counterparty(context, CounterpartyCreateRequest(
            name="  Lift Masters  ", counterparty_type="Vendor", city="York", contact_email="ops@lift.test"
        ))

        assert created.name == "Lift Masters"
        assert [c.name for c in lifecycle.list_counterparties(context)] == ["CleanCo Ltd", "Lift Masters"]

        contract = make_contract(title="Lift maintenance", counterparty_id=created.id)
        assert contract.counterparty.id == created.id
        assert contract.counterparty.name == "Lift Masters"

    def test_counterparties_are_company_scoped(self, lifecycle, context, seed, make_contract):
        foreign = RequestContext(company_id=seed.other_company_id, user_id=seed.outsider_id)
        theirs = lifecycle.create_counterparty(foreign, CounterpartyCreateRequest(name="Other Vendor"))

        assert [c.name for c in lifecycle.list_counterparties(foreign)] == ["Other Vendor"]
        assert "Other Vendor" not in [c.name for c in lifecycle.list_counterparties(context)]
        with pytest.raises(NotFoundError):
            make_contract(counterparty_id=theirs.id)

    def test_blank_name_is_rejected(self):
        with pytest.raises(SchemaError):
            CounterpartyCreateRequest(name="   ")

    def test_missing_context_is_rejected(self, lifecycle, seed):
        with pytest.raises(ValidationError):
            lifecycle.create_counterparty(
                RequestContext(company_id=seed.company_id, user_id=None),
                CounterpartyCreateRequest(name="Nobody Ltd")
            )


class TestProperties:
    def test_created_property_is_listed_for_its_company_only(self, lifecycle, context, seed):
        created = lifecycle.create_property(context, PropertyCreateRequest(
            name="Harbour House", address_line1="1 Quay Street", city="Hull"
        ))

        assert created.city == "Hull"
        assert [p.name for p in lifecycle.list_properties(context)] == ["Harbour House", "Riverside Tower"]
        foreign = RequestContext(company_id=seed.other_company_id, user_id=seed.outsider_id)
        assert lifecycle.list_properties(foreign) == []

    def test_contract_can_reference_new_property(self, lifecycle, context, make_contract):
        created = lifecycle.create_property(context, PropertyCreateRequest(name="Harbour House"))

        contract = make_contract(property_id=created.id)

        assert contract.property.id == created.id
