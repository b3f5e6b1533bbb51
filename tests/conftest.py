"""
pytest configuration for ContractFlow tests
Per-test SQLite database, seeded company and a recording notifier
"""
import os

# Must be set before contractflow is imported: the module-level engine reads it
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ["SCHEDULER_ENABLED"] = "false"

import pytest
from datetime import date, datetime
from decimal import Decimal
from types import SimpleNamespace

from contractflow.core.context import RequestContext
from contractflow.core.database import Base, build_engine, build_session_factory
from contractflow.models import Company, Counterparty, Property, User
from contractflow.schemas.requests import ContractCreateRequest
from contractflow.services.contract_store import ContractStore
from contractflow.services.lifecycle_service import LifecycleService
from contractflow.services.notification_service import NotificationDispatcher


FIXED_NOW = datetime(2024, 6, 15, 9, 30, 0)


class RecordingChannel:
    """Notification channel that keeps every delivered message"""

    name = "recording"

    def __init__(self):
        self.messages = []

    def deliver(self, message):
        self.messages.append(message)

    def for_user(self, user_id):
        return [m for m in self.messages if m.user_id == user_id]


# =============================================================================
# Database
# =============================================================================

@pytest.fixture
def engine(tmp_path):
    """File-backed SQLite so worker threads share one database"""
    engine = build_engine(f"sqlite:///{tmp_path / 'contractflow.db'}")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def clock():
    return lambda: FIXED_NOW


@pytest.fixture
def store(session_factory, clock):
    return ContractStore(session_factory, clock=clock)


@pytest.fixture
def seed(session_factory):
    """Two companies; the first has an owner, two approvers, a counterparty and a property"""
    db = session_factory()
    try:
        company = Company(company_name="Acme Facilities", slug="acme")
        other = Company(company_name="Other Corp", slug="other")
        db.add_all([company, other])
        db.flush()

        owner = User(company_id=company.id, email="owner@acme.test", first_name="Olivia", last_name="Owner", user_role="Contract Manager")
        approver = User(company_id=company.id, email="approver@acme.test", first_name="Adam", last_name="Approver", user_role="Legal")
        second_approver = User(company_id=company.id, email="finance@acme.test", first_name="Fay", last_name="Finance", user_role="Finance")
        outsider = User(company_id=other.id, email="someone@other.test", first_name="Sam", last_name="Outsider")
        db.add_all([owner, approver, second_approver, outsider])

        counterparty = Counterparty(company_id=company.id, name="CleanCo Ltd", counterparty_type="Vendor")
        prop = Property(company_id=company.id, name="Riverside Tower", city="Leeds")
        db.add_all([counterparty, prop])
        db.commit()

        return SimpleNamespace(
            company_id=company.id,
            other_company_id=other.id,
            owner_id=owner.id,
            approver_id=approver.id,
            second_approver_id=second_approver.id,
            outsider_id=outsider.id,
            counterparty_id=counterparty.id,
            property_id=prop.id,
        )
    finally:
        db.close()


# =============================================================================
# Services
# =============================================================================

@pytest.fixture
def channel():
    return RecordingChannel()


@pytest.fixture
def notifier(channel):
    dispatcher = NotificationDispatcher([channel], max_attempts=2, retry_delay_seconds=0, max_workers=2)
    yield dispatcher
    dispatcher.shutdown()


@pytest.fixture
def lifecycle(store, notifier, clock):
    return LifecycleService(store=store, notifier=notifier, clock=clock)


@pytest.fixture
def context(seed):
    return RequestContext(company_id=seed.company_id, user_id=seed.owner_id)


@pytest.fixture
def approver_context(seed):
    return RequestContext(company_id=seed.company_id, user_id=seed.approver_id)


@pytest.fixture
def make_contract(lifecycle, context, seed):
    """Factory creating a DRAFT contract through the lifecycle service"""

    def _make(**overrides):
        fields = dict(
            title="Office cleaning services",
            contract_type="Vendor",
            counterparty_id=seed.counterparty_id,
            property_id=seed.property_id,
            effective_date=date(2024, 1, 1),
            end_date=date(2024, 12, 31),
            value=Decimal("1000"),
            frequency="Monthly",
            renewal_term_months=12,
            uplift_percent=Decimal("10"),
            notice_period_days=60,
            content="Cleaning of all common areas.",
            file_name="cleaning_v1.docx",
        )
        fields.update(overrides)
        return lifecycle.create_contract(context, ContractCreateRequest(**fields))

    return _make


@pytest.fixture
def activate(lifecycle, context, approver_context, seed):
    """Walk a DRAFT contract all the way to ACTIVE"""

    def _activate(contract_id):
        lifecycle.transition(context, contract_id, "IN_REVIEW")
        lifecycle.request_approval(context, contract_id, [seed.approver_id])
        lifecycle.approve_step(approver_context, contract_id)
        lifecycle.transition(context, contract_id, "FULLY_EXECUTED")
        return lifecycle.transition(context, contract_id, "ACTIVE")

    return _activate
