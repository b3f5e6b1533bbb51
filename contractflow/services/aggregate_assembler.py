# =====================================================
# FILE: contractflow/services/aggregate_assembler.py
# Build ContractAggregate views from normalized rows
# =====================================================

from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import Dict, Iterable, List, Optional
import logging

from contractflow.core.config import Settings, settings as default_settings
from contractflow.schemas.aggregate import (
    AllocationView,
    ApprovalStepView,
    AuditEntryView,
    CommentView,
    ContractAggregate,
    CounterpartyRef,
    FeedbackView,
    PropertyRef,
    RenewalRequestView,
    UserRef,
    VersionView,
)

logger = logging.getLogger(__name__)

# Child collections fetched by contract id, in parallel
CHILD_QUERIES = (
    ("versions", "fetch_versions"),
    ("approval_steps", "fetch_approval_steps"),
    ("allocations", "fetch_allocations"),
    ("renewal_requests", "fetch_open_renewal_requests"),
    ("audit_logs", "fetch_audit_logs"),
)


def _chronological(row):
    return (row.created_at or datetime.min, row.id)


def _group(rows: Iterable, key: str) -> Dict[int, List]:
    grouped: Dict[int, List] = {}
    for row in rows:
        grouped.setdefault(getattr(row, key), []).append(row)
    return grouped


class ReferenceLookup:
    """Owners, counterparties and properties by id; unknown ids resolve to placeholders"""

    def __init__(self, users, counterparties, properties):
        self.users = {
            u.id: UserRef(id=u.id, name=u.display_name, email=u.email, role=u.user_role)
            for u in users
        }
        self.counterparties = {
            c.id: CounterpartyRef(id=c.id, name=c.name, counterparty_type=c.counterparty_type)
            for c in counterparties
        }
        self.properties = {
            p.id: PropertyRef(id=p.id, name=p.name, city=p.city)
            for p in properties
        }

    def user(self, user_id: Optional[int]) -> Optional[UserRef]:
        if user_id is None:
            return None
        ref = self.users.get(user_id)
        if ref is None:
            logger.warning(f" User {user_id} referenced but not found; using placeholder")
            ref = UserRef(id=user_id, name="Unknown user")
        return ref

    def counterparty(self, counterparty_id: int) -> CounterpartyRef:
        ref = self.counterparties.get(counterparty_id)
        if ref is None:
            logger.warning(f" Counterparty {counterparty_id} referenced but not found; using placeholder")
            ref = CounterpartyRef(id=counterparty_id or 0, name="Unknown counterparty")
        return ref

    def property(self, property_id: Optional[int]) -> Optional[PropertyRef]:
        if property_id is None:
            return None
        ref = self.properties.get(property_id)
        if ref is None:
            logger.warning(f" Property {property_id} referenced but not found; using placeholder")
            ref = PropertyRef(id=property_id, name="Unknown property")
        return ref


class AggregateAssembler:
    """
    Loads a company's contracts and every child collection, then joins them
    into ContractAggregate objects. Independent queries run concurrently, each
    on its own session. Output order never depends on store return order.
    """

    def __init__(self, store, max_workers: int = None, config: Settings = None):
        config = config or default_settings
        self.store = store
        self.max_workers = max_workers or config.ASSEMBLY_MAX_WORKERS

    def assemble(self, company_id: int, contract_ids: Optional[List[int]] = None) -> List[ContractAggregate]:
        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="assemble") as pool:
            users_future = pool.submit(self.store.fetch_users, company_id)
            counterparties_future = pool.submit(self.store.fetch_counterparties, company_id)
            properties_future = pool.submit(self.store.fetch_properties, company_id)
            contracts = self.store.fetch_contracts(company_id, contract_ids)

            ids = sorted(c.id for c in contracts)
            children: Dict[str, List] = {name: [] for name, _ in CHILD_QUERIES}
            comments, feedback = [], []
            if ids:
                futures = {
                    name: pool.submit(getattr(self.store, method), company_id, ids)
                    for name, method in CHILD_QUERIES
                }
                children = {name: future.result() for name, future in futures.items()}

                version_ids = sorted(v.id for v in children["versions"])
                request_ids = sorted(r.id for r in children["renewal_requests"])
                comments_future = pool.submit(self.store.fetch_comments, company_id, version_ids) if version_ids else None
                feedback_future = pool.submit(self.store.fetch_feedback, company_id, request_ids) if request_ids else None
                comments = comments_future.result() if comments_future else []
                feedback = feedback_future.result() if feedback_future else []

            lookup = ReferenceLookup(
                users_future.result(),
                counterparties_future.result(),
                properties_future.result()
            )

        aggregates = self.join(contracts, children, comments, feedback, lookup)
        logger.info(f" Assembled {len(aggregates)} contracts for company {company_id}")
        return aggregates

    def join(self, contracts, children: Dict[str, List], comments, feedback, lookup: ReferenceLookup) -> List[ContractAggregate]:
        comments_by_version = _group(sorted(comments, key=_chronological), "version_id")
        feedback_by_request = _group(sorted(feedback, key=_chronological), "renewal_request_id")

        versions_by_contract = _group(
            sorted(children["versions"], key=lambda v: (v.version_number, v.id)), "contract_id"
        )
        steps_by_contract = _group(sorted(children["approval_steps"], key=lambda s: s.id), "contract_id")
        allocations_by_contract = _group(sorted(children["allocations"], key=lambda a: a.id), "contract_id")
        requests_by_contract = _group(sorted(children["renewal_requests"], key=_chronological), "contract_id")
        audit_by_contract = _group(sorted(children["audit_logs"], key=_chronological), "contract_id")

        aggregates = []
        for contract in sorted(contracts, key=_chronological):
            versions = [
                VersionView(
                    id=v.id,
                    version_number=v.version_number,
                    author=lookup.user(v.author_id),
                    content=v.content,
                    file_name=v.file_name,
                    value=v.value,
                    effective_date=v.effective_date,
                    end_date=v.end_date,
                    frequency=v.frequency,
                    seasonal_months=v.seasonal_months,
                    property=lookup.property(v.property_id),
                    comments=[
                        CommentView(
                            id=c.id,
                            version_id=c.version_id,
                            author=lookup.user(c.author_id),
                            content=c.content,
                            resolved_at=c.resolved_at,
                            created_at=c.created_at
                        )
                        for c in comments_by_version.get(v.id, [])
                    ],
                    created_at=v.created_at
                )
                for v in versions_by_contract.get(contract.id, [])
            ]

            open_requests = requests_by_contract.get(contract.id, [])
            renewal_request = None
            if open_requests:
                # Most recent non-terminal request only
                r = open_requests[-1]
                if len(open_requests) > 1:
                    logger.warning(f" Contract {contract.id} has {len(open_requests)} open renewal requests; attaching {r.id}")
                renewal_request = RenewalRequestView(
                    id=r.id,
                    contract_id=r.contract_id,
                    status=r.status,
                    mode=r.mode,
                    renewal_term_months=r.renewal_term_months,
                    notice_period_days=r.notice_period_days,
                    uplift_percent=r.uplift_percent,
                    notice_deadline=r.notice_deadline,
                    internal_decision_deadline=r.internal_decision_deadline,
                    notes=r.notes,
                    renewal_owner=lookup.user(r.renewal_owner_id),
                    feedback=[
                        FeedbackView(
                            id=f.id,
                            renewal_request_id=f.renewal_request_id,
                            user=lookup.user(f.user_id),
                            feedback=f.feedback,
                            created_at=f.created_at
                        )
                        for f in feedback_by_request.get(r.id, [])
                    ],
                    created_at=r.created_at
                )

            aggregates.append(ContractAggregate(
                id=contract.id,
                company_id=contract.company_id,
                title=contract.title,
                contract_type=contract.contract_type,
                status=contract.status,
                risk_level=contract.risk_level,
                owner=lookup.user(contract.owner_id) or UserRef(id=0, name="Unknown user"),
                counterparty=lookup.counterparty(contract.counterparty_id),
                property=lookup.property(contract.property_id),
                effective_date=contract.effective_date,
                start_date=contract.start_date,
                end_date=contract.end_date,
                value=contract.value,
                frequency=contract.frequency,
                seasonal_months=contract.seasonal_months,
                allocation_type=contract.allocation_type,
                submitted_at=contract.submitted_at,
                review_started_at=contract.review_started_at,
                approval_started_at=contract.approval_started_at,
                approval_completed_at=contract.approval_completed_at,
                sent_for_signature_at=contract.sent_for_signature_at,
                executed_at=contract.executed_at,
                active_at=contract.active_at,
                expired_at=contract.expired_at,
                terminated_at=contract.terminated_at,
                superseded_at=contract.superseded_at,
                archived_at=contract.archived_at,
                created_at=contract.created_at,
                updated_at=contract.updated_at,
                draft_version_id=contract.draft_version_id,
                executed_version_id=contract.executed_version_id,
                auto_renew=bool(contract.auto_renew),
                notice_period_days=contract.notice_period_days,
                renewal_term_months=contract.renewal_term_months,
                uplift_percent=contract.uplift_percent,
                parent_contract_id=contract.parent_contract_id,
                signing_status=contract.signing_status,
                signing_status_updated_at=contract.signing_status_updated_at,
                versions=versions,
                approval_steps=[
                    ApprovalStepView(
                        id=s.id,
                        approver=lookup.user(s.approver_id),
                        status=s.status,
                        approved_at=s.approved_at,
                        comment=s.comment
                    )
                    for s in steps_by_contract.get(contract.id, [])
                ],
                property_allocations=[
                    AllocationView(
                        id=a.id,
                        property_id=a.property_id,
                        property=lookup.property(a.property_id),
                        monthly_values=a.monthly_values,
                        manual_edits=a.manual_edits,
                        allocated_value=a.allocated_value
                    )
                    for a in allocations_by_contract.get(contract.id, [])
                ],
                renewal_request=renewal_request,
                audit_logs=[
                    AuditEntryView(
                        id=log.id,
                        user=lookup.user(log.user_id),
                        entity_type=log.entity_type,
                        entity_id=log.entity_id,
                        action_type=log.action_type,
                        old_value=log.old_value,
                        new_value=log.new_value,
                        created_at=log.created_at
                    )
                    for log in audit_by_contract.get(contract.id, [])
                ]
            ))
        return aggregates
