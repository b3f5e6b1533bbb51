# =====================================================
# FILE: contractflow/services/expiry_sweeper.py
# Force-expire ACTIVE contracts whose end date has passed
# =====================================================

from concurrent.futures import ThreadPoolExecutor
from datetime import date
from typing import Callable, Dict, List
import logging

from contractflow.core.config import Settings, settings as default_settings
from contractflow.core.context import RequestContext
from contractflow.core.exceptions import PartialBatchFailure
from contractflow.models.enums import ContractStatus
from contractflow.schemas.aggregate import ContractAggregate
from contractflow.schemas.requests import SweepReport
from contractflow.utils.datetime_helpers import to_day, utcnow

logger = logging.getLogger(__name__)


class ExpirySweeper:
    """
    One independent EXPIRED transition per overdue contract, issued
    concurrently. All outcomes are collected before anything is merged back;
    failed items stay ACTIVE and are picked up again by the next sweep.
    """

    def __init__(self, state_machine, max_workers: int = None, clock: Callable = utcnow, config: Settings = None):
        config = config or default_settings
        self.state_machine = state_machine
        self.max_workers = max_workers or config.SWEEP_MAX_WORKERS
        self.clock = clock

    @staticmethod
    def select_overdue(aggregates: List[ContractAggregate], today: date) -> List[ContractAggregate]:
        return [
            a for a in aggregates
            if a.status == ContractStatus.ACTIVE and a.end_date is not None and to_day(a.end_date) < today
        ]

    def sweep(self, context: RequestContext, aggregates: List[ContractAggregate]) -> SweepReport:
        """Expire overdue contracts and merge the successes into `aggregates` in place"""
        today = to_day(self.clock())
        overdue = self.select_overdue(aggregates, today)
        report = SweepReport()
        if not overdue:
            return report

        logger.info(f" Expiry sweep: {len(overdue)} overdue contracts for company {context.company_id}")
        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(overdue)), thread_name_prefix="sweep") as pool:
            futures = {
                aggregate.id: pool.submit(
                    self.state_machine.transition,
                    context, aggregate.id, ContractStatus.EXPIRED.value, {"reason": "end_date_passed"}
                )
                for aggregate in overdue
            }
            # Barrier: every outcome is known before the local view changes
            outcomes = {}
            for contract_id, future in futures.items():
                try:
                    outcomes[contract_id] = future.result()
                except Exception as e:
                    report.failures[contract_id] = str(e)

        by_id: Dict[int, ContractAggregate] = {a.id: a for a in aggregates}
        for contract_id, outcome in outcomes.items():
            aggregate = by_id[contract_id]
            aggregate.status = ContractStatus(outcome.contract.status)
            aggregate.expired_at = outcome.contract.expired_at
            aggregate.updated_at = outcome.contract.updated_at
            report.expired.append(contract_id)
        report.expired.sort()

        if report.failures:
            failure = PartialBatchFailure(report.expired, report.failures)
            logger.error(f" Expiry sweep incomplete, retrying on next sweep: {failure}")
        return report
