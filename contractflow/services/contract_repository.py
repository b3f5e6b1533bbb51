# =====================================================
# FILE: contractflow/services/contract_repository.py
# Per-company cache of assembled contracts
# =====================================================

from datetime import datetime
from typing import Dict, List, Optional
import logging
import threading

from contractflow.schemas.aggregate import ContractAggregate

logger = logging.getLogger(__name__)


class ContractRepository:
    """
    The in-memory view of each company's contracts. Owned by the lifecycle
    service; nothing else writes to it.
    """

    def __init__(self, assembler):
        self.assembler = assembler
        self._contracts: Dict[int, Dict[int, ContractAggregate]] = {}
        self._lock = threading.RLock()

    def load(self, company_id: int) -> List[ContractAggregate]:
        """Assemble every contract of the company and replace the cached set"""
        aggregates = self.assembler.assemble(company_id)
        self.replace(company_id, aggregates)
        return aggregates

    def replace(self, company_id: int, aggregates: List[ContractAggregate]):
        with self._lock:
            self._contracts[company_id] = {a.id: a for a in aggregates}

    def is_loaded(self, company_id: int) -> bool:
        with self._lock:
            return company_id in self._contracts

    def list_contracts(self, company_id: int) -> List[ContractAggregate]:
        with self._lock:
            cached = list(self._contracts.get(company_id, {}).values())
        return sorted(cached, key=lambda a: (a.created_at or datetime.min, a.id))

    def get(self, company_id: int, contract_id: int) -> Optional[ContractAggregate]:
        with self._lock:
            return self._contracts.get(company_id, {}).get(contract_id)

    def find_by_renewal_request(self, company_id: int, request_id: int) -> Optional[ContractAggregate]:
        with self._lock:
            for aggregate in self._contracts.get(company_id, {}).values():
                if aggregate.renewal_request and aggregate.renewal_request.id == request_id:
                    return aggregate
        return None

    def refresh(self, company_id: int, contract_id: int) -> Optional[ContractAggregate]:
        """Re-assemble one contract and merge it into the cached set"""
        assembled = self.assembler.assemble(company_id, [contract_id])
        with self._lock:
            cache = self._contracts.setdefault(company_id, {})
            if not assembled:
                cache.pop(contract_id, None)
                return None
            cache[contract_id] = assembled[0]
        return assembled[0]

    def invalidate(self, company_id: Optional[int] = None):
        with self._lock:
            if company_id is None:
                self._contracts.clear()
            else:
                self._contracts.pop(company_id, None)
        logger.debug(f" Contract cache invalidated for {company_id or 'all companies'}")
