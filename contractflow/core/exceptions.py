# =====================================================
# FILE: contractflow/core/exceptions.py
# Lifecycle Error Taxonomy
# =====================================================

from typing import Dict, List, Optional


class ContractFlowError(Exception):
    """Base class for every lifecycle error."""


class ValidationError(ContractFlowError):
    """Raised before any store call when the request itself is invalid."""


class NotFoundError(ContractFlowError):
    """Raised when a contract or related row is not visible in the company scope."""


class RemoteTransitionError(ContractFlowError):
    """The store rejected a write (invalid edge, concurrent conflict, database error)."""

    def __init__(self, message: str, contract_id: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.contract_id = contract_id


class PartialBatchFailure(ContractFlowError):
    """Some items of a batch failed while the rest were applied."""

    def __init__(self, succeeded: List[int], failures: Dict[int, str]):
        self.succeeded = list(succeeded)
        self.failures = dict(failures)
        super().__init__(
            f"{len(self.failures)} of {len(self.succeeded) + len(self.failures)} items failed: "
            + ", ".join(f"{item_id}: {error}" for item_id, error in sorted(self.failures.items()))
        )


class CascadingUpdateError(ContractFlowError):
    """The supersession side effect failed after the successor already committed."""

    def __init__(self, successor_id: int, parent_id: int, reason: str):
        self.successor_id = successor_id
        self.parent_id = parent_id
        self.reason = reason
        super().__init__(
            f"Contract {successor_id} is ACTIVE but parent {parent_id} could not be superseded: {reason}"
        )


class StepFailure(ContractFlowError):
    """One named step of a best-effort write sequence failed."""

    def __init__(self, step: str, reason: str):
        self.step = step
        self.reason = reason
        super().__init__(f"Step '{step}' failed: {reason}")
