# =====================================================
# FILE: contractflow/core/context.py
# Acting company / user passed to every lifecycle operation
# =====================================================

from dataclasses import dataclass
from typing import Optional

from contractflow.core.exceptions import ValidationError


@dataclass(frozen=True)
class RequestContext:
    company_id: Optional[int]
    user_id: Optional[int]
    is_system: bool = False

    @classmethod
    def system(cls, company_id: int) -> "RequestContext":
        """Context for scheduled jobs, which act without a user"""
        return cls(company_id=company_id, user_id=None, is_system=True)

    def require(self) -> "RequestContext":
        if not self.company_id:
            raise ValidationError("No current company in request context")
        if not self.user_id and not self.is_system:
            raise ValidationError("No current user in request context")
        return self
