# =====================================================
# FILE: contractflow/core/dependencies.py
# FastAPI dependencies: request context and lifecycle service
# =====================================================

from typing import Optional

from fastapi import Header, Request

from contractflow.core.context import RequestContext


async def get_request_context(
    x_company_id: Optional[int] = Header(None),
    x_user_id: Optional[int] = Header(None)
) -> RequestContext:
    """
    Acting company and user, as set by the authenticating gateway in front
    of this service. Missing values are rejected by the service layer.
    """
    return RequestContext(company_id=x_company_id, user_id=x_user_id)


def get_lifecycle_service(request: Request):
    return request.app.state.lifecycle
