# =====================================================
# FILE: contractflow/api/api_v1/contracts/comments.py
# Comments on contract versions
# =====================================================

from fastapi import APIRouter, Depends, status
from fastapi.concurrency import run_in_threadpool

from contractflow.core.context import RequestContext
from contractflow.core.dependencies import get_lifecycle_service, get_request_context
from contractflow.schemas.aggregate import ContractAggregate
from contractflow.schemas.requests import CommentCreateRequest, CommentResolveRequest

router = APIRouter(prefix="/contracts", tags=["comments"])


@router.post(
    "/{contract_id}/versions/{version_id}/comments",
    response_model=ContractAggregate,
    status_code=status.HTTP_201_CREATED
)
async def add_comment(
    contract_id: int,
    version_id: int,
    request: CommentCreateRequest,
    context: RequestContext = Depends(get_request_context),
    lifecycle=Depends(get_lifecycle_service)
):
    return await run_in_threadpool(lifecycle.add_comment, context, contract_id, version_id, request.content)


@router.put("/comments/{comment_id}/resolve", response_model=ContractAggregate)
async def resolve_comment(
    comment_id: int,
    request: CommentResolveRequest,
    context: RequestContext = Depends(get_request_context),
    lifecycle=Depends(get_lifecycle_service)
):
    """Resolve (or reopen) a comment"""
    return await run_in_threadpool(lifecycle.resolve_comment, context, comment_id, request.resolved)
