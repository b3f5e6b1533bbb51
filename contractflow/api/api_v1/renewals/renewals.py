# =====================================================
# FILE: contractflow/api/api_v1/renewals/renewals.py
# Renewal request decisions, terms and feedback
# =====================================================

from fastapi import APIRouter, Depends, status
from fastapi.concurrency import run_in_threadpool
import logging

from contractflow.core.context import RequestContext
from contractflow.core.dependencies import get_lifecycle_service, get_request_context
from contractflow.schemas.aggregate import ContractAggregate
from contractflow.schemas.requests import FeedbackCreateRequest, RenewalDecisionRequest, RenewalTermsUpdate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/renewals", tags=["renewals"])


@router.post("/{request_id}/decision", response_model=ContractAggregate)
async def decide_renewal(
    request_id: int,
    request: RenewalDecisionRequest,
    context: RequestContext = Depends(get_request_context),
    lifecycle=Depends(get_lifecycle_service)
):
    """AMENDMENT or TERMINATE; the other modes have their own endpoints"""
    logger.info(f"Renewal decision {request.mode.value} on request {request_id} by user {context.user_id}")
    return await run_in_threadpool(lifecycle.decide_renewal, context, request_id, request.mode, request.notes)


@router.put("/{request_id}/terms", response_model=ContractAggregate)
async def update_renewal_terms(
    request_id: int,
    request: RenewalTermsUpdate,
    context: RequestContext = Depends(get_request_context),
    lifecycle=Depends(get_lifecycle_service)
):
    return await run_in_threadpool(lifecycle.update_renewal_terms, context, request_id, request)


@router.post("/{request_id}/feedback", response_model=ContractAggregate, status_code=status.HTTP_201_CREATED)
async def add_feedback(
    request_id: int,
    request: FeedbackCreateRequest,
    context: RequestContext = Depends(get_request_context),
    lifecycle=Depends(get_lifecycle_service)
):
    return await run_in_threadpool(lifecycle.add_renewal_feedback, context, request_id, request.feedback)
