# =====================================================
# FILE: contractflow/api/api_v1/contracts/contracts.py
# Contract lifecycle endpoints
# =====================================================

from fastapi import APIRouter, Depends, status
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel
from typing import List, Optional
import logging

from contractflow.core.context import RequestContext
from contractflow.core.dependencies import get_lifecycle_service, get_request_context
from contractflow.schemas.aggregate import ContractAggregate
from contractflow.schemas.requests import (
    ApprovalRequestBody,
    ContractCreateRequest,
    RenegotiationResult,
    RenewalNotesRequest,
    SigningStatusRequest,
    StepDecisionRequest,
    TransitionRequest,
    VersionSubmitRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/contracts", tags=["contracts"])


# =====================================================
# PYDANTIC MODELS
# =====================================================

class RenegotiationResponse(BaseModel):
    """Step outcomes plus the successor draft, when it could be assembled"""
    result: RenegotiationResult
    successor: Optional[ContractAggregate] = None


# =====================================================
# CONTRACTS
# =====================================================

@router.get("", response_model=List[ContractAggregate])
async def list_contracts(
    context: RequestContext = Depends(get_request_context),
    lifecycle=Depends(get_lifecycle_service)
):
    """Load every contract of the company (runs the expiry sweep)"""
    return await run_in_threadpool(lifecycle.load_aggregates, context)


@router.post("", response_model=ContractAggregate, status_code=status.HTTP_201_CREATED)
async def create_contract(
    request: ContractCreateRequest,
    context: RequestContext = Depends(get_request_context),
    lifecycle=Depends(get_lifecycle_service)
):
    """Create a DRAFT contract with version 1"""
    logger.info(f"📋 Creating contract '{request.title}' for company {context.company_id}")
    return await run_in_threadpool(lifecycle.create_contract, context, request)


@router.get("/{contract_id}", response_model=ContractAggregate)
async def get_contract(
    contract_id: int,
    context: RequestContext = Depends(get_request_context),
    lifecycle=Depends(get_lifecycle_service)
):
    return await run_in_threadpool(lifecycle.get_contract, context, contract_id)


@router.post("/{contract_id}/transitions", response_model=ContractAggregate)
async def transition_contract(
    contract_id: int,
    request: TransitionRequest,
    context: RequestContext = Depends(get_request_context),
    lifecycle=Depends(get_lifecycle_service)
):
    """Apply a status change or an APPROVE_STEP / REJECT_STEP action"""
    return await run_in_threadpool(lifecycle.transition, context, contract_id, request.action, request.payload)


@router.post("/{contract_id}/versions", response_model=ContractAggregate, status_code=status.HTTP_201_CREATED)
async def submit_version(
    contract_id: int,
    request: VersionSubmitRequest,
    context: RequestContext = Depends(get_request_context),
    lifecycle=Depends(get_lifecycle_service)
):
    """New version enters review; existing approval steps are discarded"""
    return await run_in_threadpool(lifecycle.submit_version, context, contract_id, request)


# =====================================================
# APPROVALS & SIGNING
# =====================================================

@router.post("/{contract_id}/approvals", response_model=ContractAggregate)
async def request_approval(
    contract_id: int,
    request: ApprovalRequestBody,
    context: RequestContext = Depends(get_request_context),
    lifecycle=Depends(get_lifecycle_service)
):
    return await run_in_threadpool(lifecycle.request_approval, context, contract_id, request.approver_ids)


@router.post("/{contract_id}/approvals/approve", response_model=ContractAggregate)
async def approve_step(
    contract_id: int,
    request: StepDecisionRequest,
    context: RequestContext = Depends(get_request_context),
    lifecycle=Depends(get_lifecycle_service)
):
    return await run_in_threadpool(lifecycle.approve_step, context, contract_id, request.step_id, request.comment)


@router.post("/{contract_id}/approvals/reject", response_model=ContractAggregate)
async def reject_step(
    contract_id: int,
    request: StepDecisionRequest,
    context: RequestContext = Depends(get_request_context),
    lifecycle=Depends(get_lifecycle_service)
):
    return await run_in_threadpool(lifecycle.reject_step, context, contract_id, request.step_id, request.comment)


@router.put("/{contract_id}/signing-status", response_model=ContractAggregate)
async def update_signing_status(
    contract_id: int,
    request: SigningStatusRequest,
    context: RequestContext = Depends(get_request_context),
    lifecycle=Depends(get_lifecycle_service)
):
    return await run_in_threadpool(lifecycle.update_signing_status, context, contract_id, request.signing_status)


# =====================================================
# RENEWALS
# =====================================================

@router.post("/{contract_id}/renewal-request", response_model=ContractAggregate, status_code=status.HTTP_201_CREATED)
async def create_renewal_request(
    contract_id: int,
    context: RequestContext = Depends(get_request_context),
    lifecycle=Depends(get_lifecycle_service)
):
    return await run_in_threadpool(lifecycle.create_renewal_request, context, contract_id)


@router.post("/{contract_id}/renew-as-is", response_model=ContractAggregate)
async def renew_as_is(
    contract_id: int,
    request: RenewalNotesRequest,
    context: RequestContext = Depends(get_request_context),
    lifecycle=Depends(get_lifecycle_service)
):
    return await run_in_threadpool(lifecycle.renew_as_is, context, contract_id, request.notes)


@router.post("/{contract_id}/renegotiate", response_model=RenegotiationResponse, status_code=status.HTTP_201_CREATED)
async def start_renegotiation(
    contract_id: int,
    request: RenewalNotesRequest,
    context: RequestContext = Depends(get_request_context),
    lifecycle=Depends(get_lifecycle_service)
):
    """Create the successor draft (NEW_CONTRACT renewal)"""
    result, successor = await run_in_threadpool(lifecycle.start_renegotiation, context, contract_id, request.notes)
    return RenegotiationResponse(result=result, successor=successor)
