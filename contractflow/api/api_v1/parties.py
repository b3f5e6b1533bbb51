# =====================================================
# FILE: contractflow/api/api_v1/parties.py
# Counterparties and properties contracts are written against
# =====================================================

from fastapi import APIRouter, Depends, status
from fastapi.concurrency import run_in_threadpool
from typing import List

from contractflow.core.context import RequestContext
from contractflow.core.dependencies import get_lifecycle_service, get_request_context
from contractflow.schemas.requests import (
    CounterpartyCreateRequest,
    CounterpartyView,
    PropertyCreateRequest,
    PropertyView,
)

router = APIRouter(tags=["counterparties", "properties"])


@router.get("/counterparties", response_model=List[CounterpartyView])
async def list_counterparties(
    context: RequestContext = Depends(get_request_context),
    lifecycle=Depends(get_lifecycle_service)
):
    rows = await run_in_threadpool(lifecycle.list_counterparties, context)
    return [CounterpartyView.model_validate(row) for row in rows]


@router.post("/counterparties", response_model=CounterpartyView, status_code=status.HTTP_201_CREATED)
async def create_counterparty(
    request: CounterpartyCreateRequest,
    context: RequestContext = Depends(get_request_context),
    lifecycle=Depends(get_lifecycle_service)
):
    """Register a vendor or client the company contracts with"""
    counterparty = await run_in_threadpool(lifecycle.create_counterparty, context, request)
    return CounterpartyView.model_validate(counterparty)


@router.get("/properties", response_model=List[PropertyView])
async def list_properties(
    context: RequestContext = Depends(get_request_context),
    lifecycle=Depends(get_lifecycle_service)
):
    rows = await run_in_threadpool(lifecycle.list_properties, context)
    return [PropertyView.model_validate(row) for row in rows]


@router.post("/properties", response_model=PropertyView, status_code=status.HTTP_201_CREATED)
async def create_property(
    request: PropertyCreateRequest,
    context: RequestContext = Depends(get_request_context),
    lifecycle=Depends(get_lifecycle_service)
):
    property_row = await run_in_threadpool(lifecycle.create_property, context, request)
    return PropertyView.model_validate(property_row)
