# =====================================================
# FILE: contractflow/api/api_v1/notifications.py
# In-app notifications of the current user
# =====================================================

from fastapi import APIRouter, Depends, Query
from fastapi.concurrency import run_in_threadpool
from typing import Dict, List

from contractflow.core.context import RequestContext
from contractflow.core.dependencies import get_lifecycle_service, get_request_context
from contractflow.schemas.requests import NotificationReadRequest, NotificationView
from contractflow.utils.datetime_helpers import format_datetime_to_iso

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=List[NotificationView])
async def list_notifications(
    limit: int = Query(50, ge=1, le=200),
    context: RequestContext = Depends(get_request_context),
    lifecycle=Depends(get_lifecycle_service)
):
    """Most recent notifications first"""
    rows = await run_in_threadpool(lifecycle.list_notifications, context, limit)
    return [
        NotificationView(
            id=row.id,
            notification_type=row.notification_type,
            message=row.message,
            related_entity_type=row.related_entity_type,
            related_entity_id=row.related_entity_id,
            is_read=bool(row.is_read),
            created_at=format_datetime_to_iso(row.created_at)
        )
        for row in rows
    ]


@router.post("/read", response_model=Dict[str, int])
async def mark_read(
    request: NotificationReadRequest,
    context: RequestContext = Depends(get_request_context),
    lifecycle=Depends(get_lifecycle_service)
):
    """Mark the given notifications (or all of them) as read"""
    updated = await run_in_threadpool(lifecycle.mark_notifications_read, context, request.notification_ids)
    return {"updated": updated}
