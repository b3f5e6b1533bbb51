"""
API v1 router
File: contractflow/api/api_v1/__init__.py
"""

from fastapi import APIRouter

from . import contracts, notifications, parties, renewals

api_router = APIRouter()

api_router.include_router(contracts.router)
api_router.include_router(renewals.router)
api_router.include_router(notifications.router)
api_router.include_router(parties.router)
