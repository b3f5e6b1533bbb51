"""
Contracts Module Init
File: contractflow/api/api_v1/contracts/__init__.py
"""

from fastapi import APIRouter
from . import comments, contracts

router = APIRouter()

# Comment routes first: /contracts/comments/... must not be read as a contract id
router.include_router(comments.router)
router.include_router(contracts.router)
