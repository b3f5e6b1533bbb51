"""
Renewals Module Init
File: contractflow/api/api_v1/renewals/__init__.py
"""

from .renewals import router

__all__ = ["router"]
