"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from backend.app.api.v1.endpoints import client_ledger

router = APIRouter()

# Client Accounts Ledger endpoints
router.include_router(client_ledger.router)
