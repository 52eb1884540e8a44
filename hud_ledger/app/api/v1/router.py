"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from hud_ledger.app.api.v1.endpoints import ledger

router = APIRouter()

# Ledger endpoints
router.include_router(ledger.router)
