"""
API v1 Router

Aggregates all v1 endpoint routers.
"""

from fastapi import APIRouter

from recovery.api.v1.endpoints import recovery

router = APIRouter()

# Include account recovery routes
router.include_router(recovery.router)
