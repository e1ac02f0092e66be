"""
API v1 router aggregating all endpoints.
"""

from fastapi import APIRouter

from api.v1.groups import router as groups_router

router = APIRouter()

router.include_router(groups_router, prefix="/groups", tags=["Groups"])
