"""
API v1 router aggregating all endpoints.
"""

from fastapi import APIRouter

from api.v1.admin_messages import router as admin_messages_router
from api.v1.messages import router as messages_router
from api.v1.votes import router as votes_router

router = APIRouter()

router.include_router(messages_router, prefix="/messages", tags=["Messages"])
router.include_router(votes_router, prefix="/messages", tags=["Votes"])
router.include_router(admin_messages_router, prefix="/admin/messages", tags=["Admin - Messages"])
