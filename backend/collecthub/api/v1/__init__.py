"""API v1 router aggregation."""

from fastapi import APIRouter

from collecthub.api.v1.admin_collect import router as admin_collect_router
from collecthub.api.v1.collector_queue import router as collector_queue_router
from collecthub.api.v1.receive import router as receive_router

router = APIRouter(prefix="/api/v1")

router.include_router(admin_collect_router)

# Mounted at the root: workers call these paths directly
worker_routers = [collector_queue_router, receive_router]
