"""
API Routes
"""
from fastapi import APIRouter

from app.api.routes.admin import router as admin_router
from app.api.webhooks.due_dates import router as due_dates_router
from app.api.webhooks.zapi import router as zapi_router

router = APIRouter()

router.include_router(zapi_router, prefix="/webhook", tags=["Webhooks"])
router.include_router(due_dates_router, prefix="/webhooks", tags=["Webhooks"])
router.include_router(admin_router, prefix="/admin", tags=["Admin"])
