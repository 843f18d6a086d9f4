"""
API Router - JSON Endpoints
"""
from fastapi import APIRouter
from datetime import datetime

from possync.api.sync import router as sync_router
from possync.api.integrations import integrations_router
from possync.api.orders import orders_router

api_router = APIRouter(tags=["API"])

api_router.include_router(sync_router)
api_router.include_router(integrations_router)
api_router.include_router(orders_router)


@api_router.get("/status")
async def api_status():
    return {"status": "ok", "timestamp": datetime.now().isoformat()}
