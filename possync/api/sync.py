"""
Sync API - Trigger and monitor Toast order synchronization
"""
from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
import logging

from possync.core.database import get_db
from possync.integrations.errors import IntegrationNotFound, RateLimited
from possync.schemas.sync import SyncRequest, SyncOrderRequest, SyncResponse, SyncStats, SyncStatusResponse
from possync.services import integration_service
from possync.services.sync_service import OrderSyncService

router = APIRouter(prefix="/sync", tags=["sync"])
logger = logging.getLogger(__name__)


def _error(status_code: int, message: str, headers=None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message}, headers=headers)


def rate_limited_response(e: RateLimited) -> JSONResponse:
    headers = {"Retry-After": str(e.retry_after)} if e.retry_after else None
    return _error(429, str(e), headers)


@router.post("", response_model=SyncResponse, response_model_exclude_none=True)
async def trigger_sync(data: SyncRequest, db: Session = Depends(get_db)):
    """
    Run one synchronization for the tenant and return its stats
    """
    service = OrderSyncService(db)
    try:
        stats = await service.run_sync(
            data.tenant_id,
            start_date=data.start_date,
            end_date=data.end_date,
            full_sync=data.full_sync,
            days_back=data.days_back,
        )
    except IntegrationNotFound as e:
        return _error(404, str(e))
    except RateLimited as e:
        return rate_limited_response(e)
    except Exception as e:
        logger.error(f"Sync failed for tenant {data.tenant_id}: {e}")
        return _error(500, str(e) or e.__class__.__name__)

    return SyncResponse(success=True, stats=SyncStats.from_run(stats))


@router.post("/order", response_model=SyncResponse, response_model_exclude_none=True)
async def sync_single_order(data: SyncOrderRequest, db: Session = Depends(get_db)):
    """
    Re-fetch one order by guid and upsert it
    """
    service = OrderSyncService(db)
    try:
        await service.sync_order(data.tenant_id, data.order_guid)
    except IntegrationNotFound as e:
        return _error(404, str(e))
    except RateLimited as e:
        return rate_limited_response(e)
    except Exception as e:
        logger.error(f"Single order sync failed for {data.order_guid}: {e}")
        return _error(500, str(e) or e.__class__.__name__)

    return SyncResponse(success=True)


@router.get("/status", response_model=SyncStatusResponse)
async def get_sync_status(
    tenant_id: str = Query(..., alias="tenantId"),
    db: Session = Depends(get_db),
):
    """Last sync outcome recorded on the tenant's integration"""
    integration = integration_service.get_integration(db, tenant_id)
    if not integration:
        raise HTTPException(status_code=404, detail="Integration not found")
    return SyncStatusResponse.model_validate(integration)
