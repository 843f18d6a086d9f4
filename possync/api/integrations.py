"""
Integrations API - Toast credential setup, connection tests and diagnostics
"""
from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from datetime import datetime, timedelta, timezone
import logging

from possync.api.sync import rate_limited_response
from possync.core.database import get_db
from possync.integrations import ToastCredentials
from possync.integrations.errors import RateLimited
from possync.models.integration import DEFAULT_API_HOSTNAME
from possync.schemas.integration import (
    IntegrationCreate,
    IntegrationResponse,
    IntegrationTestRequest,
    IntegrationTestResponse,
    OrderSample,
)
from possync.services import integration_service, order_service

logger = logging.getLogger(__name__)

integrations_router = APIRouter(prefix="/integrations", tags=["integrations"])

SAMPLE_SIZE = 5


# ========== Setup ==========

@integrations_router.post("", response_model=IntegrationResponse)
async def save_integration(data: IntegrationCreate, db: Session = Depends(get_db)):
    """
    Validate credentials against Toast, then create or update the tenant's integration
    """
    client = integration_service.build_client(ToastCredentials(
        client_id=data.toast_client_id,
        client_secret=data.toast_client_secret,
        restaurant_guid=data.restaurant_guid,
        api_hostname=data.api_hostname or DEFAULT_API_HOSTNAME,
    ))
    result = await client.test_connection()
    if not result["success"]:
        raise HTTPException(status_code=400, detail=f"Invalid Toast credentials: {result.get('error')}")

    integration = integration_service.save_integration(
        db,
        tenant_id=data.tenant_id,
        restaurant_guid=data.restaurant_guid,
        toast_client_id=data.toast_client_id,
        toast_client_secret=data.toast_client_secret,
        api_hostname=data.api_hostname,
    )
    return IntegrationResponse.model_validate(integration)


@integrations_router.get("/{tenant_id}", response_model=IntegrationResponse)
async def get_integration(tenant_id: str, db: Session = Depends(get_db)):
    """Get the tenant's integration (without secrets)"""
    integration = integration_service.get_integration(db, tenant_id)
    if not integration:
        raise HTTPException(status_code=404, detail="Integration not found")
    return IntegrationResponse.model_validate(integration)


@integrations_router.delete("/{tenant_id}")
async def delete_integration(tenant_id: str, db: Session = Depends(get_db)):
    """Delete the tenant's integration"""
    if not integration_service.delete_integration(db, tenant_id):
        raise HTTPException(status_code=404, detail="Integration not found")
    return {"success": True}


# ========== Discovery ==========

@integrations_router.post("/test", response_model=IntegrationTestResponse, response_model_exclude_none=True)
async def test_integration(data: IntegrationTestRequest):
    """
    Authenticate with unsaved credentials and fetch a small sample of recent orders
    """
    client = integration_service.build_client(ToastCredentials(
        client_id=data.client_id,
        client_secret=data.client_secret,
        restaurant_guid=data.restaurant_guid,
        api_hostname=data.api_hostname or DEFAULT_API_HOSTNAME,
    ))

    auth = await client.test_connection()
    if not auth["success"]:
        return IntegrationTestResponse(success=False, error=f"Authentication failed: {auth.get('error')}")

    end = datetime.now(timezone.utc)
    start = end - timedelta(days=data.days_back)
    try:
        orders = await client.get_orders(start, end)
    except Exception as e:
        logger.warning(f"Toast test fetch failed for restaurant {data.restaurant_guid}: {e}")
        return IntegrationTestResponse(success=False, authenticated=True, error=str(e) or "Failed to fetch orders")

    return IntegrationTestResponse(
        success=True,
        authenticated=True,
        orders=OrderSample(count=len(orders), sample=orders[:SAMPLE_SIZE], start=start, end=end),
    )


@integrations_router.get("/{tenant_id}/diagnose")
async def diagnose_integration(
    tenant_id: str,
    days: int = Query(7, ge=1),
    db: Session = Depends(get_db),
):
    """
    Summarize what Toast returns for the last `days` days. Writes nothing.
    """
    integration = integration_service.get_active_integration(db, tenant_id)
    if not integration:
        return JSONResponse(status_code=404, content={"success": False, "error": "No active Toast integration found"})

    end = datetime.now(timezone.utc)
    start = end - timedelta(days=days)
    client = integration_service.get_client_for_integration(integration)

    try:
        orders = await client.get_orders(start, end)
    except RateLimited as e:
        return rate_limited_response(e)
    except Exception as e:
        logger.error(f"Diagnose failed for tenant {tenant_id}: {e}")
        return JSONResponse(status_code=500, content={"success": False, "error": str(e) or "Unknown error"})

    return {
        "success": True,
        "config": {
            "restaurant_guid": integration.restaurant_guid,
            "api_hostname": integration.api_hostname,
        },
        "date_range": {"start": start.isoformat(), "end": end.isoformat(), "days": days},
        "results": order_service.summarize_orders(orders),
    }
