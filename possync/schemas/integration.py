"""
Integration Schemas - Toast credentials in, status out (secrets never leave the service)
"""
from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from datetime import datetime
from uuid import UUID


class IntegrationCreate(BaseModel):
    tenant_id: str = Field(..., alias="tenantId", min_length=1)
    restaurant_guid: str = Field(..., alias="restaurantGuid", min_length=1)
    toast_client_id: str = Field(..., alias="toastClientId", min_length=1)
    toast_client_secret: str = Field(..., alias="toastClientSecret", min_length=1)
    api_hostname: Optional[str] = Field(None, alias="apiHostname")

    class Config:
        populate_by_name = True


class IntegrationTestRequest(BaseModel):
    client_id: str = Field(..., alias="clientId", min_length=1)
    client_secret: str = Field(..., alias="clientSecret", min_length=1)
    restaurant_guid: str = Field(..., alias="restaurantGuid", min_length=1)
    api_hostname: Optional[str] = Field(None, alias="apiHostname")
    days_back: int = Field(1, alias="daysBack", ge=1)

    class Config:
        populate_by_name = True


class IntegrationResponse(BaseModel):
    id: UUID
    tenant_id: str = Field(..., alias="tenantId")
    restaurant_guid: str = Field(..., alias="restaurantGuid")
    api_hostname: str = Field(..., alias="apiHostname")
    is_active: bool = Field(..., alias="isActive")
    last_sync_at: Optional[datetime] = Field(None, alias="lastSyncAt")
    last_sync_status: str = Field(..., alias="lastSyncStatus")
    last_sync_error: Optional[str] = Field(None, alias="lastSyncError")
    created_at: Optional[datetime] = Field(None, alias="createdAt")

    class Config:
        from_attributes = True
        populate_by_name = True


class OrderSample(BaseModel):
    count: int
    sample: List[Dict[str, Any]] = []
    start: datetime
    end: datetime


class IntegrationTestResponse(BaseModel):
    success: bool
    error: Optional[str] = None
    authenticated: bool = False
    orders: Optional[OrderSample] = None
