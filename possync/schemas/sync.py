"""
Sync Schemas
"""
from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime


class SyncRequest(BaseModel):
    tenant_id: str = Field(..., alias="tenantId", min_length=1)
    start_date: Optional[datetime] = Field(None, alias="startDate")
    end_date: Optional[datetime] = Field(None, alias="endDate")
    full_sync: bool = Field(False, alias="fullSync")
    days_back: Optional[int] = Field(None, alias="daysBack", ge=1)

    class Config:
        populate_by_name = True


class SyncOrderRequest(BaseModel):
    tenant_id: str = Field(..., alias="tenantId", min_length=1)
    order_guid: str = Field(..., alias="orderGuid", min_length=1)

    class Config:
        populate_by_name = True


class DateRange(BaseModel):
    start: Optional[datetime] = None
    end: Optional[datetime] = None


class SyncStats(BaseModel):
    orders_processed: int = Field(0, alias="ordersProcessed")
    orders_upserted: int = Field(0, alias="ordersUpserted")
    orders_skipped: int = Field(0, alias="ordersSkipped")
    leads_matched: int = Field(0, alias="leadsMatched")
    line_items_inserted: int = Field(0, alias="lineItemsInserted")
    payments_inserted: int = Field(0, alias="paymentsInserted")
    date_range: Optional[DateRange] = Field(None, alias="dateRange")

    class Config:
        populate_by_name = True

    @classmethod
    def from_run(cls, stats) -> "SyncStats":
        return cls(
            orders_processed=stats.orders_processed,
            orders_upserted=stats.orders_upserted,
            orders_skipped=stats.orders_skipped,
            leads_matched=stats.leads_matched,
            line_items_inserted=stats.line_items_inserted,
            payments_inserted=stats.payments_inserted,
            date_range=DateRange(start=stats.start_date, end=stats.end_date),
        )


class SyncResponse(BaseModel):
    success: bool
    stats: Optional[SyncStats] = None
    error: Optional[str] = None


class SyncStatusResponse(BaseModel):
    tenant_id: str = Field(..., alias="tenantId")
    is_active: bool = Field(..., alias="isActive")
    last_sync_at: Optional[datetime] = Field(None, alias="lastSyncAt")
    last_sync_status: str = Field(..., alias="lastSyncStatus")
    last_sync_error: Optional[str] = Field(None, alias="lastSyncError")

    class Config:
        from_attributes = True
        populate_by_name = True
