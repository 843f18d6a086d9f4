"""
Integration Models - Toast credentials and sync status per tenant
"""
from sqlalchemy import Column, String, Text, Boolean, DateTime
import enum

from possync.core import Base, settings
from .base import UUIDMixin, TimestampMixin

DEFAULT_API_HOSTNAME = settings.TOAST_API_HOSTNAME


class SyncStatus(str, enum.Enum):
    SUCCESS = "success"
    ERROR = "error"
    IN_PROGRESS = "in_progress"
    NEVER = "never"


class PosIntegration(Base, UUIDMixin, TimestampMixin):
    """
    Toast API credentials for one tenant, plus the outcome of its last sync
    """
    __tablename__ = "pos_integration"

    tenant_id = Column(String(100), nullable=False, unique=True, index=True)

    # API Credentials (should be encrypted in production)
    toast_client_id = Column(String(200), nullable=False)
    toast_client_secret = Column(String(500), nullable=False)
    restaurant_guid = Column(String(100), nullable=False)
    api_hostname = Column(String(300), default=DEFAULT_API_HOSTNAME, nullable=False)

    is_active = Column(Boolean, default=True, nullable=False)

    # Status fields, the only ones the sync writes
    last_sync_at = Column(DateTime(timezone=True))
    last_sync_status = Column(String(20), default=SyncStatus.NEVER.value, nullable=False)
    last_sync_error = Column(Text)

    def __repr__(self):
        return f"<PosIntegration {self.tenant_id}:{self.restaurant_guid}>"

    def mark_in_progress(self):
        self.last_sync_status = SyncStatus.IN_PROGRESS.value
        self.last_sync_error = None

    def mark_success(self, finished_at):
        self.last_sync_status = SyncStatus.SUCCESS.value
        self.last_sync_at = finished_at
        self.last_sync_error = None

    def mark_failed(self, error_message: str):
        self.last_sync_status = SyncStatus.ERROR.value
        self.last_sync_error = error_message
