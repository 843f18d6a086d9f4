from .base import TimestampMixin, UUIDMixin
from .lead import Lead
from .integration import PosIntegration, SyncStatus
from .order import PosOrder, PosOrderItem, PosPayment

__all__ = [
    # Base
    "TimestampMixin", "UUIDMixin",
    # CRM
    "Lead",
    # Integration
    "PosIntegration", "SyncStatus",
    # Orders
    "PosOrder", "PosOrderItem", "PosPayment",
]
