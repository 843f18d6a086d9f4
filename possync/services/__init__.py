# Services Package
from . import store
from . import integration_service
from . import lead_matcher
from . import normalizer
from . import order_service
from . import sync_service
from .sync_service import OrderSyncService, SyncRunStats, SyncPhase

__all__ = [
    "store",
    "integration_service",
    "lead_matcher",
    "normalizer",
    "order_service",
    "sync_service",
    "OrderSyncService",
    "SyncRunStats",
    "SyncPhase",
]
