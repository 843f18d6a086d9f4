# Jobs Package - Scheduled background tasks
from .order_sync import (
    SyncScheduler,
    APSchedulerTimer,
    HttpSyncTransport,
    LocalSyncTransport,
    start_scheduler,
    stop_scheduler,
)

__all__ = [
    "SyncScheduler",
    "APSchedulerTimer",
    "HttpSyncTransport",
    "LocalSyncTransport",
    "start_scheduler",
    "stop_scheduler",
]
