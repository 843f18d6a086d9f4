"""
Sync error taxonomy
"""
from typing import Optional


class PosSyncError(Exception):
    """Base class for every error raised by the POS sync pipeline"""


class AuthenticationError(PosSyncError):
    """Toast rejected the client credentials"""

    def __init__(self, message: str, status_code: Optional[int] = None, body: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class UpstreamFetchError(PosSyncError):
    """Network failure or non-2xx response while reading orders"""

    def __init__(self, message: str, status_code: Optional[int] = None, body: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class RateLimited(PosSyncError):
    """HTTP 429 from Toast; retry_after is the raw Retry-After header if one was sent"""

    def __init__(self, message: str = "Rate limited by Toast API", retry_after: Optional[str] = None):
        super().__init__(message)
        self.retry_after = retry_after


class MalformedOrderError(PosSyncError, ValueError):
    """Raw order payload does not have the expected shape"""


class PerOrderPersistError(PosSyncError):
    """One order failed to normalize, match or upsert; the run continues"""

    def __init__(self, order_guid: Optional[str], cause: Exception):
        super().__init__(f"Order {order_guid or '<no guid>'} skipped: {cause}")
        self.order_guid = order_guid
        self.cause = cause


class IntegrationNotFound(PosSyncError):
    """No active Toast integration for the tenant"""

    def __init__(self, tenant_id: str):
        super().__init__(f"No active Toast integration found for tenant {tenant_id}")
        self.tenant_id = tenant_id
