# POS Integrations Package
from .base import BasePOSClient, NormalizedOrder, NormalizedLineItem, NormalizedPayment, NormalizationResult
from .toast import ToastClient
from .token_cache import TokenCache, ToastCredentials
from .errors import (
    PosSyncError,
    AuthenticationError,
    UpstreamFetchError,
    RateLimited,
    MalformedOrderError,
    PerOrderPersistError,
    IntegrationNotFound,
)

__all__ = [
    "BasePOSClient",
    "ToastClient",
    "TokenCache",
    "ToastCredentials",
    "NormalizedOrder",
    "NormalizedLineItem",
    "NormalizedPayment",
    "NormalizationResult",
    "PosSyncError",
    "AuthenticationError",
    "UpstreamFetchError",
    "RateLimited",
    "MalformedOrderError",
    "PerOrderPersistError",
    "IntegrationNotFound",
]
