# Pydantic Schemas Package
from .sync import SyncRequest, SyncOrderRequest, SyncResponse, SyncStats, SyncStatusResponse
from .integration import IntegrationCreate, IntegrationTestRequest, IntegrationResponse, IntegrationTestResponse
from .order import OrderMatchRequest, OrderMatchResponse, LeadSuggestion, LeadSuggestionsResponse

__all__ = [
    "SyncRequest", "SyncOrderRequest", "SyncResponse", "SyncStats", "SyncStatusResponse",
    "IntegrationCreate", "IntegrationTestRequest", "IntegrationResponse", "IntegrationTestResponse",
    "OrderMatchRequest", "OrderMatchResponse", "LeadSuggestion", "LeadSuggestionsResponse",
]
