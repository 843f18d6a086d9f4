"""
Order Schemas - manual lead matching
"""
from pydantic import BaseModel, Field
from typing import Optional, List
from uuid import UUID


class OrderMatchRequest(BaseModel):
    lead_id: UUID = Field(..., alias="leadId")

    class Config:
        populate_by_name = True


class OrderMatchResponse(BaseModel):
    id: UUID
    lead_id: Optional[UUID] = Field(None, alias="leadId")

    class Config:
        from_attributes = True
        populate_by_name = True


class LeadSuggestion(BaseModel):
    lead_id: UUID = Field(..., alias="leadId")
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    score: int
    match_level: str = Field(..., alias="matchLevel")

    class Config:
        populate_by_name = True


class LeadSuggestionsResponse(BaseModel):
    order_id: UUID = Field(..., alias="orderId")
    suggestions: List[LeadSuggestion] = []

    class Config:
        populate_by_name = True
