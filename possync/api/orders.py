"""
Orders API - manual lead matching for synced orders
"""
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from uuid import UUID

from possync.core.database import get_db
from possync.schemas.order import (
    OrderMatchRequest,
    OrderMatchResponse,
    LeadSuggestion,
    LeadSuggestionsResponse,
)
from possync.services import order_service

orders_router = APIRouter(prefix="/orders", tags=["orders"])


@orders_router.patch("/{order_id}/match", response_model=OrderMatchResponse)
async def match_order(order_id: UUID, data: OrderMatchRequest, db: Session = Depends(get_db)):
    """Link an order to a lead by hand"""
    order = order_service.get_order(db, order_id)
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")

    try:
        order = order_service.set_order_lead(db, order, data.lead_id)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))

    return OrderMatchResponse.model_validate(order)


@orders_router.get("/{order_id}/lead-suggestions", response_model=LeadSuggestionsResponse)
async def lead_suggestions(
    order_id: UUID,
    limit: int = Query(5, ge=1, le=50),
    db: Session = Depends(get_db),
):
    """Candidate leads for an unmatched order, scored for human review"""
    order = order_service.get_order(db, order_id)
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")

    suggestions = [
        LeadSuggestion(
            lead_id=s["lead"].id,
            name=s["lead"].full_name,
            email=s["lead"].email,
            phone=s["lead"].phone,
            score=s["score"],
            match_level=s["match_level"],
        )
        for s in order_service.lead_suggestions(db, order, limit=limit)
    ]
    return LeadSuggestionsResponse(order_id=order.id, suggestions=suggestions)
