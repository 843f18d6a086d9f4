"""
Order Service - read-side helpers for synced orders and manual lead linking
"""
from typing import Optional, List, Dict, Any, Iterable
from datetime import date
from sqlalchemy.orm import Session
import logging

from possync.models import Lead, PosOrder
from possync.services import store
from possync.services.lead_matcher import suggest_leads

logger = logging.getLogger(__name__)


def get_order(db: Session, order_id) -> Optional[PosOrder]:
    return db.query(PosOrder).filter(PosOrder.id == order_id).first()


def set_order_lead(db: Session, order: PosOrder, lead_id) -> PosOrder:
    """Link an order to a lead chosen by a person; the lead must belong to the same tenant"""
    lead = db.query(Lead).filter(Lead.id == lead_id, Lead.tenant_id == order.tenant_id).first()
    if lead is None:
        raise LookupError(f"Lead {lead_id} not found for tenant {order.tenant_id}")

    order.lead_id = lead.id
    db.commit()
    db.refresh(order)

    logger.info(f"Manually matched order {order.pos_order_guid} to lead {lead.id}")
    return order


def lead_suggestions(db: Session, order: PosOrder, limit: int = 5) -> List[Dict[str, Any]]:
    """Scored candidate leads for an order, best first"""
    leads = store.query(db, Lead, tenant_id=order.tenant_id)
    return suggest_leads(
        leads,
        order.customer_name,
        order.customer_email,
        order.customer_phone,
        limit=limit,
    )


def _format_business_date(key: str) -> Dict[str, str]:
    if len(key) != 8 or not key.isdigit():
        return {"date": key, "day_of_week": ""}
    try:
        day = date(int(key[:4]), int(key[4:6]), int(key[6:8]))
    except ValueError:
        return {"date": key, "day_of_week": ""}
    return {"date": day.isoformat(), "day_of_week": day.strftime("%A")}


def summarize_orders(raw_orders: Iterable[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Summary of raw Toast orders grouped by business date.
    Sums every check: net sales from `amount`, gross sales from `totalAmount`.
    """
    by_date: Dict[str, Dict[str, Any]] = {}
    sources = set()
    revenue_centers = set()
    total_orders = 0
    total_net = 0.0
    total_gross = 0.0

    for order in raw_orders:
        total_orders += 1
        net = sum(float(check.get("amount") or 0) for check in order.get("checks") or [])
        gross = sum(float(check.get("totalAmount") or 0) for check in order.get("checks") or [])
        total_net += net
        total_gross += gross

        key = str(order.get("businessDate") or "unknown")
        bucket = by_date.setdefault(key, {"count": 0, "net_sales": 0.0, "gross_sales": 0.0})
        bucket["count"] += 1
        bucket["net_sales"] += net
        bucket["gross_sales"] += gross

        if order.get("source"):
            sources.add(order["source"])
        revenue_center = order.get("revenueCenter")
        if isinstance(revenue_center, dict) and revenue_center.get("guid"):
            revenue_centers.add(revenue_center["guid"])

    breakdown = [
        {**_format_business_date(key), **values}
        for key, values in by_date.items()
    ]
    breakdown.sort(key=lambda row: row["date"], reverse=True)

    return {
        "total_orders": total_orders,
        "total_net_sales": round(total_net, 2),
        "total_gross_sales": round(total_gross, 2),
        "sources": sorted(sources),
        "revenue_centers": sorted(revenue_centers),
        "date_breakdown": breakdown,
    }
