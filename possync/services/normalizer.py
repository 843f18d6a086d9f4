"""
Order Normalizer - flattens a raw Toast order into order, line item and payment rows

Pure functions: no I/O, raw payloads are never modified.
"""
import logging
from datetime import datetime, timezone
from typing import Optional, List, Dict, Any

from dateutil import parser as date_parser

from possync.integrations.base import (
    NormalizedOrder,
    NormalizedLineItem,
    NormalizedPayment,
    NormalizationResult,
)
from possync.integrations.errors import MalformedOrderError

logger = logging.getLogger(__name__)


def parse_toast_datetime(value: Any) -> Optional[datetime]:
    """Parse Toast timestamps such as 2024-01-15T18:30:00.000+0000"""
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    try:
        return date_parser.parse(str(value))
    except (ValueError, OverflowError):
        logger.debug(f"Unparsable Toast timestamp: {value!r}")
        return None


def _as_list(value: Any, what: str, order_guid: str) -> List[Any]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise MalformedOrderError(f"Order {order_guid}: {what} is {type(value).__name__}, expected a list")
    return value


def _as_dict(value: Any, what: str, order_guid: str) -> Dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise MalformedOrderError(f"Order {order_guid}: {what} is {type(value).__name__}, expected an object")
    return value


def _money(value: Any, what: str, order_guid: str) -> float:
    if value is None:
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        raise MalformedOrderError(f"Order {order_guid}: {what} is not numeric ({value!r})")


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _delivery_address(delivery: Dict[str, Any]) -> Optional[str]:
    line = f"{delivery.get('address1') or ''} {delivery.get('address2') or ''}".strip()
    return line or None


def _ref_guid(value: Any) -> Optional[str]:
    return value.get("guid") if isinstance(value, dict) else None


def flatten_selections(
    selections: List[Any],
    tenant_id: str,
    order_guid: str,
) -> List[NormalizedLineItem]:
    """
    Depth-first pre-order walk of selections and their modifiers.
    Parents always come before their modifiers. No depth limit.
    """
    items: List[NormalizedLineItem] = []
    stack = [(selection, None) for selection in reversed(selections)]

    while stack:
        selection, parent_guid = stack.pop()
        if not isinstance(selection, dict):
            raise MalformedOrderError(f"Order {order_guid}: selection is {type(selection).__name__}, expected an object")
        selection_guid = selection.get("guid")
        if not selection_guid:
            raise MalformedOrderError(f"Order {order_guid}: selection without guid")

        quantity = selection.get("quantity") or 1
        quantity = _money(quantity, "selection quantity", order_guid)
        pre_discount_price = _money(selection.get("preDiscountPrice"), "preDiscountPrice", order_guid)

        items.append(NormalizedLineItem(
            tenant_id=tenant_id,
            pos_selection_guid=selection_guid,
            pos_item_guid=_ref_guid(selection.get("item")),
            display_name=selection.get("displayName") or "Unknown Item",
            quantity=quantity,
            unit_price=pre_discount_price / max(quantity, 1),
            pre_discount_price=pre_discount_price,
            price=_money(selection.get("price"), "price", order_guid),
            tax=_money(selection.get("tax"), "tax", order_guid),
            voided=bool(selection.get("voided")),
            seat_number=selection.get("seatNumber"),
            parent_selection_guid=parent_guid,
        ))

        modifiers = _as_list(selection.get("modifiers"), "modifiers", order_guid)
        stack.extend((modifier, selection_guid) for modifier in reversed(modifiers))

    return items


def normalize_payment(payment: Any, tenant_id: str, order_guid: str) -> NormalizedPayment:
    if not isinstance(payment, dict):
        raise MalformedOrderError(f"Order {order_guid}: payment is {type(payment).__name__}, expected an object")
    if not payment.get("guid"):
        raise MalformedOrderError(f"Order {order_guid}: payment without guid")

    return NormalizedPayment(
        tenant_id=tenant_id,
        pos_payment_guid=payment["guid"],
        payment_type=payment.get("type") or "OTHER",
        amount=_money(payment.get("amount"), "payment amount", order_guid),
        tip_amount=_money(payment.get("tipAmount"), "tipAmount", order_guid),
        amount_tendered=_money(payment.get("amountTendered"), "amountTendered", order_guid),
        card_type=payment.get("cardType"),
        last_four=payment.get("lastFour"),
        paid_date=parse_toast_datetime(payment.get("paidDate")),
        refund_status=payment.get("refundStatus"),
        voided=payment.get("voidInfo") is not None,
    )


def normalize_order(
    raw_order: Dict[str, Any],
    tenant_id: str,
    synced_at: Optional[datetime] = None,
) -> NormalizationResult:
    """
    Convert one Toast order into flat rows.

    Only the first check is used: amounts, customer, line items and payments
    all come from it. The order tip is the sum of that check's payment tips.
    """
    if not isinstance(raw_order, dict):
        raise MalformedOrderError(f"Order payload is {type(raw_order).__name__}, expected an object")
    order_guid = raw_order.get("guid")
    if not order_guid:
        raise MalformedOrderError("Order without guid")

    checks = _as_list(raw_order.get("checks"), "checks", order_guid)
    check = _as_dict(checks[0] if checks else None, "check", order_guid)
    customer = _as_dict(check.get("customer"), "customer", order_guid)
    delivery = _as_dict(raw_order.get("deliveryInfo"), "deliveryInfo", order_guid)

    payments = [
        normalize_payment(payment, tenant_id, order_guid)
        for payment in _as_list(check.get("payments"), "payments", order_guid)
    ]
    line_items = flatten_selections(
        _as_list(check.get("selections"), "selections", order_guid),
        tenant_id,
        order_guid,
    )

    business_date = raw_order.get("businessDate")

    order = NormalizedOrder(
        tenant_id=tenant_id,
        pos_order_guid=order_guid,
        pos_check_guid=check.get("guid"),
        pos_customer_guid=customer.get("guid"),
        display_number=_text(check.get("displayNumber") or raw_order.get("displayNumber")),

        business_date=int(business_date) if business_date else None,
        opened_date=parse_toast_datetime(raw_order.get("openedDate")),
        closed_date=parse_toast_datetime(raw_order.get("closedDate")),
        paid_date=parse_toast_datetime(raw_order.get("paidDate")),

        source=raw_order.get("source"),
        voided=bool(raw_order.get("voided")),
        number_of_guests=raw_order.get("numberOfGuests") or 1,

        subtotal=_money(check.get("amount"), "check amount", order_guid),
        tax_amount=_money(check.get("taxAmount"), "check taxAmount", order_guid),
        tip_amount=sum(payment.tip_amount for payment in payments),
        total_amount=_money(check.get("totalAmount"), "check totalAmount", order_guid),

        customer_first_name=_text(customer.get("firstName")),
        customer_last_name=_text(customer.get("lastName")),
        customer_email=_text(customer.get("email")),
        customer_phone=_text(customer.get("phone")),

        delivery_address=_delivery_address(delivery) if delivery else None,
        delivery_city=delivery.get("city"),
        delivery_state=delivery.get("state"),
        delivery_zip=delivery.get("zipCode"),

        raw_payload=raw_order,
        synced_at=synced_at or datetime.now(timezone.utc),
    )

    return NormalizationResult(order=order, line_items=line_items, payments=payments)
