"""
Raw Toast payload builders and a canned POS client for tests
"""
from typing import Any, Dict, List, Optional

from possync.integrations.base import BasePOSClient


def make_selection(guid: str, name: str = "Burger", pre_discount_price: float = 10.0,
                   quantity: float = 1, modifiers: Optional[List[dict]] = None, **extra) -> Dict[str, Any]:
    selection = {
        "guid": guid,
        "displayName": name,
        "item": {"guid": f"item-{guid}"},
        "quantity": quantity,
        "preDiscountPrice": pre_discount_price,
        "price": pre_discount_price,
        "tax": round(pre_discount_price * 0.1, 2),
        "voided": False,
        "modifiers": modifiers or [],
    }
    selection.update(extra)
    return selection


def make_payment(guid: str, amount: float = 10.0, tip: float = 0.0, **extra) -> Dict[str, Any]:
    payment = {
        "guid": guid,
        "type": "CREDIT",
        "amount": amount,
        "tipAmount": tip,
        "amountTendered": amount + tip,
        "cardType": "VISA",
        "lastFour": "4242",
        "paidDate": "2024-01-15T19:00:00.000+0000",
        "refundStatus": "NONE",
        "voidInfo": None,
    }
    payment.update(extra)
    return payment


def make_order(guid: str, email: Optional[str] = None, phone: Optional[str] = None,
               selections: Optional[List[dict]] = None, payments: Optional[List[dict]] = None,
               amount: float = 10.0, total: float = 11.0, **extra) -> Dict[str, Any]:
    order = {
        "guid": guid,
        "displayNumber": "17",
        "businessDate": 20240115,
        "openedDate": "2024-01-15T18:30:00.000+0000",
        "closedDate": "2024-01-15T19:05:00.000+0000",
        "paidDate": "2024-01-15T19:00:00.000+0000",
        "source": "In Store",
        "voided": False,
        "numberOfGuests": 2,
        "checks": [{
            "guid": f"check-{guid}",
            "displayNumber": "42",
            "amount": amount,
            "taxAmount": round(total - amount, 2),
            "totalAmount": total,
            "customer": {
                "guid": f"customer-{guid}",
                "firstName": "Ada",
                "lastName": "Lovelace",
                "email": email,
                "phone": phone,
            },
            "selections": selections if selections is not None else [make_selection(f"sel-{guid}")],
            "payments": payments if payments is not None else [make_payment(f"pay-{guid}", amount=total)],
        }],
    }
    order.update(extra)
    return order


class FakeToastClient(BasePOSClient):
    """Returns canned orders, or raises `error` from every call"""
    PLATFORM_NAME = "fake"

    def __init__(self, orders: Optional[List[dict]] = None, error: Optional[Exception] = None):
        self.orders = orders or []
        self.error = error
        self.windows = []

    async def authenticate(self) -> str:
        if self.error:
            raise self.error
        return "token"

    async def get_orders(self, start_date, end_date):
        self.windows.append((start_date, end_date))
        if self.error:
            raise self.error
        return list(self.orders)

    async def get_order(self, order_guid: str):
        if self.error:
            raise self.error
        for order in self.orders:
            if order.get("guid") == order_guid:
                return order
        raise KeyError(order_guid)
