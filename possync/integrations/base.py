"""
Base POS Client - Abstract base class for point-of-sale integrations
"""
from abc import ABC, abstractmethod
from typing import Optional, List, Dict, Any
from datetime import datetime
from dataclasses import dataclass, field, asdict
import logging

logger = logging.getLogger(__name__)


@dataclass
class NormalizedOrder:
    """
    Flat order row produced from one raw POS order
    """
    # Identifiers
    tenant_id: str
    pos_order_guid: str
    pos_check_guid: Optional[str] = None
    pos_customer_guid: Optional[str] = None
    display_number: Optional[str] = None

    # Dates
    business_date: Optional[int] = None  # YYYYMMDD
    opened_date: Optional[datetime] = None
    closed_date: Optional[datetime] = None
    paid_date: Optional[datetime] = None

    source: Optional[str] = None
    voided: bool = False
    number_of_guests: int = 1

    # Amounts
    subtotal: float = 0.0
    tax_amount: float = 0.0
    tip_amount: float = 0.0
    total_amount: float = 0.0

    # Customer Info
    customer_first_name: Optional[str] = None
    customer_last_name: Optional[str] = None
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None

    # Delivery
    delivery_address: Optional[str] = None
    delivery_city: Optional[str] = None
    delivery_state: Optional[str] = None
    delivery_zip: Optional[str] = None

    # Set after matching
    lead_id: Optional[Any] = None

    # Raw data
    raw_payload: Dict[str, Any] = None
    synced_at: Optional[datetime] = None

    def __post_init__(self):
        if self.raw_payload is None:
            self.raw_payload = {}

    @property
    def customer_name(self) -> Optional[str]:
        name = f"{self.customer_first_name or ''} {self.customer_last_name or ''}".strip()
        return name or None

    def to_record(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class NormalizedLineItem:
    """
    Normalized selection; modifiers carry the guid of the selection they modify
    """
    tenant_id: str
    pos_selection_guid: str
    display_name: str
    quantity: float = 1
    unit_price: float = 0.0
    pre_discount_price: float = 0.0
    price: float = 0.0
    tax: float = 0.0
    voided: bool = False
    pos_item_guid: Optional[str] = None
    seat_number: Optional[int] = None
    parent_selection_guid: Optional[str] = None

    @property
    def is_modifier(self) -> bool:
        return self.parent_selection_guid is not None

    def to_record(self) -> Dict[str, Any]:
        record = asdict(self)
        record.pop("parent_selection_guid")
        record["is_modifier"] = self.is_modifier
        return record


@dataclass
class NormalizedPayment:
    """
    Normalized payment on the synchronized check
    """
    tenant_id: str
    pos_payment_guid: str
    payment_type: str = "OTHER"
    amount: float = 0.0
    tip_amount: float = 0.0
    amount_tendered: float = 0.0
    card_type: Optional[str] = None
    last_four: Optional[str] = None
    paid_date: Optional[datetime] = None
    refund_status: Optional[str] = None
    voided: bool = False

    def to_record(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class NormalizationResult:
    order: NormalizedOrder
    line_items: List[NormalizedLineItem] = field(default_factory=list)
    payments: List[NormalizedPayment] = field(default_factory=list)


class BasePOSClient(ABC):
    """
    Abstract base class for POS integrations
    """
    PLATFORM_NAME: str = "base"

    # ========== Authentication ==========

    @abstractmethod
    async def authenticate(self) -> str:
        """
        Return a valid access token, logging in when the cached one is stale
        """
        pass

    async def test_connection(self) -> Dict[str, Any]:
        """Check credentials without raising"""
        try:
            await self.authenticate()
            return {"success": True}
        except Exception as e:
            logger.warning(f"[{self.PLATFORM_NAME}] Connection test failed: {e}")
            return {"success": False, "error": str(e) or e.__class__.__name__}

    # ========== Orders ==========

    @abstractmethod
    async def get_orders(self, start_date: datetime, end_date: datetime) -> List[Dict[str, Any]]:
        """
        Get every order in the window, across all pages
        """
        pass

    @abstractmethod
    async def get_order(self, order_guid: str) -> Dict[str, Any]:
        """
        Get a single order
        """
        pass

    # ========== Utilities ==========

    def _log_api_call(self, method: str, endpoint: str, status_code: int):
        """Log API call for debugging"""
        logger.info(f"[{self.PLATFORM_NAME}] {method} {endpoint} -> {status_code}")
