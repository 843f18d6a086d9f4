"""
Order Models - flattened Toast orders, line items and payments
"""
from sqlalchemy import Column, String, Numeric, Integer, Boolean, DateTime, ForeignKey, Text, Uuid, UniqueConstraint
from sqlalchemy.orm import relationship
from possync.core import Base
from .base import UUIDMixin, JSONType


class PosOrder(Base, UUIDMixin):
    """One Toast order (first check only)"""
    __tablename__ = "pos_order"

    tenant_id = Column(String(100), nullable=False, index=True)

    # Toast references
    pos_order_guid = Column(String(100), nullable=False)
    pos_check_guid = Column(String(100))
    pos_customer_guid = Column(String(100))
    display_number = Column(String(50))

    # Dates
    business_date = Column(Integer, index=True)  # YYYYMMDD
    opened_date = Column(DateTime(timezone=True))
    closed_date = Column(DateTime(timezone=True))
    paid_date = Column(DateTime(timezone=True))

    source = Column(String(50))
    voided = Column(Boolean, default=False, nullable=False)
    number_of_guests = Column(Integer, default=1)

    # Amounts
    subtotal = Column(Numeric(12, 2), default=0)
    tax_amount = Column(Numeric(12, 2), default=0)
    tip_amount = Column(Numeric(12, 2), default=0)
    total_amount = Column(Numeric(12, 2), default=0)

    # Customer (used for lead matching)
    customer_first_name = Column(String(100))
    customer_last_name = Column(String(100))
    customer_email = Column(String(200))
    customer_phone = Column(String(50))

    # Delivery
    delivery_address = Column(Text)
    delivery_city = Column(String(100))
    delivery_state = Column(String(50))
    delivery_zip = Column(String(20))

    lead_id = Column(Uuid(as_uuid=True), ForeignKey("lead.id"), index=True)

    # Raw data from Toast, kept for audit
    raw_payload = Column(JSONType)
    synced_at = Column(DateTime(timezone=True))

    # Relationships
    lead = relationship("Lead", back_populates="orders")
    items = relationship("PosOrderItem", back_populates="order", cascade="all, delete-orphan")
    payments = relationship("PosPayment", back_populates="order", cascade="all, delete-orphan")

    __table_args__ = (
        UniqueConstraint("tenant_id", "pos_order_guid", name="uq_pos_order_tenant_guid"),
    )

    @property
    def customer_name(self):
        name = f"{self.customer_first_name or ''} {self.customer_last_name or ''}".strip()
        return name or None


class PosOrderItem(Base, UUIDMixin):
    """Order line item; modifiers point at their parent item"""
    __tablename__ = "pos_order_item"

    tenant_id = Column(String(100), nullable=False)
    order_id = Column(Uuid(as_uuid=True), ForeignKey("pos_order.id", ondelete="CASCADE"), nullable=False, index=True)
    parent_item_id = Column(Uuid(as_uuid=True), ForeignKey("pos_order_item.id"))

    pos_selection_guid = Column(String(100), nullable=False)
    pos_item_guid = Column(String(100))

    display_name = Column(String(300))
    quantity = Column(Numeric(10, 3), default=1)
    unit_price = Column(Numeric(12, 2), default=0)
    pre_discount_price = Column(Numeric(12, 2), default=0)
    price = Column(Numeric(12, 2), default=0)
    tax = Column(Numeric(12, 2), default=0)
    voided = Column(Boolean, default=False, nullable=False)
    is_modifier = Column(Boolean, default=False, nullable=False)
    seat_number = Column(Integer)

    # Relationships
    order = relationship("PosOrder", back_populates="items")

    __table_args__ = (
        UniqueConstraint("order_id", "pos_selection_guid", name="uq_pos_order_item_selection"),
    )


class PosPayment(Base, UUIDMixin):
    """Payment applied to the synchronized check"""
    __tablename__ = "pos_payment"

    tenant_id = Column(String(100), nullable=False)
    order_id = Column(Uuid(as_uuid=True), ForeignKey("pos_order.id", ondelete="CASCADE"), nullable=False, index=True)

    pos_payment_guid = Column(String(100), nullable=False)
    payment_type = Column(String(50))  # CREDIT, CASH, GIFTCARD, OTHER...
    amount = Column(Numeric(12, 2), default=0)
    tip_amount = Column(Numeric(12, 2), default=0)
    amount_tendered = Column(Numeric(12, 2), default=0)
    card_type = Column(String(50))
    last_four = Column(String(4))
    paid_date = Column(DateTime(timezone=True))
    refund_status = Column(String(50))
    voided = Column(Boolean, default=False, nullable=False)

    # Relationships
    order = relationship("PosOrder", back_populates="payments")

    __table_args__ = (
        UniqueConstraint("order_id", "pos_payment_guid", name="uq_pos_payment_guid"),
    )
