"""
Lead Model - CRM leads, read by the sync for matching only
"""
from sqlalchemy import Column, String
from sqlalchemy.orm import relationship
from possync.core import Base
from .base import UUIDMixin, TimestampMixin


class Lead(Base, UUIDMixin, TimestampMixin):
    """CRM Lead"""
    __tablename__ = "lead"

    tenant_id = Column(String(100), nullable=False, index=True)
    first_name = Column(String(100))
    last_name = Column(String(100))
    email = Column(String(200))
    phone = Column(String(50))

    # Relationships
    orders = relationship("PosOrder", back_populates="lead")

    @property
    def full_name(self) -> str:
        return f"{self.first_name or ''} {self.last_name or ''}".strip()
