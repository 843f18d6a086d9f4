"""
Base Model Mixins
"""
from sqlalchemy import Column, DateTime, JSON, Uuid, func
from sqlalchemy.dialects.postgresql import JSONB
import uuid

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


class UUIDMixin:
    """Mixin for UUID primary key"""
    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)


class TimestampMixin:
    """Mixin for created_at and updated_at timestamps"""
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
