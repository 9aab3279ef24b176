"""
Common mixins for persisted models
"""
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TimestampMixin:
    """Mixin for models that need timestamp tracking"""

    # Python-side defaults keep microsecond precision on every backend; the
    # invoice allocator orders by created_at.
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)
