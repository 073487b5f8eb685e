from sqlalchemy import Column, DateTime, String
from sqlalchemy.sql import func


class TimestampMixin:
    """Creation and last-update timestamps, set by the database"""
    created_at = Column(DateTime, default=func.now(), nullable=False)
    updated_at = Column(DateTime, default=func.now(),
                        onupdate=func.now(), nullable=False)


class TenantMixin:
    """Owning restaurant; every promotion query is scoped by it"""
    tenant_id = Column(String(64), nullable=False, index=True)
