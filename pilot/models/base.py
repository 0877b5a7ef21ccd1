"""
Base models. Tenant-owned rows inherit TenantBase; the few global catalog
tables (assistants) inherit RecordBase.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import String, DateTime, func
from sqlalchemy.orm import Mapped, mapped_column

from ..core.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_uuid() -> str:
    return str(uuid.uuid4())


class RecordBase(Base):
    """Abstract base: string UUID primary key plus timestamps."""

    __abstract__ = True

    id: Mapped[str] = mapped_column(
        String, primary_key=True, default=new_uuid
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class TenantBase(RecordBase):
    """Abstract base with tenant_id on every row. Every query filters on it."""

    __abstract__ = True

    tenant_id: Mapped[str] = mapped_column(
        String, nullable=False, index=True
    )
