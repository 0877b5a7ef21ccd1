"""
Vendor configuration: per-tenant AI provider credentials and the global
catalog of named assistants.
"""

from sqlalchemy import Boolean, String, JSON
from sqlalchemy.orm import Mapped, mapped_column

from .base import RecordBase, TenantBase


class AiProvider(TenantBase):
    __tablename__ = "ai_providers"

    name: Mapped[str] = mapped_column(String, nullable=False)  # "openai"
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    config_schema: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    # {"openai_api_key": "...", "openai_project_id": "...",
    #  "vector_stores": {"architecture-docs": "vs_123"}}


class Assistant(RecordBase):
    __tablename__ = "assistants"

    name: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    config: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
