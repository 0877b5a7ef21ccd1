"""
Token usage ledger. Append-only, one row per vendor call. Billing/analytics only.
"""

from typing import Optional

from sqlalchemy import String, Integer, JSON
from sqlalchemy.orm import Mapped, mapped_column

from .base import TenantBase


class TenantTokenUsage(TenantBase):
    __tablename__ = "tenant_token_usage"

    user_id: Mapped[str] = mapped_column(String, nullable=False)
    conversation_id: Mapped[Optional[str]] = mapped_column(String, nullable=True, index=True)
    ai_vendor: Mapped[str] = mapped_column(String, nullable=False)
    ai_model: Mapped[str] = mapped_column(String, nullable=False)
    configuration: Mapped[dict] = mapped_column(JSON, nullable=True, default=dict)
    prompt_tokens: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    completion_tokens: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
