"""
Conversation turns. One row per user prompt, one row per assistant completion.
Immutable once written; replayed in created_at order.
"""

from typing import Optional

from sqlalchemy import String, Text, Integer, JSON
from sqlalchemy.orm import Mapped, mapped_column

from .base import TenantBase


class UserPrompt(TenantBase):
    __tablename__ = "user_prompt"

    user_id: Mapped[str] = mapped_column(String, nullable=False)
    conversation_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    prompt: Mapped[str] = mapped_column(Text, nullable=False)
    selections: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)


class CompletionPrompt(TenantBase):
    __tablename__ = "completion_prompt"

    user_id: Mapped[str] = mapped_column(String, nullable=False)
    conversation_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    prompt: Mapped[str] = mapped_column(Text, nullable=False)
    tools: Mapped[dict] = mapped_column(JSON, nullable=True, default=dict)
    prompt_tokens: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    completion_tokens: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_tokens: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
