"""
Conversations and the prompt-configuration templates they point at.

A conversation anchors history replay: its `last_chat_completion_id` is the
vendor response id that the next prompt links to as `previous_response_id`.
"""

from typing import Optional

from sqlalchemy import String, Text, JSON
from sqlalchemy.orm import Mapped, mapped_column

from .base import TenantBase


class Conversation(TenantBase):
    __tablename__ = "conversation"

    user_id: Mapped[str] = mapped_column(String, nullable=False, index=True)

    # Exactly one of these anchors the conversation to its resource group
    project_id: Mapped[Optional[str]] = mapped_column(String, nullable=True, index=True)
    template_id: Mapped[Optional[str]] = mapped_column(String, nullable=True, index=True)
    community_template_id: Mapped[Optional[str]] = mapped_column(String, nullable=True, index=True)

    conversation_config_template_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    last_chat_completion_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    agent_name: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    title: Mapped[str] = mapped_column(String, nullable=False, default="Quick Chat")
    conversation_type: Mapped[str] = mapped_column(String, nullable=False, default="chat")
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


class PromptConfigTemplate(TenantBase):
    __tablename__ = "prompt_config_template"

    title: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    configuration: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    # {"ai_temperature": 0.7, "prompt_role": "system", "system_config": "...",
    #  "top_p": 1, "max_tokens": 2000}
