"""
Conversation history: user prompts and assistant completions, replayed in
creation order.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.base import utcnow
from ..models.conversation import Conversation
from ..models.history import CompletionPrompt, UserPrompt

logger = logging.getLogger(__name__)


async def new_prompt_resource(
    db: AsyncSession,
    tenant_id: str,
    user_id: str,
    conversation_id: str,
    prompt: str,
    selections: Optional[list[dict]] = None,
    created_at: Optional[datetime] = None,
) -> UserPrompt:
    row = UserPrompt(
        tenant_id=tenant_id,
        user_id=user_id,
        conversation_id=conversation_id,
        prompt=prompt,
        selections=list(selections) if selections else None,
        created_at=created_at or utcnow(),
    )
    db.add(row)
    await db.flush()
    logger.debug("Stored user prompt %s (conversation=%s)", row.id, conversation_id)
    return row


def _strip_wrapping_quotes(text: str) -> str:
    if len(text) >= 2 and text.startswith('"') and text.endswith('"'):
        return text[1:-1]
    return text


async def new_completion_resource(
    db: AsyncSession,
    tenant_id: str,
    user_id: str,
    conversation_id: str,
    prompt: str,
    prompt_tokens: int = 0,
    completion_tokens: int = 0,
    total_tokens: int = 0,
    tools: Optional[dict] = None,
    created_at: Optional[datetime] = None,
) -> CompletionPrompt:
    row = CompletionPrompt(
        tenant_id=tenant_id,
        user_id=user_id,
        conversation_id=conversation_id,
        prompt=_strip_wrapping_quotes(prompt),
        tools=tools or {},
        prompt_tokens=prompt_tokens,
        completion_tokens=completion_tokens,
        total_tokens=total_tokens,
        created_at=created_at or utcnow(),
    )
    db.add(row)
    await db.flush()
    logger.debug("Stored completion %s (conversation=%s)", row.id, conversation_id)
    return row


async def get_combined_messages(
    db: AsyncSession, tenant_id: str, conversation_id: str
) -> list[dict]:
    """
    Both sides of a conversation, oldest first.
    User messages always carry a selections list; assistant messages carry None.
    """
    prompts = (await db.execute(
        select(UserPrompt).where(
            UserPrompt.tenant_id == tenant_id,
            UserPrompt.conversation_id == conversation_id,
        )
    )).scalars().all()

    completions = (await db.execute(
        select(CompletionPrompt).where(
            CompletionPrompt.tenant_id == tenant_id,
            CompletionPrompt.conversation_id == conversation_id,
        )
    )).scalars().all()

    messages = [
        {
            "id": p.id,
            "role": "user",
            "created_at": p.created_at,
            "content": p.prompt,
            "selections": p.selections or [],
        }
        for p in prompts
    ]
    messages.extend(
        {
            "id": c.id,
            "role": "assistant",
            "created_at": c.created_at,
            "content": c.prompt,
            "selections": None,
        }
        for c in completions
    )

    messages.sort(key=lambda m: _sort_key(m["created_at"]))
    return messages


def _sort_key(created_at: Optional[datetime]) -> float:
    # SQLite hands back naive datetimes, Postgres aware ones
    if created_at is None:
        return 0.0
    if created_at.tzinfo is None:
        return created_at.replace(tzinfo=utcnow().tzinfo).timestamp()
    return created_at.timestamp()


async def update_last_chat_completion_id(
    db: AsyncSession, tenant_id: str, conversation_id: str, response_id: str
) -> None:
    await db.execute(
        update(Conversation)
        .where(Conversation.tenant_id == tenant_id, Conversation.id == conversation_id)
        .values(last_chat_completion_id=response_id, updated_at=utcnow())
    )
    logger.debug("Conversation %s now continues from %s", conversation_id, response_id)
