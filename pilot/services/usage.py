"""
Token usage accounting. One row per vendor call.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ..models.usage import TenantTokenUsage

logger = logging.getLogger(__name__)


@dataclass
class TokenUsageRecord:
    tenant_id: str
    user_id: str
    ai_vendor: str
    ai_model: str
    prompt_tokens: int = 0
    completion_tokens: int = 0
    conversation_id: Optional[str] = None
    configuration: dict = field(default_factory=dict)


async def new_token_usage_resource(db: AsyncSession, record: TokenUsageRecord) -> TenantTokenUsage:
    row = TenantTokenUsage(
        tenant_id=record.tenant_id,
        user_id=record.user_id,
        conversation_id=record.conversation_id,
        ai_vendor=record.ai_vendor,
        ai_model=record.ai_model,
        configuration=record.configuration,
        prompt_tokens=record.prompt_tokens,
        completion_tokens=record.completion_tokens,
    )
    db.add(row)
    await db.flush()

    logger.info(
        "Token usage stored: model=%s in=%d out=%d",
        record.ai_model, record.prompt_tokens, record.completion_tokens,
    )
    return row
