"""
Editor text actions, streamed as text/plain chunks.

POST /v1/text/{action} — simplify | fix-spelling-and-grammar | shorten | extend |
                         adjust-tone | tldr | writer | autocomplete | project-description
"""

import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.auth import AuthenticatedUser
from ..core.dependencies import get_db, get_session_factory, require_tenant
from ..orchestrator.context import ChatContext
from ..services.llm import get_vendor_client
from ..services.text_assist import (
    TextAction,
    TextRequest,
    ToneRequired,
    build_instructions,
    build_params,
    stream_text_action,
)
from ..tools.registry import ToolRuntime

logger = logging.getLogger(__name__)

text_router = APIRouter(prefix="/text", tags=["text"])


@text_router.post("/{action}")
async def text_action(
    action: TextAction,
    body: TextRequest,
    user: AuthenticatedUser = Depends(require_tenant),
    db: AsyncSession = Depends(get_db),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
):
    try:
        instructions, output_type = build_instructions(action, body.tone)
    except ToneRequired as e:
        raise HTTPException(status_code=400, detail=str(e))

    client, _ = await get_vendor_client(db, user.tenant_id)
    ctx = ChatContext(user_id=user.user_id, tenant_id=user.tenant_id)
    params = build_params(user.user_id, body.text, instructions)

    logger.info("Text action %s (%d chars, %s)", action.value, len(body.text), output_type.value)

    return StreamingResponse(
        stream_text_action(ctx, ToolRuntime(client, session_factory), params, output_type),
        media_type="text/plain; charset=utf-8",
        headers={"X-Accel-Buffering": "no"},
    )
