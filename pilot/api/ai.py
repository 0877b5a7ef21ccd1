"""
AI API — prompts, history, semantic search, project info.

POST /v1/prompt             — Prompt the model (JSON answer or chunked text/plain stream)
GET  /v1/chat/history       — Replay a conversation
POST /v1/search/documents   — Semantic document search in a project
POST /v1/search/diagrams    — Semantic diagram search in a project
POST /v1/project-info       — Project summary as plain text
"""

import logging
from typing import AsyncGenerator, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import PlainTextResponse, StreamingResponse
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.auth import AuthenticatedUser
from ..core.dependencies import get_chat_context, get_db, get_session_factory, require_tenant
from ..models.base import utcnow
from ..orchestrator.context import (
    ChatContext,
    PromptBody,
    ResourceGroupType,
    ResourceType,
)
from ..orchestrator.orchestrator import record_user_prompt, run_prompt, stream_prompt
from ..orchestrator.params import (
    apply_assistant_config,
    apply_conversation_config,
    apply_user_config,
    default_params,
)
from ..services.history import get_combined_messages
from ..services.llm import get_vendor_client
from ..tools.diagram_search import search_diagrams
from ..tools.document_search import search_documents
from ..tools.project_info import get_project_info
from ..tools.registry import ToolError, ToolRuntime
from ..tools.semantic import SearchArgs, SearchResult

logger = logging.getLogger(__name__)

ai_router = APIRouter(tags=["ai"])

CHUNKED_HEADERS = {"X-Accel-Buffering": "no"}


class PromptResponse(BaseModel):
    message: str
    status: str
    total_tokens: int


async def _logged_stream(chunks: AsyncGenerator[str, None], label: str) -> AsyncGenerator[str, None]:
    # Headers are already sent once the first chunk is out; errors can only be logged
    try:
        async for chunk in chunks:
            yield chunk
    except Exception as e:
        logger.error("%s stream aborted: %s: %s", label, type(e).__name__, e)


@ai_router.post("/prompt", response_model=PromptResponse)
async def prompt(
    body: PromptBody,
    assistant: Optional[str] = Query(default=None),
    ctx: ChatContext = Depends(get_chat_context),
    db: AsyncSession = Depends(get_db),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
):
    """
    Run a prompt through the tool loop.

    With chunked_stream the answer is streamed as text/plain chunks;
    otherwise one JSON object {message, status, total_tokens} is returned.
    """
    started_at = utcnow()

    client, provider = await get_vendor_client(db, ctx.tenant_id)
    runtime = ToolRuntime(client=client, session_factory=session_factory)

    params = default_params(ctx.user_id, body.prompt)
    if ctx.conversation_id:
        await apply_conversation_config(db, ctx, params)
    if assistant:
        await apply_assistant_config(db, assistant, provider, params)
    if body.params:
        apply_user_config(body.params, params)

    record_user_prompt(
        ctx, runtime, body.prompt,
        body.params.selections if body.params else None,
        started_at,
    )

    if body.chunked_stream:
        return StreamingResponse(
            _logged_stream(stream_prompt(ctx, params, runtime), "Prompt"),
            media_type="text/plain; charset=utf-8",
            headers=CHUNKED_HEADERS,
        )

    result = await run_prompt(ctx, params, runtime)
    return PromptResponse(
        message=result.message,
        status=result.status,
        total_tokens=result.total_tokens,
    )


@ai_router.get("/chat/history")
async def chat_history(
    conversation_id: Optional[str] = Query(default=None),
    user: AuthenticatedUser = Depends(require_tenant),
    db: AsyncSession = Depends(get_db),
):
    """Both sides of a conversation, oldest first."""
    if not conversation_id:
        raise HTTPException(status_code=400, detail="Conversation ID is required")

    messages = await get_combined_messages(db, user.tenant_id, conversation_id)
    return {"messages": messages}


def _project_context(
    user: AuthenticatedUser, project_id: Optional[str], resource_type: Optional[ResourceType] = None
) -> ChatContext:
    if not project_id:
        raise HTTPException(status_code=400, detail="Project ID is required")
    return ChatContext(
        user_id=user.user_id,
        tenant_id=user.tenant_id,
        resource_group_type=ResourceGroupType.PROJECT,
        resource_group_id=project_id,
        resource_type=resource_type,
    )


@ai_router.post("/search/documents", response_model=list[SearchResult])
async def document_search(
    args: SearchArgs,
    project_id: Optional[str] = Query(default=None),
    user: AuthenticatedUser = Depends(require_tenant),
    db: AsyncSession = Depends(get_db),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
):
    ctx = _project_context(user, project_id, ResourceType.DOCUMENT)
    client, _ = await get_vendor_client(db, user.tenant_id)
    return await search_documents(ctx, ToolRuntime(client, session_factory), args)


@ai_router.post("/search/diagrams", response_model=list[SearchResult])
async def diagram_search(
    args: SearchArgs,
    project_id: Optional[str] = Query(default=None),
    user: AuthenticatedUser = Depends(require_tenant),
    db: AsyncSession = Depends(get_db),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
):
    ctx = _project_context(user, project_id, ResourceType.DIAGRAM)
    client, _ = await get_vendor_client(db, user.tenant_id)
    return await search_diagrams(ctx, ToolRuntime(client, session_factory), args)


@ai_router.post("/project-info", response_class=PlainTextResponse)
async def project_info(
    project_id: Optional[str] = Query(default=None),
    user: AuthenticatedUser = Depends(require_tenant),
    db: AsyncSession = Depends(get_db),
):
    ctx = _project_context(user, project_id)
    try:
        return await get_project_info(db, ctx)
    except ToolError as e:
        logger.warning("Project info unavailable for %s: %s", project_id, e)
        raise HTTPException(status_code=404, detail="Project not found")
