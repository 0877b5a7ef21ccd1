"""
Conversations API.

POST   /v1/conversations                    — Create a conversation for a project/template
GET    /v1/conversations                    — List conversations of a project/template
GET    /v1/conversations/{conversation_id}  — Get one conversation
PATCH  /v1/conversations/{conversation_id}  — Partial update (ConversationPatch)
DELETE /v1/conversations/{conversation_id}  — Delete a conversation and its history
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, ConfigDict, field_validator
from sqlalchemy import delete as sql_delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.auth import AuthenticatedUser
from ..core.dependencies import get_db, require_tenant
from ..models.base import utcnow
from ..models.conversation import Conversation, PromptConfigTemplate
from ..models.history import CompletionPrompt, UserPrompt

logger = logging.getLogger(__name__)

conversations_router = APIRouter(prefix="/conversations", tags=["conversations"])


class ConversationCreate(BaseModel):
    title: str = ""
    description: Optional[str] = None
    conversation_type: str = "chat"


class ConversationPatch(BaseModel):
    """Only the fields present in the request body are written."""
    model_config = ConfigDict(extra="forbid")

    title: Optional[str] = None
    description: Optional[str] = None
    prompt_configuration: Optional[str] = None
    agent_name: Optional[str] = None

    @field_validator("title")
    @classmethod
    def title_not_null(cls, v: Optional[str]) -> str:
        # Only reached when the field is sent; the column is NOT NULL
        if v is None:
            raise ValueError("title cannot be null")
        return v


# Patch field → column
PATCH_COLUMNS = {
    "title": "title",
    "description": "description",
    "prompt_configuration": "conversation_config_template_id",
    "agent_name": "agent_name",
}


class ConversationOut(BaseModel):
    id: str
    user_id: str
    project_id: Optional[str] = None
    template_id: Optional[str] = None
    community_template_id: Optional[str] = None
    conversation_configuration_id: Optional[str] = None
    agent_name: Optional[str] = None
    title: str
    conversation_type: str
    description: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, c: Conversation) -> "ConversationOut":
        return cls(
            id=c.id,
            user_id=c.user_id,
            project_id=c.project_id,
            template_id=c.template_id,
            community_template_id=c.community_template_id,
            conversation_configuration_id=c.conversation_config_template_id,
            agent_name=c.agent_name,
            title=c.title,
            conversation_type=c.conversation_type,
            description=c.description,
            created_at=c.created_at,
            updated_at=c.updated_at,
        )


def apply_patch(convo: Conversation, patch: ConversationPatch) -> list[str]:
    """Copy set fields onto the row. Returns the columns written."""
    changes = patch.model_dump(exclude_unset=True)
    for field_name, value in changes.items():
        setattr(convo, PATCH_COLUMNS[field_name], value)
    return [PATCH_COLUMNS[f] for f in changes]


def _owner_filter(
    project_id: Optional[str],
    template_id: Optional[str],
    community_template_id: Optional[str],
):
    if project_id:
        return Conversation.project_id == project_id
    if template_id:
        return Conversation.template_id == template_id
    if community_template_id:
        return Conversation.community_template_id == community_template_id
    raise HTTPException(
        status_code=400,
        detail="Conversation needs to belong to either project or private/community template",
    )


async def _get_prompt_template(
    db: AsyncSession, tenant_id: str, template_id: str
) -> PromptConfigTemplate:
    template = (await db.execute(
        select(PromptConfigTemplate).where(
            PromptConfigTemplate.tenant_id == tenant_id,
            PromptConfigTemplate.id == template_id,
        )
    )).scalar_one_or_none()
    if not template:
        raise HTTPException(status_code=404, detail="Prompt configuration not found")
    return template


async def _get_owned(db: AsyncSession, tenant_id: str, conversation_id: str) -> Conversation:
    convo = (await db.execute(
        select(Conversation).where(
            Conversation.tenant_id == tenant_id,
            Conversation.id == conversation_id,
        )
    )).scalar_one_or_none()
    if not convo:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return convo


@conversations_router.post("", response_model=ConversationOut)
async def create_conversation(
    body: ConversationCreate,
    project_id: Optional[str] = Query(default=None),
    template_id: Optional[str] = Query(default=None),
    community_template_id: Optional[str] = Query(default=None),
    conversation_configuration_id: Optional[str] = Query(default=None),
    agent_name: Optional[str] = Query(default=None),
    user: AuthenticatedUser = Depends(require_tenant),
    db: AsyncSession = Depends(get_db),
):
    """Create a conversation anchored to exactly one resource group."""
    _owner_filter(project_id, template_id, community_template_id)

    title = body.title
    if conversation_configuration_id:
        template = await _get_prompt_template(db, user.tenant_id, conversation_configuration_id)
        title = title or template.title or ""

    convo = Conversation(
        tenant_id=user.tenant_id,
        user_id=user.user_id,
        project_id=project_id or None,
        template_id=template_id or None,
        community_template_id=community_template_id or None,
        conversation_config_template_id=conversation_configuration_id or None,
        agent_name=agent_name or None,
        title=title or "Quick Chat",
        conversation_type=body.conversation_type or "chat",
        description=body.description,
    )
    db.add(convo)
    await db.flush()
    await db.refresh(convo)
    logger.info("Created conversation %s (tenant=%s)", convo.id, user.tenant_id)

    return ConversationOut.from_row(convo)


@conversations_router.get("", response_model=list[ConversationOut])
async def list_conversations(
    project_id: Optional[str] = Query(default=None),
    template_id: Optional[str] = Query(default=None),
    community_template_id: Optional[str] = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    user: AuthenticatedUser = Depends(require_tenant),
    db: AsyncSession = Depends(get_db),
):
    """List conversations of one resource group, most recently active first."""
    owner = _owner_filter(project_id, template_id, community_template_id)
    result = await db.execute(
        select(Conversation)
        .where(Conversation.tenant_id == user.tenant_id, owner)
        .order_by(Conversation.updated_at.desc())
        .limit(limit)
        .offset(offset)
    )
    return [ConversationOut.from_row(c) for c in result.scalars().all()]


@conversations_router.get("/{conversation_id}", response_model=ConversationOut)
async def get_conversation(
    conversation_id: str,
    user: AuthenticatedUser = Depends(require_tenant),
    db: AsyncSession = Depends(get_db),
):
    return ConversationOut.from_row(await _get_owned(db, user.tenant_id, conversation_id))


@conversations_router.patch("/{conversation_id}", response_model=ConversationOut)
async def update_conversation(
    conversation_id: str,
    patch: ConversationPatch,
    user: AuthenticatedUser = Depends(require_tenant),
    db: AsyncSession = Depends(get_db),
):
    if not patch.model_fields_set:
        raise HTTPException(status_code=400, detail="No fields to update")

    convo = await _get_owned(db, user.tenant_id, conversation_id)
    if patch.prompt_configuration:
        await _get_prompt_template(db, user.tenant_id, patch.prompt_configuration)

    columns = apply_patch(convo, patch)
    convo.updated_at = utcnow()
    await db.flush()
    await db.refresh(convo)
    logger.info("Updated conversation %s: %s", conversation_id, ", ".join(columns))

    return ConversationOut.from_row(convo)


@conversations_router.delete("/{conversation_id}")
async def delete_conversation(
    conversation_id: str,
    user: AuthenticatedUser = Depends(require_tenant),
    db: AsyncSession = Depends(get_db),
):
    """Delete a conversation and its prompt/completion history."""
    convo = await _get_owned(db, user.tenant_id, conversation_id)

    for model in (UserPrompt, CompletionPrompt):
        await db.execute(
            sql_delete(model).where(
                model.tenant_id == user.tenant_id,
                model.conversation_id == convo.id,
            )
        )
    await db.delete(convo)
    await db.flush()

    return {"deleted": True, "conversation_id": conversation_id}
