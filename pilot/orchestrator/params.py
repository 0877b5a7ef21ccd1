"""
Request parameter assembly for the Responses API.

Layers, applied in order (later layers win):
  1. defaults (quick chat)
  2. conversation: stored prompt-config template, history linkage, function tools
  3. named assistant: model/sampling overrides plus hosted tools
  4. per-request user options: web search, extra instructions, document selections

Any failure aborts the request.
"""

import logging
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import get_settings
from ..models.conversation import Conversation, PromptConfigTemplate
from ..models.provider import Assistant
from ..services.llm import ProviderConfig
from ..tools.registry import list_tools
from .context import ChatContext, UserPromptParams

logger = logging.getLogger(__name__)

WEB_SEARCH_TOOL = {"type": "web_search_preview_2025_03_11", "search_context_size": "medium"}
WEB_SEARCH_TOOL_CHOICE = {"type": "web_search_preview"}

SELECTIONS_INSTRUCTIONS = (
    "You will find document selections in user input. In most cases, ignore any HTML "
    "tags or labels like 'Document Selection 1'; focus on what the text says as that's "
    "the only thing user sees."
)


class ConversationNotFound(Exception):
    pass


class AssistantNotFound(Exception):
    pass


class PromptConfiguration(BaseModel):
    """Stored conversation template (prompt_config_template.configuration)."""
    model_config = ConfigDict(extra="ignore")

    ai_temperature: float = 0.5
    prompt_role: str = "system"
    system_config: str = ""
    top_p: float = 1.0
    max_tokens: int = 4000


class AssistantParams(BaseModel):
    """Stored assistant definition (assistants.config)."""
    model_config = ConfigDict(extra="ignore")

    model: str = ""
    instructions: Optional[str] = None
    include: list[str] = Field(default_factory=list)
    metadata: Optional[dict[str, str]] = None
    reasoning: Optional[dict[str, Any]] = None
    max_output_tokens: Optional[int] = None
    parallel_tool_calls: Optional[bool] = None
    temperature: Optional[float] = None
    top_p: Optional[float] = None
    truncation: str = ""
    file_search: Optional[dict[str, Any]] = None
    web_search: Optional[dict[str, Any]] = None
    function_calls: list[dict[str, Any]] = Field(default_factory=list)
    output_json_object: bool = False


def _append_instructions(params: dict, extra: str) -> None:
    current = params.get("instructions")
    params["instructions"] = f"{current}\n{extra}" if current else extra


def default_params(user_id: str, prompt: str) -> dict:
    settings = get_settings()
    return {
        "model": settings.default_llm_model,
        "user": user_id,
        "instructions": settings.default_instructions,
        "temperature": settings.default_llm_temperature,
        "top_p": settings.default_llm_top_p,
        "max_output_tokens": settings.default_llm_max_output_tokens,
        "input": prompt,
    }


async def apply_conversation_config(db: AsyncSession, ctx: ChatContext, params: dict) -> Conversation:
    convo = (await db.execute(
        select(Conversation).where(
            Conversation.tenant_id == ctx.tenant_id,
            Conversation.id == ctx.conversation_id,
        )
    )).scalar_one_or_none()
    if convo is None:
        raise ConversationNotFound(f"Conversation {ctx.conversation_id} not found")

    # previous_response_id only resolves against vendor-stored responses
    params["store"] = True

    if convo.conversation_config_template_id:
        template = (await db.execute(
            select(PromptConfigTemplate).where(
                PromptConfigTemplate.tenant_id == ctx.tenant_id,
                PromptConfigTemplate.id == convo.conversation_config_template_id,
            )
        )).scalar_one_or_none()
        if template is None:
            raise LookupError(
                f"Prompt configuration {convo.conversation_config_template_id} not found"
            )

        config = PromptConfiguration.model_validate(template.configuration or {})
        params["temperature"] = config.ai_temperature
        params["top_p"] = config.top_p
        params["max_output_tokens"] = config.max_tokens
        params["instructions"] = config.system_config

    if convo.last_chat_completion_id:
        params["previous_response_id"] = convo.last_chat_completion_id

    params.setdefault("tools", []).extend(list_tools(ctx))
    return convo


def merge_assistant_params(
    params: dict,
    assistant: AssistantParams,
    provider: Optional[ProviderConfig] = None,
) -> None:
    if assistant.model:
        params["model"] = assistant.model
    if assistant.instructions is not None:
        params["instructions"] = assistant.instructions
    if assistant.include:
        params["include"] = list(assistant.include)
    if assistant.metadata is not None:
        params["metadata"] = dict(assistant.metadata)
    if assistant.reasoning is not None:
        params["reasoning"] = dict(assistant.reasoning)
    if assistant.max_output_tokens is not None:
        params["max_output_tokens"] = assistant.max_output_tokens
    if assistant.parallel_tool_calls is not None:
        params["parallel_tool_calls"] = assistant.parallel_tool_calls
    if assistant.temperature is not None:
        params["temperature"] = assistant.temperature
    if assistant.top_p is not None:
        params["top_p"] = assistant.top_p
    if assistant.truncation:
        params["truncation"] = assistant.truncation

    tools = params.setdefault("tools", [])

    if assistant.file_search is not None and provider is not None:
        file_search = dict(assistant.file_search)
        file_search["type"] = "file_search"
        # Stored configs name vector stores; the tenant's provider maps names to ids
        store_ids = []
        for store_name in file_search.get("vector_store_ids") or []:
            store_id = provider.vector_stores.get(store_name)
            if store_id:
                store_ids.append(store_id)
            else:
                logger.warning("Vector store '%s' not configured for tenant", store_name)
        file_search["vector_store_ids"] = store_ids
        tools.append(file_search)

    if assistant.web_search is not None:
        web_search = dict(assistant.web_search)
        web_search.setdefault("type", WEB_SEARCH_TOOL["type"])
        tools.append(web_search)

    for function in assistant.function_calls:
        definition = dict(function)
        definition["type"] = "function"
        tools.append(definition)

    if assistant.output_json_object:
        params["text"] = {"format": {"type": "json_object"}}

    if not tools:
        params.pop("tools")


async def apply_assistant_config(
    db: AsyncSession,
    name: str,
    provider: Optional[ProviderConfig],
    params: dict,
) -> None:
    raw = (await db.execute(
        select(Assistant.config).where(Assistant.name == name, Assistant.is_active.is_(True))
    )).scalars().first()
    if raw is None:
        raise AssistantNotFound(f"Assistant '{name}' not found")

    merge_assistant_params(params, AssistantParams.model_validate(raw), provider)
    logger.info("Applied assistant config: %s (model=%s)", name, params.get("model"))


def apply_user_config(user_params: UserPromptParams, params: dict) -> None:
    if user_params.web_search:
        params.setdefault("tools", []).append(dict(WEB_SEARCH_TOOL))
        params["tool_choice"] = dict(WEB_SEARCH_TOOL_CHOICE)

    if user_params.additional_instructions:
        _append_instructions(params, user_params.additional_instructions)

    if user_params.selections:
        blocks = "".join(
            f"Document selection {i}: ```html\n{selection.data}\n```\n"
            for i, selection in enumerate(user_params.selections, start=1)
        )
        params["input"] = f"{blocks}\n\n{params.get('input', '')}"
        _append_instructions(params, SELECTIONS_INSTRUCTIONS)
