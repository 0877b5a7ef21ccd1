"""
Main orchestration loop.

Call vendor → record usage → run requested tools → feed outputs back → repeat
until the model answers without tool calls.

Each vendor turn is either:
  - tool-call pending: input becomes the tool outputs, previous_response_id
    links the new request to the turn that asked for them, loop again
  - terminal: the text is the answer; with a conversation bound it is
    persisted and becomes the conversation's continuation point

The loop is capped at MAX_TOOL_ROUNDS vendor turns per request.
"""

import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import AsyncGenerator, Optional

from ..core.database import session_scope
from ..services.background import fire_and_forget
from ..services.history import (
    new_completion_resource,
    new_prompt_resource,
    update_last_chat_completion_id,
)
from ..services.llm import VENDOR_NAME, VendorError, output_text, usage_of
from ..services.usage import TokenUsageRecord, new_token_usage_resource
from ..tools.executor import execute_tool_calls
from ..tools.registry import ToolRuntime
from .context import ChatContext, DocumentSelection

logger = logging.getLogger(__name__)

MAX_TOOL_ROUNDS = 10

TEXT_DELTA_EVENT = "response.output_text.delta"
TEXT_DONE_EVENT = "response.output_text.done"
COMPLETED_EVENT = "response.completed"


class ToolLoopExceeded(Exception):
    def __init__(self, rounds: int = MAX_TOOL_ROUNDS):
        super().__init__(f"tool loop exceeded {rounds} rounds")
        self.rounds = rounds


class EmptyCompletion(Exception):
    def __init__(self):
        super().__init__("no output text available in response")


@dataclass
class PromptResult:
    message: str
    status: str
    total_tokens: int


@dataclass
class CompletionStep:
    message: str
    status: str
    completion_tokens: int
    should_continue: bool


# ── Best-effort writes ────────────────────────────────────────────

async def _store_usage(runtime: ToolRuntime, record: TokenUsageRecord) -> None:
    async with session_scope(runtime.session_factory) as db:
        await new_token_usage_resource(db, record)


async def _store_completion(
    runtime: ToolRuntime, ctx: ChatContext, response: dict, text: str
) -> None:
    usage = usage_of(response)
    async with session_scope(runtime.session_factory) as db:
        await new_completion_resource(
            db,
            tenant_id=ctx.tenant_id,
            user_id=ctx.user_id,
            conversation_id=ctx.conversation_id,
            prompt=text,
            prompt_tokens=usage["input_tokens"],
            completion_tokens=usage["output_tokens"],
            total_tokens=usage["total_tokens"],
        )
        await update_last_chat_completion_id(
            db, ctx.tenant_id, ctx.conversation_id, response.get("id", "")
        )


async def _store_prompt(
    runtime: ToolRuntime,
    ctx: ChatContext,
    prompt: str,
    selections: list[dict],
    created_at: datetime,
) -> None:
    async with session_scope(runtime.session_factory) as db:
        await new_prompt_resource(
            db,
            tenant_id=ctx.tenant_id,
            user_id=ctx.user_id,
            conversation_id=ctx.conversation_id,
            prompt=prompt,
            selections=selections,
            created_at=created_at,
        )


def record_user_prompt(
    ctx: ChatContext,
    runtime: ToolRuntime,
    prompt: str,
    selections: Optional[list[DocumentSelection]],
    created_at: datetime,
) -> None:
    """Persist the user's side of the turn. No-op for quick chat."""
    if not ctx.conversation_id:
        return
    fire_and_forget(
        _store_prompt(
            runtime, ctx, prompt,
            [s.model_dump() for s in selections or []],
            created_at,
        ),
        label=f"user_prompt:{ctx.conversation_id}",
    )


def record_token_usage(ctx: ChatContext, runtime: ToolRuntime, response: dict) -> None:
    usage = usage_of(response)
    fire_and_forget(
        _store_usage(runtime, TokenUsageRecord(
            tenant_id=ctx.tenant_id,
            user_id=ctx.user_id,
            conversation_id=ctx.conversation_id,
            ai_vendor=VENDOR_NAME,
            ai_model=response.get("model", ""),
            prompt_tokens=usage["input_tokens"],
            completion_tokens=usage["output_tokens"],
        )),
        label=f"token_usage:{response.get('id', '')}",
    )


# ── One vendor turn ───────────────────────────────────────────────

async def handle_completion(
    ctx: ChatContext,
    response: dict,
    params: dict,
    runtime: ToolRuntime,
) -> CompletionStep:
    """Process one vendor response and prepare `params` for the next turn, if any."""
    usage = usage_of(response)
    logger.info(
        "Vendor turn %s: in=%d out=%d total=%d",
        response.get("id"), usage["input_tokens"], usage["output_tokens"], usage["total_tokens"],
    )
    record_token_usage(ctx, runtime, response)

    params["input"] = []
    tool_outputs = await execute_tool_calls(ctx, response.get("output") or [], runtime)
    text = output_text(response)

    if tool_outputs:
        params["input"] = tool_outputs
        params["previous_response_id"] = response.get("id")
        return CompletionStep(
            message=text,
            status=response.get("status", ""),
            completion_tokens=usage["output_tokens"],
            should_continue=True,
        )

    if not text:
        raise EmptyCompletion()

    if ctx.conversation_id:
        params["previous_response_id"] = response.get("id")
        fire_and_forget(
            _store_completion(runtime, ctx, response, text),
            label=f"completion:{ctx.conversation_id}",
        )

    return CompletionStep(
        message=text,
        status=response.get("status", ""),
        completion_tokens=usage["output_tokens"],
        should_continue=False,
    )


# ── Blocking ──────────────────────────────────────────────────────

async def run_prompt(ctx: ChatContext, params: dict, runtime: ToolRuntime) -> PromptResult:
    """
    Loop until the model answers. total_tokens is the sum of every turn's
    completion tokens.
    """
    start = time.monotonic()
    total_tokens = 0

    for round_num in range(MAX_TOOL_ROUNDS):
        response = await runtime.client.create_response(params)
        step = await handle_completion(ctx, response, params, runtime)
        total_tokens += step.completion_tokens

        if not step.should_continue:
            logger.info(
                "Prompt done in %d round(s), %dms, %d tokens",
                round_num + 1, int((time.monotonic() - start) * 1000), total_tokens,
            )
            return PromptResult(message=step.message, status=step.status, total_tokens=total_tokens)

    logger.error("Tool loop exceeded %d rounds (conversation=%s)", MAX_TOOL_ROUNDS, ctx.conversation_id)
    raise ToolLoopExceeded(MAX_TOOL_ROUNDS)


# ── Streaming ─────────────────────────────────────────────────────

def _part_key(event: dict) -> tuple:
    """Which output_text part of the response an event belongs to."""
    return event.get("output_index"), event.get("content_index")


async def stream_prompt(
    ctx: ChatContext, params: dict, runtime: ToolRuntime
) -> AsyncGenerator[str, None]:
    """
    Yield text deltas as they arrive. Tool rounds run between streamed turns;
    text already yielded stays sent if a later turn fails.

    Deltas for a part that has already reported its full text are dropped.
    Other parts of the same response keep streaming.
    """
    for round_num in range(MAX_TOOL_ROUNDS):
        final: Optional[dict] = None
        finished_parts: set[tuple] = set()

        async for event in runtime.client.stream_response(params):
            event_type = event.get("type")
            if event_type == TEXT_DONE_EVENT:
                finished_parts.add(_part_key(event))
            elif event_type == TEXT_DELTA_EVENT and _part_key(event) not in finished_parts:
                delta = event.get("delta") or ""
                if delta:
                    yield delta
            elif event_type == COMPLETED_EVENT:
                final = event.get("response")

        if final is None:
            raise VendorError("stream ended without a completed response")

        step = await handle_completion(ctx, final, params, runtime)
        if not step.should_continue:
            logger.info("Streamed prompt done in %d round(s)", round_num + 1)
            return

    logger.error("Tool loop exceeded %d rounds (conversation=%s)", MAX_TOOL_ROUNDS, ctx.conversation_id)
    raise ToolLoopExceeded(MAX_TOOL_ROUNDS)
