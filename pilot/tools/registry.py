"""
Tool registry.

Declares the LLM-callable tools and dispatches a vendor tool call by name.
Each tool declares:
  - a JSON schema, sent to the vendor as a Responses API function tool
  - a pydantic model the raw argument string is decoded into
  - an optional availability predicate on the chat context

The registry never retries. Tool failures propagate to the caller.
"""

import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from pydantic import BaseModel, ValidationError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..orchestrator.context import ChatContext

logger = logging.getLogger(__name__)


class ToolError(Exception):
    """A tool call could not be completed."""


class UnknownToolError(ToolError):
    def __init__(self, name: str):
        super().__init__(f"unknown function call: {name}")
        self.name = name


class InvalidToolArguments(ToolError):
    def __init__(self, raw_arguments: str):
        super().__init__(f"invalid function arguments: {raw_arguments}")
        self.raw_arguments = raw_arguments


@dataclass
class ToolRuntime:
    """
    What a tool implementation may touch besides the chat context.

    Tools run concurrently, so each one opens its own session from
    `session_factory` rather than sharing the request's session.
    """
    client: Any  # ResponsesClient, or any object with create_embedding()
    session_factory: async_sessionmaker[AsyncSession]


ToolHandler = Callable[[ChatContext, Optional[BaseModel], ToolRuntime], Awaitable[str]]


@dataclass
class RegisteredTool:
    name: str
    description: str
    parameters: dict
    handler: ToolHandler
    args_model: Optional[type[BaseModel]] = None
    available: Optional[Callable[[ChatContext], bool]] = None
    failure_label: str = ""

    def is_available(self, ctx: ChatContext) -> bool:
        return self.available is None or self.available(ctx)

    def descriptor(self) -> dict:
        return {
            "type": "function",
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters,
            "strict": False,
        }


_tools: list[RegisteredTool] = []


def tool(
    name: str,
    description: str,
    parameters: Optional[dict] = None,
    args_model: Optional[type[BaseModel]] = None,
    available: Optional[Callable[[ChatContext], bool]] = None,
    failure_label: str = "",
):
    """
    Decorator to register a coroutine as an LLM-callable tool.

    Args:
        name:          Tool name as the vendor will call it.
        description:   Tells the model when to call the tool and what it returns.
        parameters:    JSON Schema for the arguments. None means no arguments.
        args_model:    Pydantic model the raw argument JSON is validated into.
        available:     Predicate on the chat context; the tool is hidden when False.
        failure_label: Prefix for wrapped implementation errors.
    """

    def decorator(func: ToolHandler):
        params = dict(parameters or {"properties": {}})
        params.setdefault("type", "object")

        # Re-registration (module reloaded in tests) replaces the old entry
        _tools[:] = [t for t in _tools if t.name != name]
        _tools.append(RegisteredTool(
            name=name,
            description=description,
            parameters=params,
            handler=func,
            args_model=args_model,
            available=available,
            failure_label=failure_label or name,
        ))
        logger.debug("Registered tool: %s", name)
        return func

    return decorator


def get_tool(name: str) -> Optional[RegisteredTool]:
    for t in _tools:
        if t.name == name:
            return t
    return None


def get_tool_names() -> list[str]:
    return [t.name for t in _tools]


def list_tools(ctx: ChatContext) -> list[dict]:
    """Function-tool descriptors usable in this chat context."""
    return [t.descriptor() for t in _tools if t.is_available(ctx)]


def _decode_arguments(registered: RegisteredTool, raw_arguments: str) -> Optional[BaseModel]:
    if registered.args_model is None:
        return None
    try:
        return registered.args_model.model_validate_json(raw_arguments or "{}")
    except ValidationError:
        raise InvalidToolArguments(raw_arguments)


async def dispatch(
    ctx: ChatContext,
    name: str,
    raw_arguments: str,
    runtime: ToolRuntime,
) -> str:
    """
    Run one tool call. Returns the tool's text output, or "" when the tool
    legitimately found nothing.

    Raises UnknownToolError, InvalidToolArguments (before the implementation
    runs) or ToolError wrapping the implementation's failure.
    """
    registered = get_tool(name)
    if registered is None:
        logger.warning("Unknown tool called: %s", name)
        raise UnknownToolError(name)

    args = _decode_arguments(registered, raw_arguments)

    logger.info(
        "Tool call: %s(%s)",
        name, json.dumps(args.model_dump() if args else {}, default=str)[:200],
    )
    start = time.monotonic()

    try:
        output = await registered.handler(ctx, args, runtime)
    except ToolError:
        raise
    except Exception as e:
        elapsed = time.monotonic() - start
        logger.error("Tool '%s' failed after %dms: %s", name, int(elapsed * 1000), e)
        raise ToolError(f"{registered.failure_label} failed: {e}") from e

    elapsed = time.monotonic() - start
    logger.info("Tool %s completed in %dms", name, int(elapsed * 1000))
    return output or ""


def init_tools() -> None:
    """
    Import tool modules to trigger registration.
    Call this once on startup.
    """
    from . import document_search  # noqa: F401
    from . import diagram_search   # noqa: F401
    from . import project_info     # noqa: F401

    logger.info(
        "Tools ready: %d tools [%s]",
        len(_tools),
        ", ".join(get_tool_names()),
    )
