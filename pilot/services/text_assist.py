"""
Editor text actions (simplify, shorten, fix grammar, ...).

Each action is a fixed instruction set over the default sampling parameters,
streamed back as plain-text chunks. HTML actions are wrapped in <body> tags
so the editor can insert the result directly.
"""

import logging
from enum import Enum
from typing import AsyncGenerator, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..core.config import get_settings
from ..orchestrator.context import ChatContext
from ..orchestrator.orchestrator import (
    COMPLETED_EVENT,
    TEXT_DELTA_EVENT,
    TEXT_DONE_EVENT,
    record_token_usage,
)
from ..orchestrator.params import AssistantParams, merge_assistant_params
from ..tools.registry import ToolRuntime
from .llm import VendorError

logger = logging.getLogger(__name__)

BODY_OPEN = "<body>\n"
BODY_CLOSE = "\n</body>"


class OutputType(str, Enum):
    HTML = "html"
    PLAIN = "plain"


class TextAction(str, Enum):
    SIMPLIFY = "simplify"
    FIX_SPELLING_AND_GRAMMAR = "fix-spelling-and-grammar"
    SHORTEN = "shorten"
    EXTEND = "extend"
    ADJUST_TONE = "adjust-tone"
    TLDR = "tldr"
    WRITER = "writer"
    AUTOCOMPLETE = "autocomplete"
    PROJECT_DESCRIPTION = "project-description"


class ToneRequired(ValueError):
    def __init__(self):
        super().__init__("Tone is required")


class TextRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    text: str = ""
    tone: Optional[str] = None
    html: bool = True
    format: str = ""
    stream: bool = True
    collapse_to_end: bool = Field(default=False, alias="collapseToEnd")


EDITOR_OUTLINE = [
    "General instructions:",
    "You are a helpful assistant used for tasks within a text editor.",
    "The document is a technical documentation created by an IT architect.",
    "Always treat input as a fragment of HTML or plain text extracted from the document.",
    "Non-html characters (especially markdown formatting) are prohibited.",
    "Output must be ready to insert into a document.",
    "Be lazy: prefer producing less text over more text, unless the task explicitly asks for longer content.",
    "\n\n",
]

PROJECT_DESCRIPTION_OUTLINE = [
    "General instructions:",
    "You are a helpful assistant used to generate project descriptions from very little context.",
    "You will be provided a project title and a short description of the project and you will "
    "try to generate a detailed description of the project.",
    "Always stay concise and to the point, make sure that you generate a description that is as "
    "relevant as possible to the project title and short description.",
    "Non-html characters (especially markdown formatting) are prohibited.",
    "Output must be ready to insert into a textarea field.",
    "Response should be under 150 words.",
    "\n\n",
]

WRAP_NOTICE = "I will manually wrap your response in <body></body> tags, don't include them yourself."

_TASKS: dict[TextAction, list[str]] = {
    TextAction.SIMPLIFY: ["Task: Simplify given document fragment."],
    TextAction.FIX_SPELLING_AND_GRAMMAR: [
        "Task: fix spelling and grammar in the given fragment.",
        "Focus on fixing mistakes, keeping the html format and text meaning intact.",
    ],
    TextAction.SHORTEN: ["Task: shorten given fragment, preserving the original meaning."],
    TextAction.EXTEND: ["Task: make the given fragment longer, preserving the original meaning."],
    TextAction.TLDR: ["Task: provide a TL;DR (simple, concise summary) of the given fragment."],
    TextAction.PROJECT_DESCRIPTION: ["Task: generate a detailed description of the project."],
}

_WRITER_TASK = [
    "Task: generate a detailed HTML response based on the provided user instructions.",
    "The input is plain text, and you should expand it into a comprehensive paragraph or more.",
    "Focus on writing everything relevant about the specified subject, unless instructed by user otherwise.",
    "Respond with well-structured HTML content.",
    WRAP_NOTICE,
    "When tasked with code generation, use highlight-js syntax and html elements; "
    "Always wrap code blocks with <pre> and <code> tags;",
    "Specify correct language like this: <code class='language-...'",
    "NEVER EVER use markdown formatting, especially ```html or ```powershell",
]

_AUTOCOMPLETE_TASK = [
    "Task: autocomplete given fragment.",
    "The input is plain text, consisting of one or a few sentences before the user's current cursor position.",
    "Provide a relatively short completion for the sentence or a natural follow-up.",
    "Provide only a few words, it's important to keep the text short.",
    "Respond with plain text only, without any formatting.",
]


def build_instructions(action: TextAction, tone: Optional[str] = None) -> tuple[str, OutputType]:
    """Instruction text and output type for an action. Raises ToneRequired for adjust-tone without a tone."""
    if action == TextAction.AUTOCOMPLETE:
        return " ".join(EDITOR_OUTLINE + _AUTOCOMPLETE_TASK), OutputType.PLAIN

    if action == TextAction.ADJUST_TONE:
        if not tone:
            raise ToneRequired()
        lines = EDITOR_OUTLINE + [
            f"Task: adjust the tone of the given fragment to `{tone}`.",
            WRAP_NOTICE,
        ]
    elif action == TextAction.WRITER:
        lines = EDITOR_OUTLINE + _WRITER_TASK
        if tone:
            lines = lines + [f"Write in the tone of: `{tone}`."]
    elif action == TextAction.PROJECT_DESCRIPTION:
        lines = PROJECT_DESCRIPTION_OUTLINE + _TASKS[action] + [WRAP_NOTICE]
    else:
        lines = EDITOR_OUTLINE + _TASKS[action] + [WRAP_NOTICE]

    return " ".join(lines), OutputType.HTML


def build_params(user_id: str, text: str, instructions: str) -> dict:
    settings = get_settings()
    params = {
        "model": settings.default_llm_model,
        "user": user_id,
        "temperature": settings.default_llm_temperature,
        "top_p": settings.default_llm_top_p,
        "max_output_tokens": settings.default_llm_max_output_tokens,
        "input": text,
    }
    merge_assistant_params(params, AssistantParams(instructions=instructions))
    return params


async def stream_text_action(
    ctx: ChatContext,
    runtime: ToolRuntime,
    params: dict,
    output_type: OutputType,
) -> AsyncGenerator[str, None]:
    """
    Stream the model's text. Stops forwarding once the full text is
    available; HTML output is always closed, even after a vendor error.
    """
    started = False
    ended = False
    final: Optional[dict] = None

    try:
        async for event in runtime.client.stream_response(params):
            event_type = event.get("type")
            if event_type == TEXT_DONE_EVENT:
                ended = True
            elif event_type == COMPLETED_EVENT:
                final = event.get("response")

            if output_type == OutputType.HTML and not started and not ended:
                started = True
                yield BODY_OPEN

            if not ended and event_type == TEXT_DELTA_EVENT:
                delta = event.get("delta") or ""
                if delta:
                    yield delta
    except VendorError as e:
        logger.error("Text action stream failed: %s", e)

    if output_type == OutputType.HTML:
        yield BODY_CLOSE

    if final is not None:
        record_token_usage(ctx, runtime, final)
