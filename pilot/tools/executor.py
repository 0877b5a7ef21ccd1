"""
Parallel tool execution for one vendor turn.

All function calls in a response run concurrently, at most
MAX_CONCURRENT_TOOL_CALLS at a time. The batch either succeeds as a whole,
returning one function_call_output per call, or fails on the first error:
siblings are cancelled, awaited, and a single ToolExecutionError is raised.
"""

import asyncio
import logging

from ..orchestrator.context import ChatContext
from ..services.llm import function_calls
from .registry import ToolError, ToolRuntime, dispatch

logger = logging.getLogger(__name__)

MAX_CONCURRENT_TOOL_CALLS = 8


class ToolExecutionError(ToolError):
    def __init__(self, tool_name: str, cause: BaseException):
        super().__init__(f"{tool_name} failed: {cause}")
        self.tool_name = tool_name
        self.cause = cause


async def execute_tool_calls(
    ctx: ChatContext,
    output_items: list[dict],
    runtime: ToolRuntime,
) -> list[dict]:
    """
    Run every function_call item in `output_items`.

    Returns [] when there are none. Otherwise returns
    [{"type": "function_call_output", "call_id", "output"}, ...], one per call,
    correlated by call_id.
    """
    calls = function_calls(output_items)
    if not calls:
        return []

    semaphore = asyncio.Semaphore(MAX_CONCURRENT_TOOL_CALLS)

    async def _run_one(call: dict) -> dict:
        async with semaphore:
            output = await dispatch(ctx, call.get("name", ""), call.get("arguments", ""), runtime)
        return {
            "type": "function_call_output",
            "call_id": call.get("call_id", ""),
            "output": output,
        }

    tasks = [asyncio.create_task(_run_one(call)) for call in calls]
    logger.info("Executing %d tool call(s): %s", len(calls), [c.get("name") for c in calls])

    try:
        done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)

        # Read every finished task's exception, not just the first
        failures = [
            (call, task.exception()) for call, task in zip(calls, tasks)
            if task in done and not task.cancelled() and task.exception() is not None
        ]
        if failures:
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

            call, error = failures[0]
            if len(failures) > 1:
                logger.warning(
                    "%d more tool call(s) failed in the same batch: %s",
                    len(failures) - 1, [c.get("name") for c, _ in failures[1:]],
                )
            logger.error("Tool batch aborted: %s failed: %s", call.get("name"), error)
            raise ToolExecutionError(call.get("name", ""), error) from error

        return [task.result() for task in tasks]
    finally:
        # Caller cancelled mid-batch
        unfinished = [task for task in tasks if not task.done()]
        for task in unfinished:
            task.cancel()
        if unfinished:
            await asyncio.gather(*unfinished, return_exceptions=True)
