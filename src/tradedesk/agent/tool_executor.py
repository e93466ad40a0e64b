"""Dispatches tool calls requested by a model and wraps every failure into a ``ToolResult``."""

import asyncio
import json
import logging
from typing import (
    Any,
    Dict,
    Iterable,
    List,
    Mapping,
)

from tradedesk.core.schema import (
    ToolCall,
    ToolResult,
)
from tradedesk.tools import ToolDefinition

logger = logging.getLogger(__name__)


class ToolExecutionError(RuntimeError):
    """Raised when a requested tool cannot run or fails."""


def parse_arguments(raw: str | Mapping[str, Any] | None) -> Dict[str, Any]:
    """
    Normalize provider arguments into a dict.

    Chat-style providers send a JSON string, generate-style providers an already-parsed object.

    Raises
    ------
    ToolExecutionError
        If the string is not valid JSON or does not decode to an object.
    """
    if raw is None or raw == "":
        return {}
    if isinstance(raw, Mapping):
        return dict(raw)
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ToolExecutionError(f"Invalid JSON arguments: {exc}") from exc
    if not isinstance(parsed, dict):
        raise ToolExecutionError("Invalid JSON arguments: expected an object")
    return parsed


async def execute_tool_call(
    call: ToolCall,
    tools: Mapping[str, ToolDefinition],
    ctx: Any,
    timeout: float | None = None,
) -> ToolResult:
    """
    Look up *call* in the agent's tool subset and invoke its handler.

    Parameters
    ----------
    call:
        The request emitted by the model.
    tools:
        The agent's allowed tools keyed by name.  Anything outside it is "not found".
    ctx:
        Runtime context passed verbatim to the handler.
    timeout:
        Seconds before the handler is abandoned.  ``None`` waits indefinitely.

    Returns
    -------
    ToolResult
        Always; failures are carried in ``error`` so the model can react in-band.
    """
    tool = tools.get(call.name)
    if tool is None:
        logger.warning("Model requested unknown tool '%s'", call.name)
        return ToolResult(tool_call_id=call.id, tool_name=call.name, error="Tool not found")

    try:
        args = parse_arguments(call.raw_arguments)
    except ToolExecutionError as exc:
        logger.warning("Bad arguments for tool '%s': %s", call.name, exc)
        return ToolResult(tool_call_id=call.id, tool_name=call.name, error=str(exc))

    missing = [p for p in tool.required_params if p not in args]
    if missing:
        return ToolResult(
            tool_call_id=call.id,
            tool_name=call.name,
            args=args,
            error=f"Invalid arguments for tool '{call.name}': missing {', '.join(missing)}",
        )

    try:
        logger.debug("Executing tool '%s' with args=%s", call.name, args)
        result = await asyncio.wait_for(tool.handler(args, ctx), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning("Tool '%s' timed out after %ss", call.name, timeout)
        return ToolResult(
            tool_call_id=call.id,
            tool_name=call.name,
            args=args,
            error=f"Tool '{call.name}' timed out after {timeout}s",
        )
    except Exception as exc:  # noqa: BLE001
        logger.exception("Unhandled error in tool '%s'", call.name)
        return ToolResult(
            tool_call_id=call.id,
            tool_name=call.name,
            args=args,
            error=f"Tool '{call.name}' raised an error: {exc}",
        )

    return ToolResult(tool_call_id=call.id, tool_name=call.name, args=args, result=result)


async def execute_tool_batch(
    calls: Iterable[ToolCall],
    tools: Mapping[str, ToolDefinition],
    ctx: Any,
    timeout: float | None = None,
) -> List[ToolResult]:
    """Run one "tools requested" batch concurrently; results keep the request order."""
    return list(
        await asyncio.gather(*(execute_tool_call(call, tools, ctx, timeout) for call in calls))
    )
