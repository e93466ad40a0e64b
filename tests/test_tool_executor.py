"""
Basic sanity tests for the tool executor.

Run with:
$ pytest -q
"""

import asyncio
from typing import (
    Any,
    Dict,
)

import pytest

from tradedesk.agent.tool_executor import (
    ToolExecutionError,
    execute_tool_batch,
    execute_tool_call,
    parse_arguments,
)
from tradedesk.core.schema import ToolCall
from tradedesk.tools import (
    TOOL_REGISTRY,
    ToolDefinition,
    get_tools,
    register_tool,
)


# Stub tools for testing purposes; built directly so they stay out of the global registry.
async def _add(args: Dict[str, Any], ctx: Any) -> int:
    return args["a"] + args["b"]


async def _boom(args: Dict[str, Any], ctx: Any) -> Any:
    raise RuntimeError("broker offline")


async def _slow(args: Dict[str, Any], ctx: Any) -> Any:
    await asyncio.sleep(1)
    return "late"


TOOLS = {
    "add": ToolDefinition(
        name="add",
        description="Add two integers",
        parameters={
            "type": "object",
            "properties": {"a": {"type": "integer"}, "b": {"type": "integer"}},
            "required": ["a", "b"],
        },
        handler=_add,
    ),
    "boom": ToolDefinition(name="boom", description="Always fails", parameters={}, handler=_boom),
    "slow": ToolDefinition(name="slow", description="Sleeps", parameters={}, handler=_slow),
}


def test_parse_arguments_accepts_string_and_object() -> None:
    """Chat-style JSON strings and generate-style objects normalize to the same dict."""

    assert parse_arguments('{"a": 1}') == {"a": 1}
    assert parse_arguments({"a": 1}) == {"a": 1}
    assert parse_arguments("") == {}
    assert parse_arguments(None) == {}


def test_parse_arguments_rejects_bad_json() -> None:
    """Malformed or non-object JSON raises *ToolExecutionError*."""

    with pytest.raises(ToolExecutionError, match="Invalid JSON"):
        parse_arguments("{not json")
    with pytest.raises(ToolExecutionError):
        parse_arguments("[1, 2]")


@pytest.mark.asyncio
async def test_execute_tool_success() -> None:
    """Executor should return the correct value when the tool is valid."""

    result = await execute_tool_call(ToolCall(id="c1", name="add", raw_arguments='{"a": 2, "b": 3}'), TOOLS, None)
    assert result.ok
    assert result.result == 5
    assert result.tool_call_id == "c1"


@pytest.mark.asyncio
async def test_execute_tool_missing() -> None:
    """An unknown tool yields an error result, never an exception."""

    result = await execute_tool_call(ToolCall(id="c1", name="not_a_tool"), TOOLS, None)
    assert result.error == "Tool not found"
    assert result.tool_name == "not_a_tool"


@pytest.mark.asyncio
async def test_execute_tool_bad_args() -> None:
    """Missing required arguments are reported without invoking the handler."""

    result = await execute_tool_call(ToolCall(id="c1", name="add", raw_arguments={"a": 2}), TOOLS, None)
    assert not result.ok
    assert "Invalid arguments" in result.error
    assert "b" in result.error


@pytest.mark.asyncio
async def test_execute_tool_malformed_json() -> None:
    """Malformed argument JSON becomes an error result."""

    result = await execute_tool_call(ToolCall(id="c1", name="add", raw_arguments="{oops"), TOOLS, None)
    assert result.error.startswith("Invalid JSON arguments")


@pytest.mark.asyncio
async def test_handler_exception_is_captured() -> None:
    """A raising handler is wrapped with its message."""

    result = await execute_tool_call(ToolCall(id="c1", name="boom"), TOOLS, None)
    assert "broker offline" in result.error
    assert result.as_message_content().startswith("Error:")


@pytest.mark.asyncio
async def test_handler_timeout() -> None:
    """A handler exceeding the timeout is abandoned."""

    result = await execute_tool_call(ToolCall(id="c1", name="slow"), TOOLS, None, timeout=0.01)
    assert "timed out" in result.error


@pytest.mark.asyncio
async def test_batch_keeps_request_order() -> None:
    """Results come back in request order, whatever the completion order."""

    calls = [
        ToolCall(id="1", name="slow"),
        ToolCall(id="2", name="add", raw_arguments={"a": 1, "b": 1}),
        ToolCall(id="3", name="missing"),
    ]
    results = await execute_tool_batch(calls, TOOLS, None, timeout=0.01)
    assert [r.tool_call_id for r in results] == ["1", "2", "3"]
    assert results[1].result == 2


def test_registry_contains_desk_tools() -> None:
    """Domain tools register on import and duplicate names are rejected."""

    for name in ("get_broker_snapshot", "append_journal_entry", "run_risk_review", "execute_order"):
        assert name in TOOL_REGISTRY
    with pytest.raises(ValueError):
        register_tool("get_broker_snapshot", "dup")
    assert [t.name for t in get_tools(["get_playbooks", "nope"])] == ["get_playbooks"]
