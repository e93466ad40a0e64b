"""
Tool registry for tradedesk.

This module provides a decorator to register tools and a registry to look them up by name.
Each tool is an async handler ``handler(args, ctx)`` plus the description and JSON parameter schema
that the provider adapters advertise to the model.  The catalog is built at import time and never
mutated afterwards, so it is safe to share across concurrently running agent loops.
"""

import logging
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    Iterable,
    List,
    Mapping,
    TypedDict,
)

from pydantic import (
    BaseModel,
    ConfigDict,
)

logger = logging.getLogger(__name__)

ToolHandler = Callable[[Dict[str, Any], Any], Awaitable[Any]]


class ToolDefinition(BaseModel):
    """Immutable catalog entry for one tool."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    name: str
    description: str
    parameters: Mapping[str, Any]
    handler: ToolHandler

    @property
    def required_params(self) -> List[str]:
        """Names listed under ``required`` in the parameter schema."""
        return list(self.parameters.get("required", []))


TOOL_REGISTRY: Dict[str, ToolDefinition] = {}
"""Global registry of tool definitions."""


def register_tool(
    name: str, description: str, parameters: Mapping[str, Any] | None = None
) -> Callable[[ToolHandler], ToolHandler]:
    """
    Register an async tool handler under *name*.

    The function is registered as a decorator, so it can be used like this:
        @register_tool("get_playbooks", "Fetch saved playbooks", {"type": "object", ...})
        async def get_playbooks(args, ctx):
            return await ctx.get_playbooks(args.get("symbol"))

    Parameters
    ----------
    name: str
        The name of the tool.  This must be unique and is used to look up the
        definition in the registry.
    description: str
        Human readable description advertised to the model.
    parameters: Mapping
        JSON schema of the arguments object.  Defaults to an empty object schema.
    Returns
    -------
    Callable
        A decorator that registers the handler with the given name.
    Raises
    ------
    ValueError
        If a tool with the same name is already registered.
    """
    if name in TOOL_REGISTRY:
        raise ValueError(f"Tool '{name}' is already registered.")
    logger.debug("Registering tool '%s'", name)

    def wrapper(fn: ToolHandler) -> ToolHandler:
        TOOL_REGISTRY[name] = ToolDefinition(
            name=name,
            description=description,
            parameters=parameters or {"type": "object", "properties": {}},
            handler=fn,
        )
        return fn

    return wrapper


class ToolSchema(TypedDict):
    """
    Provider-neutral schema for a tool
    """

    name: str
    description: str
    parameters: Mapping[str, Any]


def get_tools(names: Iterable[str]) -> List[ToolDefinition]:
    """Return the registered definitions for *names*, preserving order and skipping unknowns."""
    tools: List[ToolDefinition] = []
    for name in names:
        tool = TOOL_REGISTRY.get(name)
        if tool is None:
            logger.warning("Agent references unregistered tool '%s'; skipping", name)
            continue
        tools.append(tool)
    return tools


def get_tool_schemas(tools: Iterable[ToolDefinition] | None = None) -> List[ToolSchema]:
    """Extract the schema part of *tools* (all registered tools by default)."""
    selected = TOOL_REGISTRY.values() if tools is None else tools
    return [
        ToolSchema(name=t.name, description=t.description, parameters=t.parameters)
        for t in selected
    ]


# Domain tools register themselves on import.
from tradedesk.tools import trading  # noqa: E402,F401  pylint: disable=wrong-import-position
