"""
Tool-call resolution loop for one agent turn.

States: AwaitingModel -> (ToolsRequested -> ExecutingTools -> AwaitingModel)* -> Terminal.

Each round is exactly one adapter call and, if tools were requested, one concurrent tool sweep.
At most ``max_iterations`` tool sweeps are allowed; a model still asking for tools on the call
after that is reported as :class:`ToolLoopLimitError` rather than silently truncated, so the
adapter is invoked at most ``max_iterations + 1`` times.
"""

from __future__ import annotations

import asyncio
import logging
from typing import (
    Any,
    List,
    Sequence,
)

from tradedesk.agent.adapters import (
    AdapterRegistry,
    ProviderCallError,
)
from tradedesk.agent.draft_extractor import extract_journal_draft
from tradedesk.agent.tool_executor import execute_tool_batch
from tradedesk.config import settings
from tradedesk.core.schema import (
    AdapterReply,
    AgentConfig,
    ConversationMessage,
    Role,
    ToolResult,
    TurnResult,
    VisionImage,
)
from tradedesk.tools import (
    ToolDefinition,
    get_tools,
)

logger = logging.getLogger(__name__)


class ToolLoopLimitError(RuntimeError):
    """Raised when a model keeps requesting tools past the iteration ceiling."""

    def __init__(self, agent_id: str, max_iterations: int, tool_results: List[ToolResult]):
        super().__init__(
            f"Agent '{agent_id}' exceeded {max_iterations} tool-call iterations without answering."
        )
        self.agent_id = agent_id
        self.max_iterations = max_iterations
        self.tool_results = tool_results


async def _resolve(
    adapters: AdapterRegistry,
    agent: AgentConfig,
    messages: Sequence[ConversationMessage],
    tools: Sequence[ToolDefinition],
    images: Sequence[VisionImage],
    timeout: float | None,
) -> AdapterReply:
    adapter = adapters.for_agent(agent)
    try:
        return await asyncio.wait_for(
            adapter.resolve_turn(agent, messages, tools, images), timeout=timeout
        )
    except asyncio.TimeoutError as exc:
        raise ProviderCallError(
            f"Model call for agent '{agent.id}' timed out after {timeout}s"
        ) from exc


async def run_agent_turn(
    agent: AgentConfig,
    history: Sequence[ConversationMessage],
    tools: Sequence[ToolDefinition] | None = None,
    *,
    adapters: AdapterRegistry,
    ctx: Any,
    max_iterations: int | None = None,
    model_timeout: float | None = None,
    tool_timeout: float | None = None,
    images: Sequence[VisionImage] = (),
    journal_marker: str | None = None,
) -> TurnResult:
    """
    Drive one agent turn to a terminal answer.

    Parameters
    ----------
    agent:
        Persona to run; selects the adapter and bounds the usable tools.
    history:
        Seed messages (typically the user turn).  Copied; the caller's list is never mutated.
    tools:
        Tool subset to advertise.  Defaults to the agent's ``allowed_tool_names``; anything outside
        that allow-list is dropped.
    adapters, ctx:
        Provider adapters and the runtime context handed to tool handlers.

    Returns
    -------
    TurnResult
        Final and clean text, every tool result in order, and the optional journal draft.

    Raises
    ------
    ToolLoopLimitError
        The model was still requesting tools after ``max_iterations`` sweeps.
    ProviderCallError
        A provider call failed or timed out.
    """
    if max_iterations is None:
        max_iterations = settings.MAX_TOOL_ITERATIONS
    if tools is None:
        tools = get_tools(agent.allowed_tool_names)
    allowed = set(agent.allowed_tool_names)
    active = [t for t in tools if t.name in allowed]
    tool_map = {t.name: t for t in active}

    messages: List[ConversationMessage] = list(history)
    tool_results: List[ToolResult] = []

    for iteration in range(max_iterations + 1):
        logger.debug("Agent '%s' round %d: calling model", agent.id, iteration + 1)
        reply = await _resolve(adapters, agent, messages, active, images, model_timeout)

        if not reply.wants_tools:
            text = reply.text or ""
            messages.append(ConversationMessage(role=Role.ASSISTANT, content=text))
            clean, draft = extract_journal_draft(
                text, agent, journal_marker or settings.JOURNAL_MARKER
            )
            return TurnResult(
                agent_id=agent.id,
                final_text=text,
                clean_text=clean,
                tool_results=tool_results,
                draft=draft,
                iterations=iteration + 1,
                messages=messages,
            )

        if iteration == max_iterations:
            logger.error(
                "Agent '%s' still requesting tools after %d iterations", agent.id, max_iterations
            )
            raise ToolLoopLimitError(agent.id, max_iterations, tool_results)

        logger.info(
            "Agent '%s' requested %d tool call(s): %s",
            agent.id,
            len(reply.tool_calls),
            [call.name for call in reply.tool_calls],
        )
        messages.append(
            ConversationMessage(
                role=Role.ASSISTANT,
                content=reply.text or "",
                provider_payload=reply.raw_assistant_turn,
            )
        )
        # The whole batch resolves before the next model call; partial results are never sent.
        batch = await execute_tool_batch(reply.tool_calls, tool_map, ctx, tool_timeout)
        tool_results.extend(batch)
        messages.extend(
            ConversationMessage(
                role=Role.TOOL,
                content=result.as_message_content(),
                tool_call_id=result.tool_call_id,
                tool_name=result.tool_name,
            )
            for result in batch
        )

    raise AssertionError("unreachable")  # pragma: no cover


class TurnRunner:
    """Binds adapters, runtime context and limits so callers only pass agent and history."""

    def __init__(
        self,
        adapters: AdapterRegistry,
        ctx: Any,
        *,
        max_iterations: int | None = None,
        model_timeout: float | None = None,
        tool_timeout: float | None = None,
        journal_marker: str | None = None,
    ) -> None:
        self.adapters = adapters
        self.ctx = ctx
        self.max_iterations = (
            settings.MAX_TOOL_ITERATIONS if max_iterations is None else max_iterations
        )
        self.model_timeout = model_timeout if model_timeout is not None else settings.MODEL_CALL_TIMEOUT
        self.tool_timeout = tool_timeout if tool_timeout is not None else settings.TOOL_CALL_TIMEOUT
        self.journal_marker = journal_marker or settings.JOURNAL_MARKER

    async def run(
        self,
        agent: AgentConfig,
        history: Sequence[ConversationMessage],
        tools: Sequence[ToolDefinition] | None = None,
        images: Sequence[VisionImage] = (),
    ) -> TurnResult:
        """Run :func:`run_agent_turn` with the bound dependencies."""
        return await run_agent_turn(
            agent,
            history,
            tools,
            adapters=self.adapters,
            ctx=self.ctx,
            max_iterations=self.max_iterations,
            model_timeout=self.model_timeout,
            tool_timeout=self.tool_timeout,
            images=images,
            journal_marker=self.journal_marker,
        )
