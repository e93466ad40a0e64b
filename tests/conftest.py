"""
Shared fixtures: a scripted provider adapter, a desk runtime context and small agent factories.

No test talks to a real provider; adapters are replaced by :class:`ScriptedAdapter`.
"""

import asyncio
from typing import (
    Any,
    Dict,
    List,
    Sequence,
)

import pytest

from tradedesk.agent.adapters import (
    AdapterRegistry,
    ProviderAdapter,
)
from tradedesk.agent.runtime_context import DeskRuntimeContext
from tradedesk.broker.sim_broker import SimBroker
from tradedesk.core.schema import (
    AccountState,
    AdapterReply,
    AgentConfig,
    ChatStyleProvider,
    ConversationMessage,
    GenerateStyleProvider,
    ProviderKind,
    ToolCall,
    VisionImage,
)
from tradedesk.memory.journal_store import JournalStore
from tradedesk.tools import ToolDefinition


def text_reply(text: str) -> AdapterReply:
    """Terminal answer."""
    return AdapterReply(text=text)


def tool_reply(*calls: tuple) -> AdapterReply:
    """Tool request; each call is ``(id, name, arguments)``."""
    return AdapterReply(
        tool_calls=[ToolCall(id=cid, name=name, raw_arguments=args) for cid, name, args in calls],
        raw_assistant_turn={"role": "assistant", "tool_calls": [c[0] for c in calls]},
    )


class ScriptedAdapter(ProviderAdapter):
    """
    Plays back a per-agent script of replies.

    Each entry is an ``AdapterReply`` or an exception to raise.  The last entry repeats once the
    script runs out.  Every call is recorded with a copy of the history and the advertised tools.
    """

    def __init__(
        self,
        script: Dict[str, List[Any]],
        delays: Dict[str, float] | None = None,
    ) -> None:
        self.script = {k: list(v) for k, v in script.items()}
        self.delays = delays or {}
        self.calls: List[Dict[str, Any]] = []

    async def resolve_turn(
        self,
        agent: AgentConfig,
        history: Sequence[ConversationMessage],
        tools: Sequence[ToolDefinition],
        images: Sequence[VisionImage] = (),
    ) -> AdapterReply:
        self.calls.append(
            {"agent_id": agent.id, "history": list(history), "tools": [t.name for t in tools]}
        )
        if agent.id in self.delays:
            await asyncio.sleep(self.delays[agent.id])
        steps = self.script[agent.id]
        step = steps.pop(0) if len(steps) > 1 else steps[0]
        if isinstance(step, BaseException):
            raise step
        return step

    def calls_for(self, agent_id: str) -> List[Dict[str, Any]]:
        return [c for c in self.calls if c["agent_id"] == agent_id]


def registry_for(adapter: ProviderAdapter) -> AdapterRegistry:
    """Route both provider kinds to the same adapter."""
    return AdapterRegistry({kind: adapter for kind in ProviderKind})


def make_agent(
    agent_id: str,
    tools: Sequence[str] = (),
    generate_style: bool = False,
    display_name: str | None = None,
) -> AgentConfig:
    provider = GenerateStyleProvider() if generate_style else ChatStyleProvider()
    return AgentConfig(
        id=agent_id,
        display_name=display_name or agent_id.replace("_", " ").title(),
        provider=provider,
        system_prompt=f"You are {agent_id}.",
        allowed_tool_names=list(tools),
    )


@pytest.fixture
def account() -> AccountState:
    return AccountState()


@pytest.fixture
def journal() -> JournalStore:
    return JournalStore()


@pytest.fixture
def desk_ctx(account: AccountState, journal: JournalStore) -> DeskRuntimeContext:
    return DeskRuntimeContext(account=account, journal=journal, broker=SimBroker(account))
