"""
Schema definitions for agent <-> provider <-> tool <-> risk messages.

These data models serve as the contract between the provider adapters, the tool-call loop, the
round-table orchestrator and the risk evaluator.  We keep them separate from runtime logic so they
can be imported anywhere without side-effects.
"""

import json
from enum import Enum
from typing import (
    Annotated,
    Any,
    Dict,
    List,
    Literal,
    Optional,
    Union,
)

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
)


# ---------------------------------------------------------------------------
# Conversation
# ---------------------------------------------------------------------------
class Role(str, Enum):
    """Provider-neutral message roles."""

    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class VisionImage(BaseModel):
    """Inline image attached to the last user message (base64 payload, no data-URL prefix)."""

    mime_type: str = "image/png"
    data: str


class ConversationMessage(BaseModel):
    """One entry of an agent's message history."""

    role: Role
    content: str = ""
    tool_call_id: Optional[str] = None
    tool_name: Optional[str] = None
    # Provider-native assistant turn that requested tools; echoed back verbatim.
    provider_payload: Any = Field(default=None, exclude=True)


class ToolCall(BaseModel):
    """A call that the model wants the loop to execute."""

    id: str = Field(..., description="Correlation id for the tool result")
    name: str = Field(..., description="Registered tool name")
    raw_arguments: Union[str, Dict[str, Any]] = Field(
        default_factory=dict, description="JSON string (chat-style) or parsed object"
    )


class ToolResult(BaseModel):
    """Outcome of one tool call; always produced, even on failure."""

    tool_call_id: str
    tool_name: str
    args: Dict[str, Any] = Field(default_factory=dict)
    result: Any = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        """True when the handler returned normally."""
        return self.error is None

    def as_message_content(self) -> str:
        """Render the result as the text of a ``tool`` message."""
        if self.error is not None:
            return f"Error: {self.error}"
        if isinstance(self.result, str):
            return self.result
        return json.dumps(self.result, default=str)


class AdapterReply(BaseModel):
    """Neutral shape of one provider response: terminal text or requested tool calls."""

    text: Optional[str] = None
    tool_calls: List[ToolCall] = Field(default_factory=list)
    raw_assistant_turn: Any = None

    @property
    def wants_tools(self) -> bool:
        """True when the model asked for at least one tool."""
        return bool(self.tool_calls)


# ---------------------------------------------------------------------------
# Agents
# ---------------------------------------------------------------------------
class ProviderKind(str, Enum):
    """The two supported provider wire protocols."""

    CHAT_STYLE = "chat-style"
    GENERATE_STYLE = "generate-style"


class ChatStyleProvider(BaseModel):
    """Generation settings for the chat-completions style provider."""

    kind: Literal[ProviderKind.CHAT_STYLE] = ProviderKind.CHAT_STYLE
    model: str = "gpt-4o-mini"
    temperature: float = 0.4
    max_tokens: Optional[int] = None
    force_json: bool = False


class GenerateStyleProvider(BaseModel):
    """Generation settings for the generate-content style provider."""

    kind: Literal[ProviderKind.GENERATE_STYLE] = ProviderKind.GENERATE_STYLE
    model: str = "gemini-2.5-flash"
    temperature: float = 0.4
    max_tokens: Optional[int] = None
    thinking_budget: Optional[int] = None


ProviderConfig = Annotated[
    Union[ChatStyleProvider, GenerateStyleProvider], Field(discriminator="kind")
]


class AgentConfig(BaseModel):
    """One configured persona.  Read-only for the duration of a turn."""

    model_config = ConfigDict(frozen=True)

    id: str
    display_name: str
    role: str = ""
    provider: ProviderConfig
    system_prompt: str = ""
    journal_style: str = ""
    allowed_tool_names: List[str] = Field(default_factory=list)


class JournalDraft(BaseModel):
    """Structured journal entry extracted from an agent answer."""

    agent_id: str
    agent_name: str = ""
    title: str = ""
    summary: str = ""
    sentiment: Literal["bullish", "bearish", "neutral", "mixed"] = "neutral"
    tags: List[str] = Field(default_factory=list)


class TurnResult(BaseModel):
    """Terminal outcome of ``run_agent_turn``."""

    agent_id: str
    final_text: str
    clean_text: str
    tool_results: List[ToolResult] = Field(default_factory=list)
    draft: Optional[JournalDraft] = None
    iterations: int = 0
    messages: List[ConversationMessage] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Risk
# ---------------------------------------------------------------------------
class RiskConfig(BaseModel):
    """Per-account risk ceilings, all in percent of current equity."""

    max_risk_per_trade_percent: float = 0.5
    max_daily_loss_percent: float = 3.0
    max_weekly_loss_percent: float = 8.0
    max_trades_per_day: int = 5


class RiskRuntime(BaseModel):
    """Counters accumulated during the trading day/week."""

    trades_taken_today: int = 0
    realized_pnl_today_percent: float = 0.0
    realized_pnl_week_percent: float = 0.0


class AutopilotConfig(BaseModel):
    """Autopilot gates."""

    allow_full_auto_in_live: bool = False
    require_voice_confirm_for_full_auto: bool = True


class AccountState(BaseModel):
    """Account-level inputs of the risk evaluator."""

    account_id: str = "SIM-001"
    equity: float = 100_000.0
    environment: Literal["sim", "live"] = "sim"
    autopilot_mode: Literal["off", "advisor", "semi", "full"] = "off"
    risk_config: RiskConfig = Field(default_factory=RiskConfig)
    autopilot_config: AutopilotConfig = Field(default_factory=AutopilotConfig)


class DeskPolicy(BaseModel):
    """Daily desk policy layered on top of the account risk config."""

    mode: Literal["advisory", "enforced"] = "advisory"
    max_risk_per_trade: Optional[float] = None
    allowed_playbooks: List[str] = Field(default_factory=list)
    notes: str = ""


class TradePlan(BaseModel):
    """A trade proposal surfaced by an agent or the moderator."""

    # Models often answer in camelCase.
    model_config = ConfigDict(populate_by_name=True)

    symbol: str = ""
    direction: Literal["long", "short"] = "long"
    entry: Optional[float] = None
    stop_loss: Optional[float] = Field(None, validation_alias=AliasChoices("stop_loss", "stopLoss"))
    take_profits: List[float] = Field(
        default_factory=list, validation_alias=AliasChoices("take_profits", "takeProfits")
    )
    risk_percent: float = Field(0.0, validation_alias=AliasChoices("risk_percent", "riskPercent"))
    playbook: Optional[str] = None
    comment: Optional[str] = None


class RiskVerdict(BaseModel):
    """Derived accept/reject/warn decision; never stored as authoritative state."""

    allowed: bool
    reasons: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    projected_daily_loss_percent: float = 0.0
    projected_weekly_loss_percent: float = 0.0


# ---------------------------------------------------------------------------
# Round-table
# ---------------------------------------------------------------------------
class RoundTableContext(BaseModel):
    """Shared context seeded into every agent of a round."""

    symbol: str = "US30"
    timeframe: Optional[str] = None
    account: AccountState = Field(default_factory=AccountState)
    runtime: RiskRuntime = Field(default_factory=RiskRuntime)
    desk_policy: Optional[DeskPolicy] = None
    broker_snapshot: Optional[Dict[str, Any]] = None
    journal_summary: Optional[str] = None
    chart_context: Optional[str] = None
    images: List[VisionImage] = Field(default_factory=list)


class AgentSlot(BaseModel):
    """One roster position in a round; either a text or a clearly marked error."""

    index: int
    agent_id: str
    agent_name: str
    text: str = ""
    error: Optional[str] = None
    draft: Optional[JournalDraft] = None
    tool_results: List[ToolResult] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        """True when the agent produced an answer."""
        return self.error is None


class RoundTableResult(BaseModel):
    """Outcome of one round; handed off to the caller and discarded."""

    per_agent_messages: List[AgentSlot] = Field(default_factory=list)
    final_synthesis: str = ""
    moderator_error: Optional[str] = None
    proposed_trade_plan: Optional[TradePlan] = None
    risk_verdict: Optional[RiskVerdict] = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def actionable(self) -> bool:
        """A proposed plan is actionable only once the risk evaluator allowed it."""
        return (
            self.proposed_trade_plan is not None
            and self.risk_verdict is not None
            and self.risk_verdict.allowed
        )
