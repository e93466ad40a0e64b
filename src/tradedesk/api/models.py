"""
Pydantic models for tradedesk API requests and responses.
Domain records (``RoundTableContext``, ``TradePlan``...) are reused from ``tradedesk.core.schema``.
"""

from typing import (
    List,
    Literal,
    Optional,
)

from pydantic import (
    BaseModel,
    Field,
)

from tradedesk.core.schema import (
    AccountState,
    DeskPolicy,
    JournalDraft,
    RiskRuntime,
    RoundTableContext,
    ToolResult,
    TradePlan,
    VisionImage,
)

DEFAULT_SQUAD = ["quant_bot", "trend_master", "pattern_gpt", "risk_manager"]


# ---------------------------------------------------------------------------
# Pydantic request / response schema
# ---------------------------------------------------------------------------
class AgentInfo(BaseModel):
    """Public description of a registered persona."""

    id: str
    display_name: str
    role: str
    provider: str
    model: str
    allowed_tool_names: List[str]


class ChatTurn(BaseModel):
    """One earlier exchange of the chat, as the client remembers it."""

    role: Literal["user", "assistant"]
    content: str


class AgentRequest(BaseModel):
    """Single-agent turn."""

    agent_id: str = Field(..., description="Registered persona id, e.g. 'quant_bot'")
    message: str = Field(..., description="User message for the agent")
    history: List[ChatTurn] = Field(default_factory=list, description="Prior turns, oldest first")
    context: Optional[RoundTableContext] = Field(None, description="Desk session to brief the agent on")
    images: List[VisionImage] = Field(default_factory=list)


class AgentResponse(BaseModel):
    """Outcome of a single-agent turn."""

    agent_id: str
    reply: str
    draft: Optional[JournalDraft] = None
    tool_results: List[ToolResult] = Field(default_factory=list)
    iterations: int


class RoundTableRequest(BaseModel):
    """Incoming round-table question."""

    question: str = Field(..., description="User question put to the whole squad")
    agent_ids: List[str] = Field(default_factory=lambda: list(DEFAULT_SQUAD))
    moderator_id: Optional[str] = Field(None, description="Defaults to the configured moderator")
    context: RoundTableContext = Field(default_factory=RoundTableContext)


class RiskEvaluateRequest(BaseModel):
    """Stand-alone risk check of a trade plan."""

    trade: TradePlan
    account: AccountState = Field(default_factory=AccountState)
    runtime: RiskRuntime = Field(default_factory=RiskRuntime)
    desk_policy: Optional[DeskPolicy] = None
