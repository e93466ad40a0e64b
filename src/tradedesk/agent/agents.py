"""Registry of trading-desk personas and their system prompts."""

import logging
from typing import (
    Dict,
    Iterable,
    List,
)

from tradedesk.config import settings
from tradedesk.core.schema import (
    AgentConfig,
    ChatStyleProvider,
    GenerateStyleProvider,
)

logger = logging.getLogger(__name__)

GLOBAL_ANALYST_SYSTEM_PROMPT = """\
You are part of a professional AI trading desk.
Each agent has a specialty and should speak in that persona.

**PRIME DIRECTIVE: CAPITAL PRESERVATION.**
- You are NOT here to force trades. You are here to protect the user's capital.
- If the setup is C-grade or the market is choppy, explicitly advise "NO TRADE".
- NEVER suggest a trade with less than 1.5R (Risk:Reward).
- ALWAYS identify the Invalidation Level (Stop Loss) before the Entry.

You always:
- Explain your reasoning step by step using data.
- Call out key levels, trend context, and specific risk.
- Respect the user's timeframe and instrument.
- If a tool returns an error, say what you could not check instead of guessing."""


class UnknownAgentError(KeyError):
    """Raised when a roster references an agent id that is not registered."""


def journal_instructions(marker: str) -> str:
    """The sentinel contract every persona is asked to honour."""
    return f"""\
At the very end of your answer, output exactly one line starting with:
{marker} {{ ... }}

The JSON object MUST contain:
- "title": short string
- "summary": string
- "sentiment": one of ["bullish","bearish","neutral","mixed"]
- "tags": array of strings

Do NOT explain the JSON. Do NOT put it in a code block."""


def build_system_prompt(display_name: str, journal_style: str, marker: str | None = None) -> str:
    """Compose desk directive, persona style and sentinel instructions."""
    return "\n\n".join(
        [
            GLOBAL_ANALYST_SYSTEM_PROMPT,
            f'You are the "{display_name}" agent. Your specialization:',
            journal_style,
            journal_instructions(marker or settings.JOURNAL_MARKER),
        ]
    )


def _persona(
    agent_id: str,
    display_name: str,
    role: str,
    provider: ChatStyleProvider | GenerateStyleProvider,
    journal_style: str,
    tools: List[str],
) -> AgentConfig:
    return AgentConfig(
        id=agent_id,
        display_name=display_name,
        role=role,
        provider=provider,
        journal_style=journal_style,
        system_prompt=build_system_prompt(display_name, journal_style),
        allowed_tool_names=tools,
    )


DEFAULT_AGENTS: Dict[str, AgentConfig] = {
    a.id: a
    for a in [
        _persona(
            "quant_bot",
            "QuantBot",
            "Statistical edge, R:R and regime filters",
            GenerateStyleProvider(model="gemini-2.5-flash", temperature=0.3, thinking_budget=2048),
            """\
Short, quantified summary focused on statistics and risk:
- title: 1 short line like "US30 long scalp - NY session"
- summary: 2-4 bullet style sentences
- tags: array like ["US30","scalp","NY","1m","news-avoid"]""",
            ["get_broker_snapshot", "get_open_positions", "get_recent_trades", "run_risk_review"],
        ),
        _persona(
            "trend_master",
            "TrendMaster AI",
            "Multi-timeframe trend and structure",
            GenerateStyleProvider(model="gemini-2.5-flash", temperature=0.5, thinking_budget=1024),
            """\
Focus on higher-timeframe structure and trend:
- title: trend + instrument, e.g. "XAUUSD in HTF downtrend"
- summary: 3-5 sentences mentioning HTF bias & lower-TF execution idea
- tags: include timeframe tags like ["4h","1h","structure"]""",
            ["get_recent_trades", "get_playbooks"],
        ),
        _persona(
            "pattern_gpt",
            "Pattern_GPT",
            "Patterns, liquidity and timing windows",
            ChatStyleProvider(model="gpt-4o-mini", temperature=0.5),
            """\
Focus on chart patterns and liquidity grabs:
- title: pattern name + direction, e.g. "1m liquidity sweep into supply"
- summary: highlight pattern, invalidation, and target zones
- tags: include pattern tags like ["FVG","orderblock","liquidity","1m"]""",
            ["get_recent_trades", "get_playbooks"],
        ),
        _persona(
            "risk_manager",
            "Risk Manager",
            "Risk limits and prop-style rules",
            ChatStyleProvider(model="gpt-4o", temperature=0.2),
            """\
Check every idea against the desk risk rules before anything else:
- title: verdict + instrument, e.g. "US30 long: size down to 0.25%"
- summary: which limits are close, what size is acceptable, when to stand aside
- tags: include risk tags like ["daily-cap","size","stand-aside"]""",
            ["get_broker_snapshot", "get_open_positions", "run_risk_review"],
        ),
        _persona(
            "journal_coach",
            "Journal Coach",
            "Performance review and journaling",
            GenerateStyleProvider(model="gemini-2.5-flash", temperature=0.5),
            "You are the Journal Coach. Turn the context into a clean TRADING JOURNAL ENTRY.",
            ["get_recent_trades", "append_journal_entry"],
        ),
        _persona(
            "strategist_main",
            "Strategist",
            "Round-table moderator: narrative and final plan",
            ChatStyleProvider(model="gpt-4o", temperature=0.35),
            "Overall context, narrative and play selection. You synthesize the squad's views.",
            ["get_broker_snapshot", "get_playbooks", "run_risk_review", "control_app_ui"],
        ),
    ]
}


def get_agent(agent_id: str) -> AgentConfig:
    """Return the persona registered under *agent_id*."""
    try:
        return DEFAULT_AGENTS[agent_id]
    except KeyError:
        raise UnknownAgentError(f"Unknown agent id: {agent_id}") from None


def resolve_roster(agent_ids: Iterable[str]) -> List[AgentConfig]:
    """Map ids to personas in order; any unknown id fails the whole roster."""
    return [get_agent(agent_id) for agent_id in agent_ids]


def list_agents() -> List[AgentConfig]:
    """All registered personas."""
    return list(DEFAULT_AGENTS.values())
