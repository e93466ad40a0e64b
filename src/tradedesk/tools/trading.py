"""Broker, journal and risk tools exposed to agents."""

from datetime import (
    datetime,
    timezone,
)
from typing import (
    Any,
    Dict,
)

from tradedesk.core.schema import TradePlan
from tradedesk.tools import register_tool


@register_tool(
    "get_broker_snapshot",
    "Get high-level overview of the active broker account (balance, equity, environment).",
    {"type": "object", "properties": {}},
)
async def get_broker_snapshot(args: Dict[str, Any], ctx: Any) -> Any:
    return await ctx.get_broker_snapshot()


@register_tool(
    "get_open_positions",
    "List current open positions (optionally filtered by symbol).",
    {
        "type": "object",
        "properties": {"symbol": {"type": "string"}},
        "required": [],
    },
)
async def get_open_positions(args: Dict[str, Any], ctx: Any) -> Any:
    positions = await ctx.get_open_positions(args.get("symbol"))
    return positions or "No open positions."


@register_tool(
    "get_recent_trades",
    "Return the last N trades/notes from the trading journal.",
    {
        "type": "object",
        "properties": {"limit": {"type": "integer", "description": "Defaults to 20"}},
    },
)
async def get_recent_trades(args: Dict[str, Any], ctx: Any) -> Any:
    return await ctx.get_recent_trades(int(args.get("limit") or 20))


@register_tool(
    "append_journal_entry",
    "Append a structured trade log or note to the trading journal. "
    "Use this to log setups, executions, or reviews.",
    {
        "type": "object",
        "properties": {
            "symbol": {"type": "string", "description": "Symbol traded (e.g. US30)"},
            "direction": {"type": "string", "enum": ["long", "short"]},
            "timeframe": {"type": "string", "description": "e.g. 5m, 15m, 1h"},
            "playbook": {"type": "string", "description": "Name of strategy/setup"},
            "r_multiple": {"type": "number", "description": "Realized R"},
            "sentiment": {"type": "string", "description": "Psychological state"},
            "tags": {"type": "array", "items": {"type": "string"}},
            "note": {"type": "string"},
        },
        "required": ["note"],
    },
)
async def append_journal_entry(args: Dict[str, Any], ctx: Any) -> Any:
    payload = {**args, "created_at": datetime.now(timezone.utc).isoformat(), "source": "agent"}
    stored = await ctx.append_journal_entry(payload)
    return {"status": "ok", "message": "Journal entry saved.", "id": stored["id"]}


@register_tool(
    "get_playbooks",
    "Fetch saved playbooks / setups for the current symbol.",
    {"type": "object", "properties": {"symbol": {"type": "string"}}},
)
async def get_playbooks(args: Dict[str, Any], ctx: Any) -> Any:
    return await ctx.get_playbooks(args.get("symbol"))


_TRADE_PLAN_PROPERTIES: Dict[str, Any] = {
    "symbol": {"type": "string"},
    "direction": {"type": "string", "enum": ["long", "short"]},
    "entry": {"type": "number"},
    "stop_loss": {"type": "number"},
    "take_profits": {"type": "array", "items": {"type": "number"}},
    "risk_percent": {"type": "number", "description": "Percent of equity, e.g. 0.5"},
    "playbook": {"type": "string"},
}


@register_tool(
    "run_risk_review",
    "Check a proposed trade against the desk risk rules and return the verdict with sizing.",
    {
        "type": "object",
        "properties": _TRADE_PLAN_PROPERTIES,
        "required": ["symbol", "direction", "risk_percent"],
    },
)
async def run_risk_review(args: Dict[str, Any], ctx: Any) -> Any:
    plan = TradePlan.model_validate(args)
    return await ctx.run_risk_review(plan)


@register_tool(
    "execute_order",
    "Execute a market order on the broker. Use cautiously; the order is risk-checked first.",
    {
        "type": "object",
        "properties": {
            "symbol": {"type": "string"},
            "side": {"type": "string", "enum": ["buy", "sell"]},
            "risk_percent": {"type": "number"},
            "entry": {"type": "number"},
            "stop_loss": {"type": "number"},
            "take_profit": {"type": "number"},
            "playbook": {"type": "string"},
            "reason": {
                "type": "string",
                "description": "Why is this trade being taken? Justification is required.",
            },
        },
        "required": ["symbol", "side", "risk_percent", "reason"],
    },
)
async def execute_order(args: Dict[str, Any], ctx: Any) -> Any:
    return await ctx.execute_order(args)


@register_tool(
    "control_app_ui",
    "Control the application UI: switch rooms, open overlays, or show toasts.",
    {
        "type": "object",
        "properties": {
            "action": {"type": "string", "enum": ["navigate", "overlay", "toast"]},
            "target": {"type": "string", "description": "Room id (e.g. 'journal') or overlay id"},
            "message": {"type": "string"},
            "type": {"type": "string", "enum": ["success", "info", "error"]},
        },
        "required": ["action"],
    },
)
async def control_app_ui(args: Dict[str, Any], ctx: Any) -> Any:
    # The frontend intercepts this result; the backend only echoes it.
    return {"status": "dispatched", "command": "control_app_ui", "details": args}
