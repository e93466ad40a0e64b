"""
Round-table orchestration.

One user question fans out to every agent of a roster concurrently.  Each agent gets its own
history seeded from the same shared context; nothing is shared between their loops.  Once every
slot has resolved (or failed, or timed out) the moderator persona synthesizes the squad's answers
through the same tool-call loop.  A trade plan emitted by the moderator is gated by the risk
evaluator before the result can be called actionable.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import (
    List,
    Sequence,
)

from tradedesk.agent.adapters import ProviderCallError
from tradedesk.agent.agent_loop import (
    ToolLoopLimitError,
    TurnRunner,
)
from tradedesk.agent.agents import (
    GLOBAL_ANALYST_SYSTEM_PROMPT,
    get_agent,
)
from tradedesk.agent.draft_extractor import (
    extract_marked_json,
    extract_trade_plan,
)
from tradedesk.config import settings
from tradedesk.core.schema import (
    AgentConfig,
    AgentSlot,
    ConversationMessage,
    Role,
    RoundTableContext,
    RoundTableResult,
    ToolResult,
    VisionImage,
)
from tradedesk.risk.engine import evaluate_proposed_trade

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Prompt helpers
# ---------------------------------------------------------------------------
def summarize_context(context: RoundTableContext) -> str:
    """Compact session summary shared by every agent of the round."""
    account = context.account
    risk = account.risk_config
    lines = [
        f"Instrument: {context.symbol}",
        f"Current timeframe: {context.timeframe or 'n/a'}",
        f"Environment: {account.environment.upper()}",
        f"Autopilot mode: {account.autopilot_mode.upper()}",
        f"Risk config: maxRiskPerTrade={risk.max_risk_per_trade_percent}% / "
        f"maxDailyLoss={risk.max_daily_loss_percent}% / "
        f"maxWeeklyLoss={risk.max_weekly_loss_percent}% / "
        f"maxTradesPerDay={risk.max_trades_per_day}",
        f"Today: trades={context.runtime.trades_taken_today}, "
        f"realizedPnl={context.runtime.realized_pnl_today_percent}%",
    ]
    if context.desk_policy is not None:
        policy = context.desk_policy
        lines.append(
            f"Desk policy ({policy.mode}): maxRiskPerTrade={policy.max_risk_per_trade}, "
            f"playbooks=[{', '.join(policy.allowed_playbooks) or '*'}]"
        )
    if context.broker_snapshot:
        lines.append(f"Broker snapshot: {json.dumps(context.broker_snapshot, default=str)}")
    lines.append(f"Recent journal:\n{context.journal_summary or '(none provided)'}")
    lines.append(f"Chart context / notes:\n{context.chart_context or '(none provided)'}")
    return "\n".join(lines)


def build_user_text(user_question: str, shared_context: str) -> str:
    return f"SESSION CONTEXT\n{shared_context}\n\nUser prompt: {user_question}"


def moderator_instructions(marker: str) -> str:
    return f"""\
You are moderating the trading squad round-table. You receive every squad member's answer
(some may be marked as errors; treat those as missing input, never invent what they would say).
Reconcile disagreements, name the dominant bias, and give one final plan with entry, invalidation,
targets and management. If the squad does not support a trade, say "NO TRADE" clearly.

Only when you recommend a trade, end your answer with exactly one line:
{marker} {{"symbol": "...", "direction": "long"|"short", "entry": number, "stop_loss": number, \
"take_profits": [number], "risk_percent": number, "playbook": "string"}}

Do NOT explain the JSON. Do NOT put it in a code block."""


def build_synthesis_prompt(user_question: str, shared_context: str, slots: Sequence[AgentSlot]) -> str:
    """Concatenate every slot's clean text (or its error) into the moderator prompt."""
    parts: List[str] = []
    for slot in slots:
        body = slot.text if slot.ok else f"ERROR: {slot.error}"
        parts.append(f"[{slot.index + 1}] {slot.agent_name} ({slot.agent_id}):\n{body}")
    return (
        f"SESSION CONTEXT\n{shared_context}\n\n"
        f'USER QUESTION\n"{user_question}"\n\n'
        "SQUAD INPUT\n" + "\n\n".join(parts) + "\n\n"
        "Synthesize the squad input into the final plan."
    )


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------
class RoundTableOrchestrator:
    """Fan a user question out to a roster and synthesize the answers."""

    def __init__(
        self,
        runner: TurnRunner,
        *,
        agent_timeout: float | None = None,
        trade_plan_marker: str | None = None,
    ) -> None:
        self.runner = runner
        self.agent_timeout = agent_timeout if agent_timeout is not None else settings.AGENT_TURN_TIMEOUT
        self.trade_plan_marker = trade_plan_marker or settings.TRADE_PLAN_MARKER

    async def _run_slot(
        self,
        index: int,
        agent: AgentConfig,
        history: List[ConversationMessage],
        images: Sequence[VisionImage],
    ) -> AgentSlot:
        slot = AgentSlot(index=index, agent_id=agent.id, agent_name=agent.display_name)
        tool_results: List[ToolResult] = []
        try:
            turn = await asyncio.wait_for(
                self.runner.run(agent, history, images=images), timeout=self.agent_timeout
            )
        except asyncio.TimeoutError:
            error = f"Agent timed out after {self.agent_timeout}s"
        except ToolLoopLimitError as exc:
            error = str(exc)
            tool_results = exc.tool_results
        except ProviderCallError as exc:
            error = str(exc)
        except Exception as exc:  # pylint: disable=broad-except
            logger.exception("Agent '%s' failed during round-table", agent.id)
            error = f"Agent failed: {exc}"
        else:
            return slot.model_copy(
                update={"text": turn.clean_text, "draft": turn.draft, "tool_results": turn.tool_results}
            )

        logger.warning("Agent '%s' contributed an error to the round: %s", agent.id, error)
        return slot.model_copy(update={"error": error, "tool_results": tool_results})

    async def run(
        self,
        roster: Sequence[AgentConfig],
        user_question: str,
        context: RoundTableContext,
        moderator: AgentConfig | None = None,
    ) -> RoundTableResult:
        """
        Run one round.

        ``per_agent_messages`` always has one slot per roster entry, in roster order, whatever the
        completion order or outcome.  Only shared-setup problems (empty question or roster) raise.
        """
        if not user_question or not user_question.strip():
            raise ValueError("user_question is required for round-table.")
        if not roster:
            raise ValueError("roster must contain at least one agent.")
        moderator = moderator or get_agent(settings.MODERATOR_AGENT_ID)

        shared = summarize_context(context)
        seed = build_user_text(user_question, shared)
        logger.info("Round-table on %s with %d agent(s)", context.symbol, len(roster))

        # Index is attached here, at fan-out; gather returns in submission order.
        slots = list(
            await asyncio.gather(
                *(
                    self._run_slot(
                        i, agent, [ConversationMessage(role=Role.USER, content=seed)], context.images
                    )
                    for i, agent in enumerate(roster)
                )
            )
        )

        result = RoundTableResult(per_agent_messages=slots)
        moderator_agent = moderator.model_copy(
            update={
                "system_prompt": "\n\n".join(
                    [
                        GLOBAL_ANALYST_SYSTEM_PROMPT,
                        f'You are the "{moderator.display_name}" agent. {moderator.journal_style}',
                        moderator_instructions(self.trade_plan_marker),
                    ]
                )
            }
        )
        prompt = build_synthesis_prompt(user_question, shared, slots)
        try:
            turn = await asyncio.wait_for(
                self.runner.run(moderator_agent, [ConversationMessage(role=Role.USER, content=prompt)]),
                timeout=self.agent_timeout,
            )
        except asyncio.TimeoutError:
            result.moderator_error = f"Moderator timed out after {self.agent_timeout}s"
        except (ToolLoopLimitError, ProviderCallError) as exc:
            result.moderator_error = str(exc)
        except Exception as exc:  # pylint: disable=broad-except
            logger.exception("Moderator '%s' failed", moderator.id)
            result.moderator_error = f"Moderator failed: {exc}"

        if result.moderator_error is not None:
            logger.warning("Round-table synthesis failed: %s", result.moderator_error)
            result.final_synthesis = f"ERROR: {result.moderator_error}"
            return result

        synthesis, plan = extract_trade_plan(turn.final_text, self.trade_plan_marker)
        synthesis, _ = extract_marked_json(synthesis, settings.JOURNAL_MARKER)
        result.final_synthesis = synthesis
        if plan is not None:
            result.proposed_trade_plan = plan
            result.risk_verdict = evaluate_proposed_trade(
                context.account, context.runtime, plan, context.desk_policy
            )
        return result


async def run_round_table(
    roster: Sequence[AgentConfig],
    user_question: str,
    context: RoundTableContext,
    *,
    runner: TurnRunner,
    moderator: AgentConfig | None = None,
) -> RoundTableResult:
    """Functional entry point over :class:`RoundTableOrchestrator`."""
    return await RoundTableOrchestrator(runner).run(roster, user_question, context, moderator)
