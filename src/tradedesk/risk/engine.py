"""
Deterministic risk policy evaluator.

This is the hard wall between model output and execution.  It has no I/O and no hidden state: the
same inputs always produce the same verdict, so a blocked trade can always be explained.

Rules (all evaluated, reasons are collected rather than short-circuited):
- per-trade risk ceiling (with a near-threshold warning)
- desk-policy risk ceiling when it is stricter than the account ceiling
- desk-policy playbook allow-list
- projected daily loss ceiling
- projected weekly loss ceiling
- trades-per-day ceiling
- live-environment full-autopilot gate
"""

import logging
import math
from typing import (
    Any,
    List,
    Optional,
)

from tradedesk.core.schema import (
    AccountState,
    DeskPolicy,
    RiskRuntime,
    RiskVerdict,
    TradePlan,
)

logger = logging.getLogger(__name__)

NEAR_LIMIT_RATIO = 0.7
"""Fraction of a ceiling above which a warning is emitted."""


def _as_float(value: Any) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return number if math.isfinite(number) else 0.0


def _playbook_allowed(playbook: Optional[str], allowed: List[str]) -> bool:
    if "*" in allowed:
        return True
    if not playbook:
        return False
    name = playbook.lower()
    return any(p.lower() in name for p in allowed)


def _policy_breach(policy: DeskPolicy, msg: str, reasons: List[str], warnings: List[str]) -> None:
    if policy.mode == "enforced":
        reasons.append(msg)
    else:
        warnings.append(msg)


def evaluate_proposed_trade(
    account: AccountState,
    runtime: RiskRuntime,
    trade: TradePlan,
    desk_policy: DeskPolicy | None = None,
) -> RiskVerdict:
    """
    Evaluate *trade* against the account risk config, the runtime counters and the desk policy.

    All percentages are of current equity.  Projected losses assume the new trade also loses:
    ``max(0, -realized) + trade.risk_percent``.

    Never raises; nonsensical input (zero, negative or non-numeric risk) becomes a reason.
    """
    config = account.risk_config
    reasons: List[str] = []
    warnings: List[str] = []

    risk = _as_float(trade.risk_percent)
    max_risk = _as_float(config.max_risk_per_trade_percent)

    # 1. Per-trade ceiling
    if risk <= 0:
        reasons.append("Proposed trade has no valid riskPercent > 0.")
    elif risk > max_risk:
        reasons.append(
            f"Trade risk ({risk:.2f}%) exceeds max per-trade risk ({max_risk:.2f}%)."
        )
    elif risk > max_risk * NEAR_LIMIT_RATIO:
        warnings.append(
            f"Trade risk ({risk:.2f}%) is close to your max per-trade risk ({max_risk:.2f}%)."
        )

    if desk_policy is not None:
        # 2. Desk policy ceiling, only when stricter than the account ceiling
        if desk_policy.max_risk_per_trade is not None:
            policy_max = _as_float(desk_policy.max_risk_per_trade)
            if policy_max < max_risk and risk > policy_max:
                _policy_breach(
                    desk_policy,
                    f"Trade risk ({risk:.2f}%) exceeds POLICY limit ({policy_max:.2f}%).",
                    reasons,
                    warnings,
                )

        # 3. Playbook allow-list
        if desk_policy.allowed_playbooks:
            playbook = trade.playbook or trade.comment
            if not _playbook_allowed(playbook, desk_policy.allowed_playbooks):
                _policy_breach(
                    desk_policy,
                    f"Playbook '{playbook}' is not in today's allowed list: "
                    f"[{', '.join(desk_policy.allowed_playbooks)}]",
                    reasons,
                    warnings,
                )

    # 4/5. Projected daily and weekly loss
    projected_daily = max(0.0, -_as_float(runtime.realized_pnl_today_percent)) + max(risk, 0.0)
    projected_weekly = max(0.0, -_as_float(runtime.realized_pnl_week_percent)) + max(risk, 0.0)

    if projected_daily > config.max_daily_loss_percent:
        reasons.append(
            "This trade could push your daily loss beyond the daily cap "
            f"({config.max_daily_loss_percent:.2f}%)."
        )
    elif projected_daily > config.max_daily_loss_percent * NEAR_LIMIT_RATIO:
        warnings.append(
            f"Projected daily loss ({projected_daily:.2f}%) is close to the daily cap "
            f"({config.max_daily_loss_percent:.2f}%)."
        )

    if projected_weekly > config.max_weekly_loss_percent:
        reasons.append(
            "This trade could push your weekly loss beyond the weekly cap "
            f"({config.max_weekly_loss_percent:.2f}%)."
        )

    # 6. Trade count
    if runtime.trades_taken_today + 1 > config.max_trades_per_day:
        reasons.append(f"Max trades per day reached ({config.max_trades_per_day}).")

    # 7. Live full-autopilot gate
    if account.environment == "live" and account.autopilot_mode == "full":
        if not account.autopilot_config.allow_full_auto_in_live:
            reasons.append(
                "Full Autopilot is disabled for live/funded accounts in your configuration."
            )

    verdict = RiskVerdict(
        allowed=not reasons,
        reasons=reasons,
        warnings=warnings,
        projected_daily_loss_percent=projected_daily,
        projected_weekly_loss_percent=projected_weekly,
    )
    if not verdict.allowed:
        logger.info("Trade on %s blocked: %s", trade.symbol or "?", "; ".join(reasons))
    return verdict
