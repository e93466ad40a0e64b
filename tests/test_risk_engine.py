"""Tests for the risk policy evaluator and trade sizing."""

import pytest

from tradedesk.core.schema import (
    AccountState,
    AutopilotConfig,
    DeskPolicy,
    RiskConfig,
    RiskRuntime,
    TradePlan,
)
from tradedesk.risk.engine import evaluate_proposed_trade
from tradedesk.risk.sizing import calculate_trade_parameters

ACCOUNT = AccountState(risk_config=RiskConfig(max_risk_per_trade_percent=0.5))


def _plan(risk: float, playbook: str | None = "Trend_Pullback_V1") -> TradePlan:
    return TradePlan(
        symbol="US30", direction="long", entry=39000, stop_loss=38950, risk_percent=risk, playbook=playbook
    )


@pytest.mark.parametrize("risk", [0, -1])
def test_zero_or_negative_risk_is_rejected(risk: float) -> None:
    """No positive risk means no trade."""

    verdict = evaluate_proposed_trade(ACCOUNT, RiskRuntime(), _plan(risk))
    assert not verdict.allowed
    assert "Proposed trade has no valid riskPercent > 0." in verdict.reasons


def test_risk_at_ceiling_is_allowed_above_is_rejected() -> None:
    """Exactly the ceiling passes with a warning; 0.1 more is blocked."""

    at_limit = evaluate_proposed_trade(ACCOUNT, RiskRuntime(), _plan(0.5))
    assert at_limit.allowed
    assert any("close to your max per-trade risk" in w for w in at_limit.warnings)

    above = evaluate_proposed_trade(ACCOUNT, RiskRuntime(), _plan(0.6))
    assert not above.allowed
    assert any("exceeds max per-trade risk" in r for r in above.reasons)


def test_low_risk_has_no_warnings() -> None:
    """Well under every ceiling: clean verdict."""

    verdict = evaluate_proposed_trade(ACCOUNT, RiskRuntime(), _plan(0.25))
    assert verdict.allowed
    assert verdict.warnings == []
    assert verdict.projected_daily_loss_percent == pytest.approx(0.25)


def test_enforced_policy_turns_warning_into_reason() -> None:
    """The same policy breach warns in advisory mode and blocks in enforced mode."""

    advisory = DeskPolicy(mode="advisory", max_risk_per_trade=0.3)
    enforced = DeskPolicy(mode="enforced", max_risk_per_trade=0.3)

    soft = evaluate_proposed_trade(ACCOUNT, RiskRuntime(), _plan(0.4), advisory)
    hard = evaluate_proposed_trade(ACCOUNT, RiskRuntime(), _plan(0.4), enforced)

    assert soft.allowed
    assert any("POLICY limit" in w for w in soft.warnings)
    assert not hard.allowed
    assert any("POLICY limit" in r for r in hard.reasons)


def test_looser_policy_ceiling_is_ignored() -> None:
    """A policy ceiling above the account ceiling never adds anything."""

    policy = DeskPolicy(mode="enforced", max_risk_per_trade=2.0)
    verdict = evaluate_proposed_trade(ACCOUNT, RiskRuntime(), _plan(0.3), policy)
    assert verdict.allowed
    assert not any("POLICY" in m for m in verdict.reasons + verdict.warnings)


def test_playbook_allow_list() -> None:
    """Unlisted playbooks block in enforced mode; '*' allows anything."""

    policy = DeskPolicy(mode="enforced", allowed_playbooks=["Breakout"])
    assert not evaluate_proposed_trade(ACCOUNT, RiskRuntime(), _plan(0.3), policy).allowed
    assert evaluate_proposed_trade(
        ACCOUNT, RiskRuntime(), _plan(0.3, playbook="breakout_rejection"), policy
    ).allowed
    wildcard = DeskPolicy(mode="enforced", allowed_playbooks=["*"])
    assert evaluate_proposed_trade(ACCOUNT, RiskRuntime(), _plan(0.3, playbook=None), wildcard).allowed


def test_daily_loss_cap() -> None:
    """Realized losses plus the new risk may not exceed the daily cap."""

    runtime = RiskRuntime(realized_pnl_today_percent=-2.8)
    verdict = evaluate_proposed_trade(ACCOUNT, runtime, _plan(0.3))
    assert not verdict.allowed
    assert verdict.projected_daily_loss_percent == pytest.approx(3.1)
    assert any("daily cap" in r for r in verdict.reasons)

    near = evaluate_proposed_trade(ACCOUNT, RiskRuntime(realized_pnl_today_percent=-2.0), _plan(0.3))
    assert near.allowed
    assert any("daily cap" in w for w in near.warnings)


def test_profit_does_not_offset_risk() -> None:
    """A green day does not reduce the projected loss below the trade's own risk."""

    verdict = evaluate_proposed_trade(ACCOUNT, RiskRuntime(realized_pnl_today_percent=5.0), _plan(0.3))
    assert verdict.projected_daily_loss_percent == pytest.approx(0.3)


def test_weekly_loss_cap() -> None:
    """Weekly drawdown is checked independently of the day."""

    verdict = evaluate_proposed_trade(ACCOUNT, RiskRuntime(realized_pnl_week_percent=-7.9), _plan(0.3))
    assert not verdict.allowed
    assert any("weekly cap" in r for r in verdict.reasons)


def test_trade_count_limit() -> None:
    """The trade that would exceed max_trades_per_day is blocked."""

    verdict = evaluate_proposed_trade(ACCOUNT, RiskRuntime(trades_taken_today=5), _plan(0.3))
    assert not verdict.allowed
    assert "Max trades per day reached (5)." in verdict.reasons
    assert evaluate_proposed_trade(ACCOUNT, RiskRuntime(trades_taken_today=4), _plan(0.3)).allowed


def test_live_full_autopilot_gate() -> None:
    """Full autopilot on a live account needs explicit permission."""

    live = ACCOUNT.model_copy(update={"environment": "live", "autopilot_mode": "full"})
    assert not evaluate_proposed_trade(live, RiskRuntime(), _plan(0.3)).allowed

    permitted = live.model_copy(update={"autopilot_config": AutopilotConfig(allow_full_auto_in_live=True)})
    assert evaluate_proposed_trade(permitted, RiskRuntime(), _plan(0.3)).allowed


def test_reasons_are_collected_not_short_circuited() -> None:
    """Every breached rule contributes its own reason."""

    runtime = RiskRuntime(trades_taken_today=9, realized_pnl_today_percent=-3.0)
    verdict = evaluate_proposed_trade(ACCOUNT, runtime, _plan(1.0))
    assert len(verdict.reasons) == 3


def test_sizing_long_and_short() -> None:
    """Units come from the stop distance and the take-profit from the R target."""

    long = calculate_trade_parameters(equity=100_000, direction="long", entry=39000, stop_loss=38950, risk_percent=0.5)
    assert long["risk_amount"] == pytest.approx(500)
    assert long["position_size_units"] == pytest.approx(10)
    assert long["take_profit"] == pytest.approx(39150)
    assert long["status"] == "ok"

    short = calculate_trade_parameters(
        equity=100_000, direction="short", entry=39000, stop_loss=39050, risk_percent=0.5, r_multiple_target=2
    )
    assert short["take_profit"] == pytest.approx(38900)


def test_sizing_flags() -> None:
    """Risky or incomplete inputs are flagged for review; risk is clamped."""

    result = calculate_trade_parameters(equity=50, direction="long", entry=100, stop_loss=100, risk_percent=9)
    assert result["risk_percent"] == 5.0
    assert result["status"] == "review"
    assert set(result["flags"]) == {
        "equity_too_low",
        "risk_percent_above_recommended",
        "zero_or_invalid_distance",
    }
    missing = calculate_trade_parameters(equity=10_000, direction="long", entry=None, stop_loss=None)
    assert missing["risk_percent"] == 0.5
    assert "missing_entry_or_stop" in missing["flags"]
