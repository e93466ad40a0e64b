"""Turn a high-level trade idea into concrete size and levels."""

from typing import (
    Any,
    Dict,
    List,
    Optional,
)

MAX_RISK_PERCENT = 5.0
RECOMMENDED_MAX_RISK_PERCENT = 2.0
MIN_EQUITY_FOR_TRADING = 100.0
DEFAULT_RISK_PERCENT = 0.5
DEFAULT_R_MULTIPLE = 3.0


def calculate_trade_parameters(
    *,
    equity: float,
    direction: Optional[str],
    entry: Optional[float],
    stop_loss: Optional[float],
    risk_percent: Optional[float] = None,
    r_multiple_target: Optional[float] = None,
) -> Dict[str, Any]:
    """
    Compute risk amount, position units and an R-multiple take-profit.

    ``risk_percent`` is in percent (0.5 means 0.5%) and is clamped to ``[0, MAX_RISK_PERCENT]``.
    The ``flags`` list marks anything a human should review before sending the order.
    """
    risk = DEFAULT_RISK_PERCENT if risk_percent is None else float(risk_percent)
    if risk != risk or risk < 0:  # NaN or negative
        risk = 0.0
    risk = min(risk, MAX_RISK_PERCENT)
    r_target = DEFAULT_R_MULTIPLE if r_multiple_target is None else float(r_multiple_target)

    equity = float(equity or 0.0)
    risk_amount = equity * (risk / 100)

    distance: Optional[float] = None
    units: Optional[float] = None
    take_profit: Optional[float] = None

    if entry is not None and stop_loss is not None:
        distance = abs(entry - stop_loss)
        if distance > 1e-6 and risk_amount > 0:
            units = risk_amount / distance
            tp_distance = distance * r_target
            if direction == "long":
                take_profit = entry + tp_distance
            elif direction == "short":
                take_profit = entry - tp_distance

    flags: List[str] = []
    if equity < MIN_EQUITY_FOR_TRADING:
        flags.append("equity_too_low")
    if risk > RECOMMENDED_MAX_RISK_PERCENT:
        flags.append("risk_percent_above_recommended")
    if not entry or not stop_loss:
        flags.append("missing_entry_or_stop")
    if distance is not None and distance <= 1e-6:
        flags.append("zero_or_invalid_distance")

    return {
        "equity": equity,
        "risk_percent": risk,
        "risk_amount": risk_amount,
        "entry": entry,
        "stop_loss": stop_loss,
        "take_profit": take_profit,
        "r_multiple_target": r_target,
        "position_size_units": units,
        "status": "review" if flags else "ok",
        "flags": flags,
    }
