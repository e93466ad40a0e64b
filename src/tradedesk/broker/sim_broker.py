"""Simple in-memory simulated broker: one account plus its open positions."""

import copy
import logging
import uuid
from datetime import (
    datetime,
    timezone,
)
from typing import (
    Any,
    Dict,
    List,
    Optional,
)

from tradedesk.core.schema import AccountState

logger = logging.getLogger(__name__)


class SimBroker:
    """Holds the account snapshot and positions an agent can read or trade against."""

    def __init__(self, account: AccountState, currency: str = "USD") -> None:
        self.account = account
        self.currency = currency
        self._positions: List[Dict[str, Any]] = []

    def snapshot(self) -> Dict[str, Any]:
        """Return balance/equity overview of the account."""
        return {
            "account_id": self.account.account_id,
            "equity": self.account.equity,
            "currency": self.currency,
            "environment": self.account.environment,
            "autopilot_mode": self.account.autopilot_mode,
            "open_positions": len(self._positions),
        }

    def positions(self, symbol: Optional[str] = None) -> List[Dict[str, Any]]:
        """Return copies of the open positions, optionally filtered by a symbol substring."""
        found = self._positions
        if symbol:
            found = [p for p in found if symbol.upper() in p["symbol"]]
        return copy.deepcopy(found)

    def open_position(
        self,
        *,
        symbol: str,
        direction: str,
        risk_percent: float,
        entry: Optional[float],
        stop_loss: Optional[float],
        take_profit: Optional[float] = None,
    ) -> Dict[str, Any]:
        """Open a position sized so that hitting *stop_loss* loses *risk_percent* of equity."""
        risk_money = self.account.equity * (risk_percent / 100)
        unit_risk = abs(entry - stop_loss) if entry is not None and stop_loss is not None else 0.0
        size_units = risk_money / unit_risk if unit_risk > 0 else risk_money

        position = {
            "id": f"pos_{uuid.uuid4().hex[:10]}",
            "symbol": symbol.upper(),
            "direction": "short" if direction == "short" else "long",
            "side": "sell" if direction == "short" else "buy",
            "size_units": size_units,
            "entry_price": entry,
            "stop_price": stop_loss,
            "take_profit": take_profit,
            "opened_at": datetime.now(timezone.utc).isoformat(),
            "status": "open",
        }
        self._positions.append(position)
        logger.info(
            "Sim position %s opened: %s %s %.4f units",
            position["id"],
            position["direction"],
            position["symbol"],
            size_units,
        )
        return copy.deepcopy(position)
