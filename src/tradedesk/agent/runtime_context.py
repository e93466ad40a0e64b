"""
Runtime context handed to tool handlers.

The host application provides the accessors; tool handlers never reach broker or journal state any
other way.  Reads may run concurrently.  Writes (journal appends, order execution) go through a
single writer per account so two agents in the same round cannot lose each other's updates.
"""

import asyncio
import logging
from abc import (
    ABC,
    abstractmethod,
)
from typing import (
    Any,
    Dict,
    List,
    Mapping,
    Optional,
)

from tradedesk.broker.sim_broker import SimBroker
from tradedesk.core.schema import (
    AccountState,
    DeskPolicy,
    RiskRuntime,
    TradePlan,
)
from tradedesk.memory.journal_store import JournalStore
from tradedesk.risk.engine import evaluate_proposed_trade
from tradedesk.risk.sizing import calculate_trade_parameters

logger = logging.getLogger(__name__)

DEFAULT_PLAYBOOKS: List[Dict[str, Any]] = [
    {"name": "Trend_Pullback_V1", "win_rate": 0.60},
    {"name": "Breakout_Rejection", "win_rate": 0.45},
]


class RuntimeContextError(RuntimeError):
    """Raised when an accessor cannot produce the requested data."""


class RuntimeContext(ABC):
    """Accessors into broker, journal and risk state used by tool handlers."""

    @abstractmethod
    async def get_broker_snapshot(self) -> Dict[str, Any]:
        """Account overview (balance, equity, environment)."""

    @abstractmethod
    async def get_open_positions(self, symbol: Optional[str] = None) -> List[Dict[str, Any]]:
        """Open positions, optionally filtered by symbol."""

    @abstractmethod
    async def get_recent_trades(self, limit: int = 20) -> List[Dict[str, Any]]:
        """Most recent journal entries, newest first."""

    @abstractmethod
    async def append_journal_entry(self, entry: Mapping[str, Any]) -> Dict[str, Any]:
        """Persist a journal entry and return the stored record."""

    @abstractmethod
    async def get_playbooks(self, symbol: Optional[str] = None) -> List[Dict[str, Any]]:
        """Saved playbooks/setups for *symbol*."""

    @abstractmethod
    async def run_risk_review(self, plan: TradePlan) -> Dict[str, Any]:
        """Risk verdict plus sizing for *plan*."""

    @abstractmethod
    async def execute_order(self, order: Mapping[str, Any]) -> Dict[str, Any]:
        """Risk-check and send an order."""


class DeskRuntimeContext(RuntimeContext):
    """Runtime context backed by a ``SimBroker`` and a ``JournalStore``."""

    def __init__(
        self,
        *,
        account: AccountState,
        journal: JournalStore,
        broker: SimBroker | None = None,
        runtime: RiskRuntime | None = None,
        desk_policy: DeskPolicy | None = None,
        playbooks: List[Dict[str, Any]] | None = None,
        session_id: str = "default",
        symbol: str = "US30",
    ) -> None:
        self.account = account
        self.journal = journal
        self.broker = broker
        self.runtime = runtime or RiskRuntime()
        self.desk_policy = desk_policy
        self.playbooks = playbooks if playbooks is not None else list(DEFAULT_PLAYBOOKS)
        self.session_id = session_id
        self.symbol = symbol
        self._write_locks: Dict[str, asyncio.Lock] = {}

    def _writer(self, account_id: str) -> asyncio.Lock:
        lock = self._write_locks.get(account_id)
        if lock is None:
            lock = self._write_locks[account_id] = asyncio.Lock()
        return lock

    def _require_broker(self) -> SimBroker:
        if self.broker is None:
            raise RuntimeContextError("No broker session connected.")
        return self.broker

    # ------------------------------------------------------------------ #
    # Reads
    # ------------------------------------------------------------------ #
    async def get_broker_snapshot(self) -> Dict[str, Any]:
        return self._require_broker().snapshot()

    async def get_open_positions(self, symbol: Optional[str] = None) -> List[Dict[str, Any]]:
        return self._require_broker().positions(symbol)

    async def get_recent_trades(self, limit: int = 20) -> List[Dict[str, Any]]:
        entries = self.journal.list_entries(self.session_id, limit=limit)
        return [
            {
                "timestamp": e.get("created_at"),
                "symbol": e.get("symbol"),
                "direction": e.get("direction"),
                "status": e.get("status"),
                "r_multiple": e.get("r_multiple"),
                "note": e.get("note"),
                "tags": e.get("tags", []),
            }
            for e in entries
        ]

    async def get_playbooks(self, symbol: Optional[str] = None) -> List[Dict[str, Any]]:
        return [{**p, "symbol": symbol or self.symbol} for p in self.playbooks]

    async def run_risk_review(self, plan: TradePlan) -> Dict[str, Any]:
        verdict = evaluate_proposed_trade(self.account, self.runtime, plan, self.desk_policy)
        sizing = calculate_trade_parameters(
            equity=self.account.equity,
            direction=plan.direction,
            entry=plan.entry,
            stop_loss=plan.stop_loss,
            risk_percent=plan.risk_percent,
        )
        return {"verdict": verdict.model_dump(), "sizing": sizing}

    # ------------------------------------------------------------------ #
    # Writes (single writer per account)
    # ------------------------------------------------------------------ #
    async def append_journal_entry(self, entry: Mapping[str, Any]) -> Dict[str, Any]:
        payload = {"symbol": self.symbol, **entry}
        async with self._writer(self.account.account_id):
            stored = await self.journal.append(payload, session_id=self.session_id)
        logger.info("Journal entry %s appended for %s", stored["id"], stored["symbol"])
        return stored

    async def execute_order(self, order: Mapping[str, Any]) -> Dict[str, Any]:
        broker = self._require_broker()
        take_profit = order.get("take_profit")
        plan = TradePlan(
            symbol=str(order.get("symbol") or self.symbol),
            direction="short" if order.get("side") == "sell" else "long",
            entry=order.get("entry"),
            stop_loss=order.get("stop_loss"),
            take_profits=[take_profit] if take_profit is not None else [],
            risk_percent=order.get("risk_percent") or 0.0,
            playbook=order.get("playbook"),
            comment=order.get("reason"),
        )
        async with self._writer(self.account.account_id):
            # Evaluated under the lock so the trade counter cannot race.
            verdict = evaluate_proposed_trade(self.account, self.runtime, plan, self.desk_policy)
            if not verdict.allowed:
                raise RuntimeContextError("Order blocked by risk policy: " + "; ".join(verdict.reasons))
            position = broker.open_position(
                symbol=plan.symbol,
                direction=plan.direction,
                risk_percent=plan.risk_percent,
                entry=plan.entry,
                stop_loss=plan.stop_loss,
                take_profit=take_profit,
            )
            self.runtime.trades_taken_today += 1
        return {"status": "filled", "position": position, "warnings": verdict.warnings}
