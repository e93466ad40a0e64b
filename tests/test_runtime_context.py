"""Tests for the desk runtime context, journal store and sim broker."""

import asyncio
import json

import pytest

from tradedesk.agent.runtime_context import (
    DeskRuntimeContext,
    RuntimeContextError,
)
from tradedesk.broker.sim_broker import SimBroker
from tradedesk.core.schema import (
    AccountState,
    DeskPolicy,
    RiskConfig,
    TradePlan,
)
from tradedesk.memory.journal_store import JournalStore
from tradedesk.tools import TOOL_REGISTRY

ORDER = {
    "symbol": "us30",
    "side": "buy",
    "risk_percent": 0.25,
    "entry": 39000,
    "stop_loss": 38950,
    "take_profit": 39150,
    "reason": "HTF pullback into demand",
}


@pytest.mark.asyncio
async def test_concurrent_journal_appends_lose_nothing(desk_ctx, journal) -> None:
    """Twenty agents logging at once all end up in the journal."""

    stored = await asyncio.gather(
        *(desk_ctx.append_journal_entry({"note": f"note {i}", "tags": "scalp"}) for i in range(20))
    )
    entries = journal.list_entries()
    assert len(entries) == 20
    assert {e["id"] for e in entries} == {s["id"] for s in stored}
    assert all(e["symbol"] == "US30" and e["tags"] == ["scalp"] for e in entries)


@pytest.mark.asyncio
async def test_journal_is_newest_first_and_audited(tmp_path) -> None:
    """Entries are prepended and one JSON line per entry is written."""

    log_path = tmp_path / "audit" / "journal.jsonl"
    store = JournalStore(log_path)
    store.init()
    first = await store.append({"symbol": "xauusd", "note": "first"})
    second = await store.append({"note": "second", "status": "closed"})

    entries = store.list_entries()
    assert [e["id"] for e in entries] == [second["id"], first["id"]]
    assert first["symbol"] == "XAUUSD"
    assert second["symbol"] == "UNKNOWN" and second["status"] == "closed"
    assert first["id"].startswith("entry_")

    lines = [json.loads(line) for line in log_path.read_text(encoding="utf-8").splitlines()]
    assert [line["entry"]["note"] for line in lines] == ["first", "second"]

    # Returned lists are copies
    entries[0]["note"] = "mutated"
    assert store.list_entries(limit=1)[0]["note"] == "second"


@pytest.mark.asyncio
async def test_cancelled_append_does_not_drop_entries(tmp_path) -> None:
    """An append cancelled during the audit write keeps its entry and the next one."""

    store = JournalStore(tmp_path / "journal.jsonl")
    store.init()
    pending = asyncio.create_task(store.append({"note": "first"}))
    await asyncio.sleep(0)
    pending.cancel()
    with pytest.raises(asyncio.CancelledError):
        await pending

    await store.append({"note": "second"})
    assert [e["note"] for e in store.list_entries()] == ["second", "first"]


@pytest.mark.asyncio
async def test_recent_trades_map_journal(desk_ctx) -> None:
    """get_recent_trades exposes journal entries newest first."""

    await desk_ctx.append_journal_entry({"note": "a", "direction": "long"})
    await desk_ctx.append_journal_entry({"note": "b", "direction": "short", "r_multiple": -1})
    trades = await desk_ctx.get_recent_trades(limit=1)
    assert trades == [
        {
            "timestamp": trades[0]["timestamp"],
            "symbol": "US30",
            "direction": "short",
            "status": "planned",
            "r_multiple": -1,
            "note": "b",
            "tags": [],
        }
    ]


@pytest.mark.asyncio
async def test_execute_order_fills_and_counts(desk_ctx) -> None:
    """An allowed order opens a position and bumps the trade counter."""

    fill = await desk_ctx.execute_order(ORDER)
    assert fill["status"] == "filled"
    assert fill["position"]["symbol"] == "US30"
    assert fill["position"]["size_units"] == pytest.approx(5)
    assert desk_ctx.runtime.trades_taken_today == 1
    assert len(await desk_ctx.get_open_positions("US30")) == 1


@pytest.mark.asyncio
async def test_execute_order_blocked_by_risk(desk_ctx) -> None:
    """An order breaching the risk policy never reaches the broker."""

    with pytest.raises(RuntimeContextError, match="Order blocked by risk policy"):
        await desk_ctx.execute_order({**ORDER, "risk_percent": 3})
    assert await desk_ctx.get_open_positions() == []
    assert desk_ctx.runtime.trades_taken_today == 0


@pytest.mark.asyncio
async def test_concurrent_orders_respect_trade_limit(account, journal) -> None:
    """Orders are serialized, so the trade cap holds under concurrency."""

    account.risk_config = RiskConfig(max_trades_per_day=2)
    ctx = DeskRuntimeContext(account=account, journal=journal, broker=SimBroker(account))
    outcomes = await asyncio.gather(*(ctx.execute_order(ORDER) for _ in range(4)), return_exceptions=True)

    assert sum(1 for o in outcomes if isinstance(o, dict)) == 2
    assert sum(1 for o in outcomes if isinstance(o, RuntimeContextError)) == 2
    assert ctx.runtime.trades_taken_today == 2


@pytest.mark.asyncio
async def test_missing_broker_raises() -> None:
    """Broker reads without a session raise a descriptive error."""

    ctx = DeskRuntimeContext(account=AccountState(), journal=JournalStore())
    with pytest.raises(RuntimeContextError, match="No broker session connected."):
        await ctx.get_broker_snapshot()


@pytest.mark.asyncio
async def test_risk_review_returns_verdict_and_sizing(desk_ctx) -> None:
    """run_risk_review combines policy verdict and sizing."""

    desk_ctx.desk_policy = DeskPolicy(mode="enforced", allowed_playbooks=["Breakout"])
    review = await desk_ctx.run_risk_review(
        TradePlan(symbol="US30", direction="long", entry=39000, stop_loss=38950, risk_percent=0.25)
    )
    assert review["verdict"]["allowed"] is False
    assert review["sizing"]["position_size_units"] == pytest.approx(5)


@pytest.mark.asyncio
async def test_tool_handlers_delegate_to_context(desk_ctx) -> None:
    """Registered handlers go through the context accessors."""

    saved = await TOOL_REGISTRY["append_journal_entry"].handler({"note": "log it"}, desk_ctx)
    assert saved["status"] == "ok"
    assert desk_ctx.journal.list_entries()[0]["id"] == saved["id"]

    assert await TOOL_REGISTRY["get_open_positions"].handler({}, desk_ctx) == "No open positions."
    playbooks = await TOOL_REGISTRY["get_playbooks"].handler({"symbol": "NAS100"}, desk_ctx)
    assert {p["symbol"] for p in playbooks} == {"NAS100"}
    ui = await TOOL_REGISTRY["control_app_ui"].handler({"action": "toast", "message": "hi"}, desk_ctx)
    assert ui["status"] == "dispatched"
