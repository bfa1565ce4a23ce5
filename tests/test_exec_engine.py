import pytest

from rugradar.config import AutoTradePolicyConfig, ExecutionConfig
from rugradar.errors import AutoTradeDisabled, ValidationError
from rugradar.exec.engine import close_reason, serialized_tick, tick
from rugradar.exec.paper import load_trades
from rugradar.types import ExecutionCapabilities, Position

MINT_A = "So11111111111111111111111111111111111111112"
MINT_B = "DezXAZ8z7PnrnRJjz3wXBoRgixCa6xjnB7YaB1pPB263"
MINT_C = "JUPyiwrYJFskUPiHa7hkeR8VUtAeFoSYbKedZNsDvCN"

PAPER = ExecutionCapabilities()
LIVE = ExecutionCapabilities(live_enabled=True, user_plan="pro", signer_configured=True)


class FakeExecutor:
    def __init__(self, buy_ok=True, sell_ok=True):
        self.buy_ok = buy_ok
        self.sell_ok = sell_ok
        self.calls = []

    async def buy(self, mint, amount_usd):
        self.calls.append(("buy", mint, amount_usd))
        if not self.buy_ok:
            return {"ok": False, "error": "live buy failed: slippage"}
        return {"ok": True, "signature": "sigbuy", "status": "Success"}

    async def sell(self, mint):
        self.calls.append(("sell", mint))
        if not self.sell_ok:
            return {"ok": False, "error": "live sell failed: route not found"}
        return {"ok": True, "signature": "sigsell", "status": "Success"}


def position(entry=1.0, high_water=1.0, tp=10, sl=5, trail=3, max_hold=240, opened_at=0.0):
    return Position(
        id=1, user_id=1, mint=MINT_A, entry_price_usd=entry, size_usd=50, qty_tokens=50,
        tp_pct=tp, sl_pct=sl, trailing_stop_pct=trail, max_hold_minutes=max_hold,
        high_water_price_usd=high_water, last_price_usd=entry, opened_at=opened_at,
    )


def enable(store, policy=None, **execution):
    store.put_execution_config(1, ExecutionConfig(enabled=True, **execution))
    if policy is not None:
        store.put_autotrade_config(1, policy)


def open_in_store(store, mint=MINT_A, entry=1.0, opened_at=1_000.0, **kw):
    fields = dict(tp_pct=10, sl_pct=5, trailing_stop_pct=3, max_hold_minutes=240)
    fields.update(kw)
    return store.create_position(
        1, mint=mint, mode="paper", entry_price_usd=entry, size_usd=50.0,
        qty_tokens=50.0 / entry, opened_at=opened_at, **fields,
    )


def test_close_triggers():
    assert close_reason(position(), 0.94, 60) == "SL_HIT"
    assert close_reason(position(), 1.11, 60) == "TP_HIT"
    assert close_reason(position(), 1.0, 240 * 60) == "MAX_HOLD_TIME"
    assert close_reason(position(), 1.02, 60) is None


def test_trailing_stop_beats_take_profit():
    # both above tp_price 1.10; only the first is under the 1.164 trail floor
    assert close_reason(position(high_water=1.20), 1.15, 60) == "TRAILING_STOP"
    assert close_reason(position(high_water=1.20), 1.17, 60) == "TP_HIT"


def test_trailing_stop_needs_gain_above_entry():
    # floor 0.97 but high water never exceeded entry
    assert close_reason(position(high_water=1.0, sl=50, trail=3), 0.96, 60) is None


@pytest.mark.asyncio
async def test_disabled_engine_raises(store, stub_scanner):
    with pytest.raises(AutoTradeDisabled):
        await tick(1, store, stub_scanner(store), PAPER, mints=[MINT_A])


@pytest.mark.asyncio
async def test_empty_mint_set_rejected_before_io(store, stub_scanner):
    enable(store)
    scanner = stub_scanner(store)
    with pytest.raises(ValidationError):
        await tick(1, store, scanner, PAPER)
    assert scanner.calls == []


@pytest.mark.asyncio
async def test_trailing_stop_closes_with_pnl(store, stub_scanner, make_signal):
    enable(store, tp_pct=10, sl_pct=5, trailing_stop_pct=3)
    pos = open_in_store(store)
    store.update_position_mark(1, pos.id, 1.20)
    scanner = stub_scanner(store, signals={MINT_A: make_signal(MINT_A, price=1.15)})

    report = await tick(1, store, scanner, PAPER, mints=[MINT_A], now=1_060.0)

    close = [a for a in report.actions if a.type == "CLOSE"]
    assert len(close) == 1
    assert close[0].reason == "TRAILING_STOP"
    assert close[0].pnl_pct == 15.0
    closed = store.list_positions(1, "CLOSED")[0]
    assert closed.pnl_pct == pytest.approx(15.0)
    assert closed.closed_at == 1_060.0
    assert report.positions.open_count == 0
    assert report.positions.recently_closed[0].id == pos.id
    assert [t.side for t in load_trades(store.root)] == ["sell"]


@pytest.mark.asyncio
async def test_opens_up_to_capacity(store, stub_scanner, make_signal):
    enable(store, AutoTradePolicyConfig(enabled=True), max_open_positions=2, cooldown_sec=0, trade_amount_usd=40)
    scanner = stub_scanner(store, signals={m: make_signal(m, price=2.0) for m in (MINT_A, MINT_B, MINT_C)})

    report = await tick(1, store, scanner, PAPER, mints=[MINT_A, MINT_B, MINT_C], now=5_000.0)

    opened = [a for a in report.actions if a.type == "OPEN"]
    assert len(opened) == 2
    assert report.positions.open_count == 2
    assert report.effective_trade_amount_usd == 40
    assert report.scanned == 3
    assert opened[0].qty_tokens == 20.0
    assert all(p.opened_at == 5_000.0 for p in report.positions.open)
    assert len(report.decisions) == 3


@pytest.mark.asyncio
async def test_closes_free_capacity_in_same_tick(store, stub_scanner, make_signal):
    enable(store, AutoTradePolicyConfig(enabled=True), max_open_positions=1, cooldown_sec=0)
    open_in_store(store, MINT_A, entry=1.0)
    scanner = stub_scanner(
        store, signals={MINT_A: make_signal(MINT_A, price=0.5, status="CAUTION"), MINT_B: make_signal(MINT_B, price=3.0)}
    )

    report = await tick(1, store, scanner, PAPER, mints=[MINT_A, MINT_B], now=9_000.0)

    assert [a.type for a in report.actions] == ["CLOSE", "OPEN"]
    assert report.actions[0].reason == "SL_HIT"
    assert report.positions.open[0].mint == MINT_B
    assert report.positions.open_count <= 1


@pytest.mark.asyncio
async def test_open_mints_are_not_reevaluated(store, stub_scanner, make_signal):
    enable(store, AutoTradePolicyConfig(enabled=True), max_open_positions=3, cooldown_sec=0)
    open_in_store(store, MINT_A, entry=1.0)
    scanner = stub_scanner(store, signals={MINT_A: make_signal(MINT_A, price=1.01), MINT_B: make_signal(MINT_B)})

    report = await tick(1, store, scanner, PAPER, mints=[MINT_A, MINT_B], now=1_100.0)

    assert [d.mint for d in report.decisions] == [MINT_B]
    assert report.positions.open_count == 2


@pytest.mark.asyncio
async def test_cooldown_blocks_new_positions(store, stub_scanner, make_signal):
    enable(store, AutoTradePolicyConfig(enabled=True), max_open_positions=3, cooldown_sec=300)
    pos = open_in_store(store, MINT_A, opened_at=1_000.0)
    store.close_position(1, pos.id, 1.0, "MAX_HOLD_TIME")
    scanner = stub_scanner(store, signals={MINT_B: make_signal(MINT_B)})

    report = await tick(1, store, scanner, PAPER, mints=[MINT_B], now=1_100.0)

    assert not [a for a in report.actions if a.type == "OPEN"]
    assert report.actions[-1].type == "INFO"
    assert "cooldown" in report.actions[-1].note
    assert scanner.calls == []

    report = await tick(1, store, scanner, PAPER, mints=[MINT_B], now=1_300.0)
    assert [a.type for a in report.actions] == ["OPEN"]


@pytest.mark.asyncio
async def test_disabled_policy_only_manages_exits(store, stub_scanner, make_signal):
    enable(store)
    scanner = stub_scanner(store, signals={MINT_B: make_signal(MINT_B)})
    report = await tick(1, store, scanner, PAPER, mints=[MINT_B], now=2_000.0)
    assert [a.type for a in report.actions] == ["INFO"]
    assert report.positions.open_count == 0


@pytest.mark.asyncio
async def test_mark_failure_records_error_and_keeps_position(store, stub_scanner, make_signal):
    enable(store)
    pos = open_in_store(store, MINT_C)
    scanner = stub_scanner(store, failing={MINT_C})

    report = await tick(1, store, scanner, PAPER, mints=[MINT_C], now=2_000.0)

    errors = [a for a in report.actions if a.type == "ERROR"]
    assert errors[0].position_id == pos.id
    assert store.list_positions(1, "OPEN")[0].id == pos.id


@pytest.mark.asyncio
async def test_live_sell_failure_leaves_position_open(store, stub_scanner, make_signal):
    enable(store, AutoTradePolicyConfig(mode="live"), mode="live")
    pos = open_in_store(store, MINT_A, entry=1.0)
    scanner = stub_scanner(store, signals={MINT_A: make_signal(MINT_A, price=0.5)})
    executor = FakeExecutor(sell_ok=False)

    report = await tick(1, store, scanner, LIVE, executor=executor, mints=[MINT_A], now=2_000.0)

    assert report.mode == "live"
    assert [a.type for a in report.actions][0] == "ERROR"
    assert "route not found" in report.actions[0].reason
    still_open = store.list_positions(1, "OPEN")
    assert [p.id for p in still_open] == [pos.id]
    assert still_open[0].close_reason is None

    executor.sell_ok = True
    report = await tick(1, store, scanner, LIVE, executor=executor, mints=[MINT_A], now=2_100.0)
    assert [a.type for a in report.actions][:2] == ["LIVE_SELL", "CLOSE"]
    assert store.list_positions(1, "OPEN") == []


@pytest.mark.asyncio
async def test_live_buy_failure_opens_nothing(store, stub_scanner, make_signal):
    enable(store, AutoTradePolicyConfig(enabled=True, mode="live"), mode="live", cooldown_sec=0)
    scanner = stub_scanner(store, signals={MINT_B: make_signal(MINT_B)})
    executor = FakeExecutor(buy_ok=False)

    report = await tick(1, store, scanner, LIVE, executor=executor, mints=[MINT_B], now=2_000.0)

    assert [a.type for a in report.actions] == ["ERROR"]
    assert store.list_positions(1) == []


@pytest.mark.asyncio
async def test_live_without_entitlement_runs_paper(store, stub_scanner, make_signal):
    enable(store, AutoTradePolicyConfig(enabled=True, mode="live"), mode="live", cooldown_sec=0)
    scanner = stub_scanner(store, signals={MINT_B: make_signal(MINT_B)})
    executor = FakeExecutor()

    report = await tick(
        1, store, scanner, ExecutionCapabilities(live_enabled=True, user_plan="free", signer_configured=True),
        executor=executor, mints=[MINT_B], now=2_000.0,
    )

    assert report.mode == "paper"
    assert any("premium plan" in w for w in report.warnings)
    assert executor.calls == []
    assert report.positions.open[0].mode == "paper"


@pytest.mark.asyncio
async def test_serialized_tick(store, stub_scanner, make_signal):
    enable(store)
    scanner = stub_scanner(store, signals={MINT_B: make_signal(MINT_B)})
    report = await serialized_tick(1, store, scanner, PAPER, mints=[MINT_B], now=3_000.0)
    assert report.ts == 3_000.0
