"""Position lifecycle engine.

One tick for a user:

1. mark every OPEN position to market and close it on the first matching
   trigger (stop-loss, trailing stop, take-profit, max hold time);
2. recompute capacity from what is still open;
3. if there is capacity, the policy is enabled and the cooldown has elapsed,
   evaluate candidate mints and open up to ``capacity`` BUY_CANDIDATEs.

Closes always happen before opens, so a freed slot is usable in the same tick.
In live mode the execution relay is called before the local state change; a
failed relay call is recorded as an ERROR action and the position is left as it
was, so the next tick can retry.
"""

import asyncio
import logging
import math
from typing import Dict, List, Optional, Protocol

from rugradar.errors import AutoTradeDisabled
from rugradar.exec.paper import PaperTrade, append_trade
from rugradar.scanner import Scanner, resolve_mints
from rugradar.storage import Store
from rugradar.strategy.policy import effective_trade_amount_usd, resolve_mode
from rugradar.types import (
    EngineAction,
    ExecutionCapabilities,
    PolicyDecision,
    Position,
    PositionsView,
    TickReport,
)

logger = logging.getLogger("rugradar.engine")

RECENTLY_CLOSED_LIMIT = 10


class LiveExecutor(Protocol):
    async def buy(self, mint: str, amount_usd: float) -> dict: ...

    async def sell(self, mint: str) -> dict: ...


def close_reason(position: Position, mark: float, now: float) -> Optional[str]:
    """First matching exit trigger for ``position`` at price ``mark``, or None."""
    entry = position.entry_price_usd
    high_water = max(position.high_water_price_usd, mark)
    sl_price = entry * (1 - position.sl_pct / 100)
    tp_price = entry * (1 + position.tp_pct / 100)
    trailing_floor = high_water * (1 - position.trailing_stop_pct / 100)
    elapsed_minutes = (now - position.opened_at) / 60

    if mark <= sl_price:
        return "SL_HIT"
    # before take-profit: a run-up that retraces past the trail closes as
    # TRAILING_STOP even while mark is still above tp_price
    if mark <= trailing_floor and high_water > entry:
        return "TRAILING_STOP"
    if mark >= tp_price:
        return "TP_HIT"
    if elapsed_minutes >= position.max_hold_minutes:
        return "MAX_HOLD_TIME"
    return None


def _valid_price(price: float) -> bool:
    return math.isfinite(price) and price > 0


async def _close_positions(
    user_id: int,
    store: Store,
    scanner: Scanner,
    mode: str,
    executor: Optional[LiveExecutor],
    now: float,
    actions: List[EngineAction],
) -> None:
    for position in store.list_positions(user_id, "OPEN"):
        try:
            stored = await scanner.build_signal(user_id, position.mint)
        except Exception as e:
            logger.warning(f"[engine] mark failed for position #{position.id} {position.mint}: {e}")
            actions.append(
                EngineAction(type="ERROR", position_id=position.id, mint=position.mint, reason=f"mark failed: {e}")
            )
            continue

        mark = stored.signal.market.price_usd
        if not _valid_price(mark):
            continue
        marked = store.update_position_mark(user_id, position.id, mark) or position
        reason = close_reason(marked, mark, now)
        if reason is None:
            continue

        if mode == "live":
            res = await executor.sell(marked.mint)
            if not res.get("ok"):
                actions.append(
                    EngineAction(type="ERROR", position_id=marked.id, mint=marked.mint, reason=str(res.get("error")))
                )
                continue
            actions.append(
                EngineAction(
                    type="LIVE_SELL",
                    position_id=marked.id,
                    mint=marked.mint,
                    signature=res.get("signature", ""),
                    status=res.get("status", "UNKNOWN"),
                )
            )
        else:
            append_trade(
                store.root,
                PaperTrade(
                    ts=now,
                    side="sell",
                    mint=marked.mint,
                    price_usd=mark,
                    size_usd=marked.qty_tokens * mark,
                    qty_tokens=marked.qty_tokens,
                    reason=reason,
                    position_id=marked.id,
                ),
            )

        closed = store.close_position(user_id, marked.id, mark, reason, closed_at=now)
        if closed is not None:
            logger.info(f"[engine] closed #{closed.id} {closed.mint} reason={reason} pnl={closed.pnl_pct:.2f}%")
            actions.append(
                EngineAction(
                    type="CLOSE",
                    position_id=closed.id,
                    mint=closed.mint,
                    reason=reason,
                    pnl_pct=round(closed.pnl_pct, 2),
                    mode=mode,
                )
            )


async def _open_positions(
    user_id: int,
    store: Store,
    candidates: List[PolicyDecision],
    capacity: int,
    amount_usd: float,
    mode: str,
    executor: Optional[LiveExecutor],
    now: float,
    actions: List[EngineAction],
) -> None:
    execution = store.get_execution_config(user_id)
    opened = 0
    for candidate in candidates:
        if opened >= capacity:
            break
        entry = candidate.entry_price_usd
        if not _valid_price(entry):
            continue

        if mode == "live":
            res = await executor.buy(candidate.mint, amount_usd)
            if not res.get("ok"):
                actions.append(EngineAction(type="ERROR", mint=candidate.mint, reason=str(res.get("error"))))
                continue
            actions.append(
                EngineAction(
                    type="LIVE_BUY",
                    mint=candidate.mint,
                    signature=res.get("signature", ""),
                    status=res.get("status", "UNKNOWN"),
                )
            )

        qty = round(amount_usd / entry, 8)
        created = store.create_position(
            user_id,
            mint=candidate.mint,
            mode=mode,
            entry_signal_id=candidate.signal_id,
            entry_price_usd=entry,
            size_usd=amount_usd,
            qty_tokens=qty,
            tp_pct=execution.tp_pct,
            sl_pct=execution.sl_pct,
            trailing_stop_pct=execution.trailing_stop_pct,
            max_hold_minutes=execution.max_hold_minutes,
            opened_at=now,
        )
        if mode == "paper":
            append_trade(
                store.root,
                PaperTrade(
                    ts=now,
                    side="buy",
                    mint=created.mint,
                    price_usd=entry,
                    size_usd=amount_usd,
                    qty_tokens=qty,
                    reason="BUY_CANDIDATE",
                    position_id=created.id,
                ),
            )
        opened += 1
        logger.info(f"[engine] opened #{created.id} {created.mint} at ${entry} size=${amount_usd} mode={mode}")
        actions.append(
            EngineAction(
                type="OPEN",
                position_id=created.id,
                mint=created.mint,
                entry_price_usd=created.entry_price_usd,
                size_usd=created.size_usd,
                qty_tokens=created.qty_tokens,
                mode=mode,
                note="paper simulated order opened" if mode == "paper" else "live order filled and slot opened",
            )
        )


async def tick(
    user_id: int,
    store: Store,
    scanner: Scanner,
    caps: ExecutionCapabilities,
    executor: Optional[LiveExecutor] = None,
    mints: Optional[List[str] | str] = None,
    now: Optional[float] = None,
) -> TickReport:
    policy = store.get_autotrade_config(user_id)
    execution = store.get_execution_config(user_id)
    if not execution.enabled:
        raise AutoTradeDisabled("execution engine is disabled")
    candidate_mints = resolve_mints(mints, store.get_watchlist(user_id))
    now = store.clock() if now is None else now

    mode, warnings = resolve_mode(policy, execution, caps)
    if mode == "live" and executor is None:
        warnings.append("live mode requested but no execution relay is available; downgraded to paper simulation")
        mode = "paper"
    amount_usd = effective_trade_amount_usd(policy, execution)
    actions: List[EngineAction] = []

    await _close_positions(user_id, store, scanner, mode, executor, now, actions)

    open_now = store.list_positions(user_id, "OPEN")
    capacity = max(0, execution.max_open_positions - len(open_now))
    decisions: List[PolicyDecision] = []

    if capacity > 0 and policy.enabled:
        last_opened = max((p.opened_at for p in store.list_positions(user_id)), default=None)
        if last_opened is None or now - last_opened >= execution.cooldown_sec:
            open_mints = {p.mint for p in open_now}
            decisions = await scanner.evaluate_decisions(
                user_id, [m for m in candidate_mints if m not in open_mints], policy
            )
            candidates = [d for d in decisions if d.ok and d.decision == "BUY_CANDIDATE"]
            await _open_positions(user_id, store, candidates, capacity, amount_usd, mode, executor, now, actions)
        else:
            actions.append(
                EngineAction(type="INFO", note=f"cooldown active ({execution.cooldown_sec:g}s), no new positions opened")
            )
    elif not policy.enabled:
        actions.append(EngineAction(type="INFO", note="autotrade policy disabled, no new positions opened"))
    else:
        actions.append(EngineAction(type="INFO", note="max open positions reached, no new positions opened"))

    open_after = store.list_positions(user_id, "OPEN")
    return TickReport(
        ts=now,
        mode=mode,
        warnings=warnings,
        effective_trade_amount_usd=amount_usd,
        scanned=len(candidate_mints),
        decisions=decisions,
        actions=actions,
        positions=PositionsView(
            open_count=len(open_after),
            open=open_after,
            recently_closed=store.list_positions(user_id, "CLOSED")[:RECENTLY_CLOSED_LIMIT],
        ),
    )


_user_locks: Dict[int, asyncio.Lock] = {}


async def serialized_tick(user_id: int, *args, **kwargs) -> TickReport:
    """Run ``tick`` with a per-user lock so two ticks for one user never interleave."""
    lock = _user_locks.setdefault(user_id, asyncio.Lock())
    async with lock:
        return await tick(user_id, *args, **kwargs)
