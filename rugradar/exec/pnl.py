from dataclasses import dataclass, asdict
from typing import Any, Dict, List

from rugradar.storage import Store


@dataclass
class PnLSummary:
    closed: int
    winners: int
    losers: int
    win_rate_pct: float
    avg_pnl_pct: float
    total_pnl_pct: float


@dataclass
class RunSummary:
    runs: int
    buy_candidates: int
    skipped: int
    simulated_exposure_usd: float
    avg_expected_pnl_pct: float


def summarize_closed(store: Store, user_id: int) -> PnLSummary:
    rows = [p for p in store.list_positions(user_id, "CLOSED") if p.pnl_pct is not None]
    closed = len(rows)
    if not closed:
        return PnLSummary(0, 0, 0, 0.0, 0.0, 0.0)
    total = sum(p.pnl_pct for p in rows)
    winners = sum(1 for p in rows if p.pnl_pct > 0)
    return PnLSummary(
        closed=closed,
        winners=winners,
        losers=closed - winners,
        win_rate_pct=round(winners / closed * 100, 2),
        avg_pnl_pct=round(total / closed, 2),
        total_pnl_pct=round(total, 2),
    )


def summarize_runs(store: Store, user_id: int, limit: int = 30) -> RunSummary:
    runs = store.list_autotrade_runs(user_id, limit=limit)
    if not runs:
        return RunSummary(0, 0, 0, 0.0, 0.0)
    return RunSummary(
        runs=len(runs),
        buy_candidates=sum(r.buy_candidates for r in runs),
        skipped=sum(r.skipped_count for r in runs),
        simulated_exposure_usd=round(sum(r.simulated_exposure_usd for r in runs), 2),
        avg_expected_pnl_pct=round(sum(r.expected_pnl_pct for r in runs) / len(runs), 2),
    )


def report(store: Store, user_id: int) -> Dict[str, Any]:
    """Autotrade performance: policy run stats plus realized results of closed positions."""
    runs = store.list_autotrade_runs(user_id, limit=30)
    return {
        "runs": asdict(summarize_runs(store, user_id)),
        "positions": asdict(summarize_closed(store, user_id)),
        "recent_runs": [r.model_dump() for r in runs[:10]],
    }


def by_mint(store: Store, user_id: int) -> Dict[str, Dict[str, float]]:
    grouped: Dict[str, Dict[str, float]] = {}
    rows: List = [p for p in store.list_positions(user_id, "CLOSED") if p.pnl_pct is not None]
    for p in rows:
        if p.mint not in grouped:
            grouped[p.mint] = {"trades": 0, "total_pnl_pct": 0.0}
        grouped[p.mint]["trades"] += 1
        grouped[p.mint]["total_pnl_pct"] += p.pnl_pct
    return grouped
