import typer

from rugradar.exec import pnl
from rugradar.exec.paper import load_trades
from rugradar.storage import Store


def main(user_id: int = typer.Option(1, "--user-id", help="user whose positions to report")):
    store = Store()
    summary = pnl.summarize_closed(store, user_id)
    typer.echo(
        f"closed={summary.closed} winners={summary.winners} losers={summary.losers} "
        f"win_rate={summary.win_rate_pct:.2f}% avg={summary.avg_pnl_pct:.2f}% total={summary.total_pnl_pct:.2f}%"
    )

    runs = pnl.summarize_runs(store, user_id)
    typer.echo(
        f"runs={runs.runs} buy_candidates={runs.buy_candidates} skipped={runs.skipped} "
        f"exposure=${runs.simulated_exposure_usd:.2f} expected={runs.avg_expected_pnl_pct:.2f}%"
    )

    trades = load_trades(store.root)
    buys = sum(1 for t in trades if t.side == "buy")
    typer.echo(f"paper_trades={len(trades)} buys={buys} sells={len(trades) - buys}")

    per_mint = pnl.by_mint(store, user_id)
    if per_mint:
        typer.echo("Per-mint summary:")
        for mint, stats in per_mint.items():
            typer.echo(f" {mint}: {stats['trades']} trades total={stats['total_pnl_pct']:.2f}%")


if __name__ == "__main__":
    typer.run(main)
