import asyncio
import json
import logging
from typing import List, Optional

import typer

from rugradar.config.settings import settings
from rugradar.exec.engine import tick as engine_tick
from rugradar.scanner import build_scanner
from rugradar.solana.jupiter import JupiterExecutor
from rugradar.solana.rpc import SolanaRpc
from rugradar.storage import Store
from rugradar.types import ExecutionCapabilities

app = typer.Typer()

# --- Logging setup ---
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
)
logger = logging.getLogger("rugradar")


def _dump(data) -> None:
    typer.echo(json.dumps(data, indent=2, default=str))


@app.command()
def signal(mint: str, user_id: int = typer.Option(1, help="user the signal is stored for")):
    """Score a single mint and print the signal."""

    async def run():
        scanner = build_scanner()
        try:
            return await scanner.build_signal(user_id, mint)
        finally:
            await scanner.aclose()

    stored = asyncio.run(run())
    s = stored.signal
    logger.info(f"[signal] #{stored.id} {s.mint} status={s.status} kill={s.kill_switch.score} pattern={s.pattern_score}")
    _dump(s.model_dump())


@app.command()
def scan(mints: List[str], user_id: int = typer.Option(1, help="user the signals are stored for")):
    """Score several mints concurrently; failures are reported per mint."""

    async def run():
        scanner = build_scanner()
        try:
            return await scanner.build_batch(user_id, mints)
        finally:
            await scanner.aclose()

    for item in asyncio.run(run()):
        if item.ok:
            typer.echo(
                f"{item.mint} kill={item.signal.kill_switch.score} verdict={item.signal.kill_switch.verdict} "
                f"status={item.signal.status} pattern={item.signal.pattern_score:.2f}"
            )
        else:
            typer.echo(f"{item.mint} error={item.error}")


@app.command()
def tick(
    user_id: int = typer.Option(1, help="user whose positions are managed"),
    mints: Optional[str] = typer.Option(None, help="comma separated mints; defaults to the watchlist"),
):
    """Run one lifecycle engine tick."""
    store = Store()
    caps = ExecutionCapabilities(
        live_enabled=settings.execution_enabled,
        user_plan=store.get_user(user_id).plan,
        signer_configured=settings.signer_configured(),
    )

    async def run():
        scanner = build_scanner(store)
        executor = JupiterExecutor()
        try:
            return await engine_tick(user_id, store, scanner, caps, executor=executor, mints=mints)
        finally:
            await scanner.aclose()
            await executor.aclose()

    report = asyncio.run(run())
    for w in report.warnings:
        logger.warning(f"[tick] {w}")
    for a in report.actions:
        typer.echo(f"{a.type} {a.mint or ''} {a.reason or a.note or ''}".strip())
    typer.echo(f"mode={report.mode} open={report.positions.open_count}")


@app.command()
def health():
    """Probe the primary RPC endpoint."""

    async def run():
        rpc = SolanaRpc()
        try:
            return await rpc.health()
        finally:
            await rpc.aclose()

    _dump(asyncio.run(run()))


@app.command()
def plan(user_id: int, name: str = typer.Argument(..., help="free | pro")):
    """Set a user's plan."""
    user = Store().set_plan(user_id, name)
    typer.echo(f"user={user.id} plan={user.plan}")


@app.command()
def serve(host: str = "127.0.0.1", port: int = 8000):
    """Run the HTTP API."""
    import uvicorn

    uvicorn.run("rugradar.server:app", host=host, port=port)


if __name__ == "__main__":
    app()
