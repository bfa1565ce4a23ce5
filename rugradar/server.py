import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import Body, FastAPI, Header, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from rugradar.config import apply_execution_update, apply_policy_update, settings
from rugradar.errors import AutoTradeDisabled, RugradarError, ValidationError
from rugradar.exec import pnl
from rugradar.exec.engine import serialized_tick
from rugradar.scanner import Scanner, build_scanner, is_valid_mint, parse_mints, resolve_mints
from rugradar.solana.jupiter import JupiterExecutor
from rugradar.storage import Store
from rugradar.strategy.policy import LIVE_PLAN, effective_trade_amount_usd, project_pnl_pct, resolve_mode
from rugradar.types import ExecutionCapabilities

logger = logging.getLogger("rugradar.server")


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    scanner = getattr(app.state, "scanner", None)
    if scanner is not None:
        await scanner.aclose()
    executor = getattr(app.state, "executor", None)
    if executor is not None:
        await executor.aclose()


app = FastAPI(title="RugRadar", lifespan=lifespan)


class SignalRequest(BaseModel):
    mint: str


class MintsRequest(BaseModel):
    mints: Optional[List[str] | str] = None


class WatchlistRequest(BaseModel):
    mints: List[str] | str


def _store() -> Store:
    if getattr(app.state, "store", None) is None:
        app.state.store = Store()
    return app.state.store


def _scanner() -> Scanner:
    if getattr(app.state, "scanner", None) is None:
        app.state.scanner = build_scanner(_store())
    return app.state.scanner


def _executor():
    if getattr(app.state, "executor", None) is None:
        app.state.executor = JupiterExecutor()
    return app.state.executor


def _caps(user_id: int) -> ExecutionCapabilities:
    return ExecutionCapabilities(
        live_enabled=settings.execution_enabled,
        user_plan=_store().get_user(user_id).plan,
        signer_configured=settings.signer_configured(),
    )


@app.exception_handler(ValidationError)
@app.exception_handler(AutoTradeDisabled)
async def _bad_request(request: Request, exc: RugradarError):
    return JSONResponse({"ok": False, "error": str(exc)}, status_code=400)


@app.exception_handler(RugradarError)
async def _upstream_failure(request: Request, exc: RugradarError):
    logger.warning(f"[server] {request.url.path} failed: {exc}")
    return JSONResponse({"ok": False, "error": str(exc)}, status_code=500)


# --- signals ---
@app.post("/signal")
async def signal(body: SignalRequest, x_user_id: int = Header()):
    stored = await _scanner().build_signal(x_user_id, body.mint)
    return {"ok": True, "signal_id": stored.id, "signal": stored.signal.model_dump()}


@app.get("/watchlist")
async def get_watchlist(x_user_id: int = Header()):
    return {"ok": True, "mints": _store().get_watchlist(x_user_id)}


@app.put("/watchlist")
async def put_watchlist(body: WatchlistRequest, x_user_id: int = Header()):
    mints = [m for m in parse_mints(body.mints, limit=50) if is_valid_mint(m)]
    return {"ok": True, "mints": _store().put_watchlist(x_user_id, mints)}


@app.post("/watchlist/scan")
async def scan_watchlist(body: Optional[MintsRequest] = None, x_user_id: int = Header()):
    requested = body.mints if body is not None else None
    watchlist = _store().get_watchlist(x_user_id)
    if not requested and not watchlist:
        raise HTTPException(status_code=400, detail="watchlist is empty")
    mints = resolve_mints(requested, watchlist)
    items = await _scanner().build_batch(x_user_id, mints)
    return {"ok": True, "count": len(items), "items": [i.model_dump() for i in items]}


# --- autotrade config ---
def _reject_live_without_plan(user_id: int, mode: str) -> None:
    if mode == "live" and _store().get_user(user_id).plan != LIVE_PLAN:
        raise HTTPException(status_code=403, detail="live mode requires premium plan")


@app.get("/autotrade/config")
async def get_autotrade_config(x_user_id: int = Header()):
    return {"ok": True, "config": _store().get_autotrade_config(x_user_id).model_dump()}


@app.put("/autotrade/config")
async def put_autotrade_config(patch: Dict[str, Any] = Body(...), x_user_id: int = Header()):
    store = _store()
    config = apply_policy_update(store.get_autotrade_config(x_user_id), patch)
    _reject_live_without_plan(x_user_id, config.mode)
    return {"ok": True, "config": store.put_autotrade_config(x_user_id, config).model_dump()}


@app.get("/autotrade/execution-config")
async def get_execution_config(x_user_id: int = Header()):
    return {"ok": True, "config": _store().get_execution_config(x_user_id).model_dump()}


@app.put("/autotrade/execution-config")
async def put_execution_config(patch: Dict[str, Any] = Body(...), x_user_id: int = Header()):
    store = _store()
    config = apply_execution_update(store.get_execution_config(x_user_id), patch)
    _reject_live_without_plan(x_user_id, config.mode)
    return {"ok": True, "config": store.put_execution_config(x_user_id, config).model_dump()}


# --- autotrade runs ---
@app.post("/autotrade/run")
async def autotrade_run(body: Optional[MintsRequest] = None, x_user_id: int = Header()):
    store = _store()
    policy = store.get_autotrade_config(x_user_id)
    execution = store.get_execution_config(x_user_id)
    if not policy.enabled:
        raise AutoTradeDisabled("autotrade policy is disabled")
    mints = resolve_mints(body.mints if body is not None else None, store.get_watchlist(x_user_id))

    mode, warnings = resolve_mode(policy, execution, _caps(x_user_id))
    amount = effective_trade_amount_usd(policy, execution)
    decisions = await _scanner().evaluate_decisions(x_user_id, mints, policy)
    candidates = [d for d in decisions if d.ok and d.decision == "BUY_CANDIDATE"]
    projected = [project_pnl_pct(d.pattern_score, d.confidence) for d in candidates]

    run = store.save_autotrade_run(
        x_user_id,
        mode=mode,
        scanned_count=len(decisions),
        buy_candidates=len(candidates),
        skipped_count=len(decisions) - len(candidates),
        simulated_exposure_usd=round(len(candidates) * amount, 2),
        expected_pnl_pct=round(sum(projected) / len(projected), 2) if projected else 0.0,
    )
    logger.info(f"[autotrade] run #{run.id} user={x_user_id} mode={mode} candidates={run.buy_candidates}")
    return {
        "ok": True,
        "mode": mode,
        "warnings": warnings,
        "effective_trade_amount_usd": amount,
        "decisions": [d.model_dump() for d in decisions],
        "summary": run.model_dump(),
    }


@app.get("/autotrade/performance")
async def autotrade_performance(x_user_id: int = Header()):
    return {"ok": True, **pnl.report(_store(), x_user_id)}


# --- lifecycle engine ---
@app.post("/autotrade/engine/tick")
async def engine_tick(body: Optional[MintsRequest] = None, x_user_id: int = Header()):
    report = await serialized_tick(
        x_user_id,
        _store(),
        _scanner(),
        _caps(x_user_id),
        executor=_executor(),
        mints=body.mints if body is not None else None,
    )
    return {"ok": True, **report.model_dump()}


@app.get("/autotrade/positions")
async def positions(status: Optional[str] = Query(default=None), x_user_id: int = Header()):
    if status is not None:
        status = status.upper()
        if status not in ("OPEN", "CLOSED"):
            raise HTTPException(status_code=400, detail="status must be OPEN or CLOSED")
    rows = _store().list_positions(x_user_id, status)
    return {"ok": True, "count": len(rows), "positions": [p.model_dump() for p in rows]}


# --- discovery / health ---
@app.post("/discovery/suggest")
async def discovery_suggest(limit: int = Query(default=5, ge=1, le=10)):
    items = await _scanner().discover(limit=limit)
    return {
        "ok": True,
        "items": [{**{k: v for k, v in i.items() if k != "signal"}, "signal": i["signal"].model_dump()} for i in items],
    }


@app.get("/health")
async def health():
    rpc = await _scanner().analyzer.rpc.health()
    return {"ok": True, "rpc": rpc}
