"""Signal generation for single mints and batches.

Batches run every mint concurrently and settle all of them: a failing mint
becomes an ``ok=False`` item and never aborts the rest.
"""

import asyncio
import logging
import re
from typing import Any, Dict, Iterable, List, Optional

from rugradar.config import AutoTradePolicyConfig
from rugradar.errors import ValidationError
from rugradar.market.dexscreener import MarketData
from rugradar.solana.holders import HolderAnalyzer
from rugradar.solana.rpc import SolanaRpc
from rugradar.storage import Store
from rugradar.strategy.killswitch import score_risk
from rugradar.strategy.pattern import compose_signal
from rugradar.strategy.policy import evaluate_policy
from rugradar.types import BatchItem, KillSwitchResult, PolicyDecision, Signal, StoredSignal

logger = logging.getLogger("rugradar.scanner")

MINT_RE = re.compile(r"^[1-9A-HJ-NP-Za-km-z]{32,44}$")
MAX_REQUEST_MINTS = 5
DISCOVERY_MIN_LIQUIDITY_USD = 10_000


def is_valid_mint(mint: str) -> bool:
    return bool(MINT_RE.match((mint or "").strip()))


def parse_mints(raw: str | Iterable[str] | None, limit: int = MAX_REQUEST_MINTS) -> List[str]:
    """Split comma/space separated text (or a list) into unique mints, capped at ``limit``."""
    if not raw:
        return []
    parts = re.split(r"[\s,]+", raw) if isinstance(raw, str) else [str(m) for m in raw]
    return list(dict.fromkeys(p.strip() for p in parts if p.strip()))[:limit]


def resolve_mints(requested: str | Iterable[str] | None, watchlist: List[str]) -> List[str]:
    parsed = parse_mints(requested)
    mints = [m for m in (parsed or watchlist) if is_valid_mint(m)]
    if not mints:
        raise ValidationError("at least one valid mint is required")
    return mints


def _error_text(exc: BaseException) -> str:
    return str(exc) or exc.__class__.__name__


class Scanner:
    def __init__(self, analyzer: HolderAnalyzer, market: MarketData, store: Store, holder_limit: Optional[int] = None):
        self.analyzer = analyzer
        self.market = market
        self.store = store
        self.holder_limit = holder_limit

    async def kill_switch(self, mint: str) -> KillSwitchResult:
        risk = await self.analyzer.risk_signals(mint, self.holder_limit)
        return score_risk(risk)

    async def generate_signal(self, mint: str) -> Signal:
        kill, snapshot = await asyncio.gather(self.kill_switch(mint), self.market.snapshot(mint))
        return compose_signal(kill, snapshot)

    async def build_signal(self, user_id: int, mint: str) -> StoredSignal:
        if not is_valid_mint(mint):
            raise ValidationError(f"invalid mint: {mint!r}")
        signal = await self.generate_signal(mint.strip())
        stored = self.store.save_signal(user_id, signal)
        logger.info(
            f"[scanner] signal #{stored.id} {mint} status={signal.status} "
            f"pattern={signal.pattern_score:.2f} kill={signal.kill_switch.score}"
        )
        return stored

    async def _settle(self, user_id: int, mints: List[str]) -> List[StoredSignal | BaseException]:
        results = await asyncio.gather(*(self.build_signal(user_id, m) for m in mints), return_exceptions=True)
        for mint, res in zip(mints, results):
            if isinstance(res, BaseException) and not isinstance(res, Exception):
                raise res
            if isinstance(res, Exception):
                logger.warning(f"[scanner] signal failed for {mint}: {res}")
        return results

    async def build_batch(self, user_id: int, mints: List[str]) -> List[BatchItem]:
        """One item per mint, sorted by kill-switch score descending."""
        results = await self._settle(user_id, mints)
        items = []
        for mint, res in zip(mints, results):
            if isinstance(res, Exception):
                items.append(BatchItem(mint=mint, ok=False, error=_error_text(res)))
            else:
                items.append(BatchItem(mint=mint, ok=True, signal_id=res.id, signal=res.signal))
        return sorted(items, key=lambda item: item.kill_score, reverse=True)

    async def evaluate_decisions(
        self, user_id: int, mints: List[str], config: AutoTradePolicyConfig
    ) -> List[PolicyDecision]:
        results = await self._settle(user_id, mints)
        decisions = []
        for mint, res in zip(mints, results):
            if isinstance(res, Exception):
                decisions.append(PolicyDecision(mint=mint, ok=False, decision="SKIP", reasons=[_error_text(res)]))
            else:
                decisions.append(evaluate_policy(res.signal, config, signal_id=res.id))
        return decisions

    async def discover(self, limit: int = 5, candidates: int = 20) -> List[Dict[str, Any]]:
        found = await self.market.discover_mints(30)
        found = found[:candidates]
        signals = await asyncio.gather(*(self.generate_signal(c["mint"]) for c in found), return_exceptions=True)
        items = []
        for candidate, sig in zip(found, signals):
            if isinstance(sig, BaseException):
                if not isinstance(sig, Exception):
                    raise sig
                continue
            if sig.market.liquidity_usd < DISCOVERY_MIN_LIQUIDITY_USD:
                continue
            items.append({**candidate, "signal": sig})
        items.sort(key=lambda item: item["signal"].pattern_score, reverse=True)
        return items[:limit]

    async def aclose(self) -> None:
        await self.analyzer.rpc.aclose()
        await self.market.aclose()


def build_scanner(store: Optional[Store] = None) -> Scanner:
    rpc = SolanaRpc()
    return Scanner(HolderAnalyzer(rpc), MarketData(), store or Store())
