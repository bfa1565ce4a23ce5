import asyncio
import logging
from typing import Any, Dict, List, Optional

import httpx

from rugradar.cache import TTLCache
from rugradar.config import settings
from rugradar.errors import MarketDataError
from rugradar.types import MarketSnapshot

logger = logging.getLogger("rugradar.market")

DISCOVERY_PATHS = (
    "/token-profiles/latest/v1",
    "/token-boosts/latest/v1",
    "/token-boosts/top/v1",
)


def _num(value: Any) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def best_solana_pair(pairs: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    sol_pairs = [p for p in pairs if p.get("chainId") == "solana"]
    if not sol_pairs:
        return None
    return max(sol_pairs, key=lambda p: _num((p.get("liquidity") or {}).get("usd")))


def snapshot_from_pair(mint: str, pair: Dict[str, Any]) -> MarketSnapshot:
    base = pair.get("baseToken") or {}
    info = pair.get("info") or {}
    return MarketSnapshot(
        source="dexscreener",
        dex_id=str(pair.get("dexId") or "unknown"),
        pair_address=str(pair.get("pairAddress") or "unknown"),
        pair_url=str(pair.get("url") or ""),
        pair_created_at=int(_num(pair.get("pairCreatedAt"))),
        token_address=str(base.get("address") or mint),
        token_name=str(base.get("name") or "Unknown Token"),
        token_symbol=str(base.get("symbol") or "N/A"),
        image_url=str(info.get("imageUrl") or info.get("openGraph") or ""),
        header_url=str(info.get("header") or ""),
        price_usd=_num(pair.get("priceUsd")),
        liquidity_usd=_num((pair.get("liquidity") or {}).get("usd")),
        volume24h_usd=_num((pair.get("volume") or {}).get("h24")),
        price_change24h_pct=_num((pair.get("priceChange") or {}).get("h24")),
        fdv_usd=_num(pair.get("fdv")),
    )


class MarketData:
    """DexScreener client producing the most liquid Solana pair per mint."""

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        base_url: Optional[str] = None,
        cache: Optional[TTLCache] = None,
    ):
        self.base_url = (base_url or settings.dexscreener_base).rstrip("/")
        self.cache = cache or TTLCache(settings.market_cache_ttl_sec, settings.cache_max_entries)
        self._client = client
        self._owns_client = client is None

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=settings.market_timeout_sec)
        return self._client

    async def snapshot(self, mint: str) -> MarketSnapshot:
        cached = self.cache.get(mint)
        if cached is not None:
            return cached
        url = f"{self.base_url}/latest/dex/tokens/{mint}"
        try:
            r = await self._http().get(url, headers={"Accept": "application/json"})
        except httpx.HTTPError as e:
            raise MarketDataError(f"DexScreener request failed: {e}") from e
        if r.status_code != 200:
            raise MarketDataError(f"DexScreener HTTP {r.status_code}")
        pair = best_solana_pair((r.json() or {}).get("pairs") or [])
        if pair is None:
            raise MarketDataError("No liquid Solana pair found")
        snap = snapshot_from_pair(mint, pair)
        self.cache.set(mint, snap)
        return snap

    async def _discovery_feed(self, path: str) -> List[Dict[str, Any]]:
        try:
            r = await self._http().get(f"{self.base_url}{path}", headers={"Accept": "application/json"})
        except httpx.HTTPError as e:
            logger.warning(f"[market] discovery feed {path} failed: {e}")
            return []
        if r.status_code != 200:
            return []
        data = r.json()
        return data if isinstance(data, list) else []

    async def discover_mints(self, limit: int = 25) -> List[Dict[str, str]]:
        """New Solana mints from the profile and boost feeds, first-seen order."""
        feeds = await asyncio.gather(*(self._discovery_feed(p) for p in DISCOVERY_PATHS))
        seen = set()
        out: List[Dict[str, str]] = []
        for item in (entry for feed in feeds for entry in feed):
            mint = str(item.get("tokenAddress") or "")
            if item.get("chainId") != "solana" or not mint or mint in seen:
                continue
            seen.add(mint)
            out.append({"mint": mint, "icon_url": item.get("icon") or "", "header_url": item.get("header") or ""})
            if len(out) >= limit:
                break
        return out

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None
