import httpx
import pytest

from rugradar.cache import TTLCache
from rugradar.errors import MarketDataError
from rugradar.market.dexscreener import MarketData, best_solana_pair

MINT = "DezXAZ8z7PnrnRJjz3wXBoRgixCa6xjnB7YaB1pPB263"

PAIRS = {
    "pairs": [
        {"chainId": "ethereum", "liquidity": {"usd": 9_000_000}, "priceUsd": "9"},
        {
            "chainId": "solana",
            "dexId": "raydium",
            "pairAddress": "small",
            "liquidity": {"usd": 1_000},
            "priceUsd": "0.1",
        },
        {
            "chainId": "solana",
            "dexId": "orca",
            "pairAddress": "deep",
            "url": "https://dexscreener.com/solana/deep",
            "baseToken": {"address": MINT, "name": "Bonk", "symbol": "BONK"},
            "liquidity": {"usd": 200_000},
            "volume": {"h24": 50_000},
            "priceChange": {"h24": -3.5},
            "priceUsd": "0.00002",
            "fdv": "1500000",
            "info": {"imageUrl": "https://img/bonk.png"},
        },
    ]
}


def make_market(handler):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return MarketData(client=client, base_url="https://dex.test", cache=TTLCache(30, clock=lambda: 0.0))


def test_best_pair_is_most_liquid_solana_pair():
    assert best_solana_pair(PAIRS["pairs"])["pairAddress"] == "deep"
    assert best_solana_pair([{"chainId": "bsc"}]) is None


@pytest.mark.asyncio
async def test_snapshot_maps_pair_and_caches():
    calls = []

    def handler(request):
        calls.append(request.url.path)
        return httpx.Response(200, json=PAIRS)

    market = make_market(handler)
    snap = await market.snapshot(MINT)
    assert snap.dex_id == "orca"
    assert snap.token_symbol == "BONK"
    assert snap.liquidity_usd == 200_000
    assert snap.volume24h_usd == 50_000
    assert snap.price_change24h_pct == -3.5
    assert snap.price_usd == pytest.approx(0.00002)
    assert snap.image_url == "https://img/bonk.png"

    await market.snapshot(MINT)
    assert calls == [f"/latest/dex/tokens/{MINT}"]


@pytest.mark.asyncio
async def test_snapshot_without_solana_pair_fails():
    market = make_market(lambda request: httpx.Response(200, json={"pairs": [{"chainId": "base"}]}))
    with pytest.raises(MarketDataError):
        await market.snapshot(MINT)


@pytest.mark.asyncio
async def test_snapshot_http_error_fails():
    market = make_market(lambda request: httpx.Response(502, json={}))
    with pytest.raises(MarketDataError, match="HTTP 502"):
        await market.snapshot(MINT)


@pytest.mark.asyncio
async def test_discovery_dedups_solana_mints():
    feeds = {
        "/token-profiles/latest/v1": [
            {"chainId": "solana", "tokenAddress": "m1", "icon": "i1"},
            {"chainId": "ethereum", "tokenAddress": "0xabc"},
        ],
        "/token-boosts/latest/v1": [{"chainId": "solana", "tokenAddress": "m1"}, {"chainId": "solana", "tokenAddress": "m2"}],
    }

    def handler(request):
        if request.url.path in feeds:
            return httpx.Response(200, json=feeds[request.url.path])
        return httpx.Response(500, json={})

    found = await make_market(handler).discover_mints(10)
    assert [f["mint"] for f in found] == ["m1", "m2"]
    assert found[0]["icon_url"] == "i1"
