import httpx
import pytest

from rugradar import server
from rugradar.config import ExecutionConfig

MINT_A = "So11111111111111111111111111111111111111112"
MINT_B = "DezXAZ8z7PnrnRJjz3wXBoRgixCa6xjnB7YaB1pPB263"

USER = {"X-User-Id": "1"}


class FakeRpc:
    async def health(self):
        return {"ok": True, "version": {"solana-core": "2.0.0"}, "rpc": "https://fake.rpc", "fallbackCount": 1}


@pytest.fixture
def wired(monkeypatch, store, stub_scanner, make_signal):
    scanner = stub_scanner(store, signals={MINT_A: make_signal(MINT_A), MINT_B: make_signal(MINT_B, kill_score=99)})
    scanner.analyzer = type("Analyzer", (), {"rpc": FakeRpc()})()
    monkeypatch.setattr(server.app.state, "store", store, raising=False)
    monkeypatch.setattr(server.app.state, "scanner", scanner, raising=False)
    monkeypatch.setattr(server.app.state, "executor", None, raising=False)
    monkeypatch.setattr(server.settings, "execution_enabled", False)
    return store, scanner


def client():
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=server.app), base_url="http://test")


@pytest.mark.asyncio
async def test_signal_is_persisted(wired):
    async with client() as ac:
        resp = await ac.post("/signal", json={"mint": MINT_A}, headers=USER)
    assert resp.status_code == 200
    body = resp.json()
    assert body["signal_id"] == 1
    assert body["signal"]["status"] == "FAVORABLE"


@pytest.mark.asyncio
async def test_bad_mint_is_400(wired):
    async with client() as ac:
        resp = await ac.post("/signal", json={"mint": "0xnope"}, headers=USER)
    assert resp.status_code == 400
    assert "invalid mint" in resp.json()["error"]


@pytest.mark.asyncio
async def test_user_header_required(wired):
    async with client() as ac:
        resp = await ac.get("/watchlist")
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_watchlist_roundtrip_and_scan(wired):
    async with client() as ac:
        empty = await ac.post("/watchlist/scan", headers=USER)
        assert empty.status_code == 400

        put = await ac.put("/watchlist", json={"mints": [MINT_A, "junk", MINT_B]}, headers=USER)
        assert put.json()["mints"] == [MINT_A, MINT_B]

        scan = await ac.post("/watchlist/scan", headers=USER)
    items = scan.json()["items"]
    assert [i["mint"] for i in items] == [MINT_B, MINT_A]


@pytest.mark.asyncio
async def test_config_is_clamped(wired):
    async with client() as ac:
        resp = await ac.put("/autotrade/config", json={"min_pattern_score": 5, "enabled": True}, headers=USER)
        got = await ac.get("/autotrade/config", headers=USER)
    assert resp.json()["config"]["min_pattern_score"] == 40
    assert got.json()["config"]["enabled"] is True


@pytest.mark.asyncio
async def test_live_mode_requires_pro_plan(wired):
    store, _ = wired
    async with client() as ac:
        denied = await ac.put("/autotrade/execution-config", json={"mode": "live"}, headers=USER)
        assert denied.status_code == 403
        assert store.get_execution_config(1).mode == "paper"

        store.set_plan(1, "pro")
        allowed = await ac.put("/autotrade/execution-config", json={"mode": "live", "tp_pct": 500}, headers=USER)
    assert allowed.status_code == 200
    assert allowed.json()["config"]["tp_pct"] == 200


@pytest.mark.asyncio
async def test_autotrade_run(wired):
    store, _ = wired
    async with client() as ac:
        disabled = await ac.post("/autotrade/run", json={"mints": [MINT_A]}, headers=USER)
        assert disabled.status_code == 400

        await ac.put("/autotrade/config", json={"enabled": True}, headers=USER)
        resp = await ac.post("/autotrade/run", json={"mints": [MINT_A, MINT_B]}, headers=USER)
        perf = await ac.get("/autotrade/performance", headers=USER)

    body = resp.json()
    assert body["mode"] == "paper"
    assert body["summary"]["buy_candidates"] == 2
    assert body["summary"]["simulated_exposure_usd"] == 100.0
    assert store.list_positions(1) == []
    assert perf.json()["runs"]["runs"] == 1


@pytest.mark.asyncio
async def test_engine_tick_and_positions(wired):
    store, _ = wired
    store.put_execution_config(1, ExecutionConfig(enabled=True, cooldown_sec=0))
    async with client() as ac:
        await ac.put("/autotrade/config", json={"enabled": True}, headers=USER)
        resp = await ac.post("/autotrade/engine/tick", json={"mints": [MINT_A]}, headers=USER)
        listed = await ac.get("/autotrade/positions", params={"status": "open"}, headers=USER)
        bad = await ac.get("/autotrade/positions", params={"status": "weird"}, headers=USER)

    body = resp.json()
    assert body["mode"] == "paper"
    assert [a["type"] for a in body["actions"]] == ["OPEN"]
    assert body["positions"]["open_count"] == 1
    assert listed.json()["count"] == 1
    assert bad.status_code == 400


@pytest.mark.asyncio
async def test_engine_tick_disabled_is_400(wired):
    async with client() as ac:
        resp = await ac.post("/autotrade/engine/tick", json={"mints": [MINT_A]}, headers=USER)
    assert resp.status_code == 400
    assert resp.json()["error"] == "execution engine is disabled"


@pytest.mark.asyncio
async def test_discovery_and_health(wired):
    async with client() as ac:
        found = await ac.post("/discovery/suggest", params={"limit": 1})
        health = await ac.get("/health")
    assert len(found.json()["items"]) == 1
    assert found.json()["items"][0]["signal"]["mint"] == MINT_A
    assert health.json()["rpc"]["ok"] is True
