import pytest

from rugradar.errors import MarketDataError
from rugradar.scanner import Scanner
from rugradar.storage import Store
from rugradar.types import (
    HolderBehavior,
    KillSwitchResult,
    MarketSnapshot,
    Methodology,
    RiskSignal,
    Signal,
    TokenInfo,
)

MINT_A = "So11111111111111111111111111111111111111112"
MINT_B = "DezXAZ8z7PnrnRJjz3wXBoRgixCa6xjnB7YaB1pPB263"
MINT_C = "JUPyiwrYJFskUPiHa7hkeR8VUtAeFoSYbKedZNsDvCN"


def build_signal(
    mint,
    price=1.0,
    pattern=80.0,
    confidence=0.82,
    status="FAVORABLE",
    verdict="PASS",
    kill_score=90,
    connected=5.0,
):
    behavior = HolderBehavior(connected_holder_pct=connected)
    risk = RiskSignal(mint=mint, concentration_risk="low", holder_behavior=behavior)
    return Signal(
        mint=mint,
        status=status,
        confidence=confidence,
        pattern_score=pattern,
        token=TokenInfo(mint=mint),
        kill_switch=KillSwitchResult(mint=mint, score=kill_score, verdict=verdict, risk=risk),
        holder_behavior=behavior,
        market=MarketSnapshot(price_usd=price, token_address=mint, liquidity_usd=50_000),
        methodology=Methodology(version="pattern_v1", formula="test"),
    )


class StubScanner(Scanner):
    """Scanner whose signal source is a dict of prepared signals; mints in ``failing`` raise."""

    def __init__(self, store, signals=None, failing=()):
        super().__init__(analyzer=None, market=None, store=store)
        self.signals = dict(signals or {})
        self.failing = set(failing)
        self.calls = []

    async def generate_signal(self, mint):
        self.calls.append(mint)
        if mint in self.failing:
            raise MarketDataError("No liquid Solana pair found")
        return self.signals[mint]

    async def discover(self, limit=5, candidates=20):
        return [
            {"mint": m, "icon_url": "", "header_url": "", "signal": s}
            for m, s in list(self.signals.items())[:limit]
        ]

    async def aclose(self):
        pass


@pytest.fixture
def store(tmp_path):
    return Store(tmp_path, clock=lambda: 1_000.0)


@pytest.fixture
def make_signal():
    return build_signal


@pytest.fixture
def stub_scanner():
    return StubScanner
