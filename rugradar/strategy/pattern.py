"""Blend the kill-switch result with market metrics into a pattern score."""

from typing import Dict

from rugradar.types import (
    KillSwitchResult,
    MarketSnapshot,
    Methodology,
    Signal,
    TokenInfo,
    TradePlan,
)

METHODOLOGY_VERSION = "pattern_v1"
FORMULA = (
    "pattern = 0.45*kill + 0.20*liquidity + 0.15*participation + 0.20*momentum"
    " - connected_penalty - new_wallet_penalty"
)
LIQUIDITY_REFERENCE_USD = 250_000.0


def clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))


def pattern_components(kill: KillSwitchResult, market: MarketSnapshot) -> Dict[str, float]:
    behavior = kill.risk.holder_behavior
    liquidity = market.liquidity_usd
    return {
        "kill_score": float(kill.score),
        "liquidity_score": clamp(liquidity / LIQUIDITY_REFERENCE_USD * 100, 0, 100),
        "participation_score": clamp(market.volume24h_usd / max(liquidity, 1) * 100, 0, 100),
        "momentum_score": clamp(50 + market.price_change24h_pct, 0, 100),
        "connected_penalty": clamp(behavior.connected_holder_pct * 0.45, 0, 45),
        "new_wallet_penalty": clamp(behavior.new_wallet_holder_pct * 0.3, 0, 30),
    }


def pattern_score(c: Dict[str, float]) -> float:
    raw = (
        0.45 * c["kill_score"]
        + 0.20 * c["liquidity_score"]
        + 0.15 * c["participation_score"]
        + 0.20 * c["momentum_score"]
        - c["connected_penalty"]
        - c["new_wallet_penalty"]
    )
    return clamp(raw, 0, 100)


def status_for(score: float, verdict: str) -> str:
    if verdict == "BLOCK" or score < 45:
        return "HIGH_RISK"
    if score >= 70 and verdict == "PASS":
        return "FAVORABLE"
    return "CAUTION"


def confidence_for(score: float) -> float:
    return round(clamp(score / 100 * 0.9 + 0.1, 0.1, 0.98), 2)


def trade_plan_for(price: float) -> TradePlan:
    if price <= 0:
        return TradePlan()
    return TradePlan(
        entry_low=price * 0.98,
        entry_high=price * 1.02,
        stop_loss=price * 0.90,
        take_profit_1=price * 1.15,
        take_profit_2=price * 1.35,
    )


def compose_signal(kill: KillSwitchResult, market: MarketSnapshot) -> Signal:
    components = pattern_components(kill, market)
    score = pattern_score(components)
    behavior = kill.risk.holder_behavior
    mint = kill.mint
    liquidity = market.liquidity_usd

    reasons = [
        f"Kill-switch: {kill.verdict} ({kill.score}/100)",
        f"Pattern score: {score:.2f}/100",
        f"Liquidity: ${liquidity:,.0f}",
        f"Participation (vol/liquidity): {market.volume24h_usd / max(liquidity, 1):.2f}",
        f"24h price change: {market.price_change24h_pct:.2f}%",
        f"Connected holders: {behavior.connected_holder_pct:.2f}%",
        f"New-wallet holders: {behavior.new_wallet_holder_pct:.2f}%",
    ]

    return Signal(
        mint=mint,
        status=status_for(score, kill.verdict),
        confidence=confidence_for(score),
        pattern_score=round(score, 2),
        token=TokenInfo(
            mint=market.token_address or mint,
            symbol=market.token_symbol,
            name=market.token_name,
            image_url=market.image_url,
            header_url=market.header_url,
        ),
        kill_switch=kill,
        holder_behavior=behavior,
        market=market,
        trade_plan=trade_plan_for(market.price_usd),
        links={
            "dexscreener": f"https://dexscreener.com/solana/{market.pair_address}",
            "birdeye": f"https://birdeye.so/token/{mint}?chain=solana",
            "solscan": f"https://solscan.io/token/{mint}",
        },
        methodology=Methodology(
            version=METHODOLOGY_VERSION,
            formula=FORMULA,
            components={k: round(v, 2) for k, v in components.items()},
            mapping={
                "favorable": "pattern >= 70 and kill-switch PASS",
                "caution": "pattern 45-69 or mixed risk",
                "high_risk": "kill-switch BLOCK or pattern < 45",
            },
        ),
        reasons=reasons,
    )
