from typing import List

from rugradar.types import KillSwitchResult, RiskSignal

BLOCK_BELOW = 50
CAUTION_BELOW = 75


def verdict_for(score: int) -> str:
    if score < BLOCK_BELOW:
        return "BLOCK"
    if score < CAUTION_BELOW:
        return "CAUTION"
    return "PASS"


def score_risk(risk: RiskSignal) -> KillSwitchResult:
    """Deterministic 0-100 kill-switch score for a holder risk signal.

    An ``unknown`` signal scores 0 / BLOCK: a mint we could not analyze is
    treated as risky.
    """
    if risk.concentration_risk == "unknown":
        return KillSwitchResult(
            mint=risk.mint,
            score=0,
            verdict="BLOCK",
            reasons=["Unable to complete on-chain checks"],
            uncertainty="high",
            risk=risk,
        )

    top3 = risk.top3_holder_share_pct
    connected = risk.holder_behavior.connected_holder_pct
    new_wallets = risk.holder_behavior.new_wallet_holder_pct
    reasons: List[str] = []
    score = 100

    if top3 >= 60:
        score -= 40
        reasons.append("Top-3 holders control >=60% supply")
    elif top3 >= 35:
        score -= 20
        reasons.append("Top-3 holders control >=35% supply")
    elif top3 >= 20:
        score -= 10
        reasons.append("Top-3 holder concentration is non-trivial")
    else:
        reasons.append("Holder concentration appears relatively distributed")

    if connected >= 35:
        score -= 20
        reasons.append("Connected holder cluster >=35% of supply")
    elif connected >= 20:
        score -= 12
        reasons.append("Connected holder cluster >=20% of supply")

    if new_wallets >= 25:
        score -= 15
        reasons.append("Large share held by recently observed wallets")
    elif new_wallets >= 12:
        score -= 8
        reasons.append("Notable share held by new wallets")

    if risk.has_mint_authority:
        score -= 25
        reasons.append("Mint authority is enabled")
    else:
        reasons.append("Mint authority appears revoked")

    if risk.has_freeze_authority:
        score -= 20
        reasons.append("Freeze authority is enabled")
    else:
        reasons.append("Freeze authority appears revoked")

    score = max(0, min(100, score))
    return KillSwitchResult(
        mint=risk.mint,
        score=score,
        verdict=verdict_for(score),
        reasons=reasons,
        uncertainty="medium",
        risk=risk,
    )
