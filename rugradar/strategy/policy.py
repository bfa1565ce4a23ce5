from typing import List, Optional, Tuple

from rugradar.config import AutoTradePolicyConfig, ExecutionConfig
from rugradar.types import ExecutionCapabilities, PolicyDecision, Signal

LIVE_PLAN = "pro"


def evaluate_policy(signal: Signal, config: AutoTradePolicyConfig, signal_id: Optional[int] = None) -> PolicyDecision:
    """Check every gate and collect all failures; BUY_CANDIDATE only when none fail."""
    connected = signal.holder_behavior.connected_holder_pct
    verdict = signal.kill_switch.verdict
    reasons: List[str] = []

    if signal.status != "FAVORABLE":
        reasons.append(f"status={signal.status} (requires FAVORABLE)")
    if signal.pattern_score < config.min_pattern_score:
        reasons.append(f"patternScore {signal.pattern_score:.2f} < {config.min_pattern_score:g}")
    if signal.confidence < config.min_confidence:
        reasons.append(f"confidence {signal.confidence:.2f} < {config.min_confidence:g}")
    if connected > config.max_connected_holder_pct:
        reasons.append(f"connectedHolderPct {connected:.2f} > {config.max_connected_holder_pct:g}")
    if config.require_kill_switch_pass and verdict != "PASS":
        reasons.append(f"killSwitch verdict={verdict} (requires PASS)")

    decision = "SKIP" if reasons else "BUY_CANDIDATE"
    if not reasons:
        reasons.append("all policy gates passed")

    return PolicyDecision(
        mint=signal.mint,
        decision=decision,
        reasons=reasons,
        signal_id=signal_id,
        signal_status=signal.status,
        pattern_score=round(signal.pattern_score, 2),
        confidence=round(signal.confidence, 2),
        entry_price_usd=signal.market.price_usd,
        trade_plan=signal.trade_plan,
    )


def effective_trade_amount_usd(policy: AutoTradePolicyConfig, execution: ExecutionConfig) -> float:
    """The smaller of the two nonzero caps, so a position never exceeds either."""
    cap = float(policy.max_position_usd or 0)
    amount = float(execution.trade_amount_usd or 0)
    if cap > 0 and amount > 0:
        return round(min(cap, amount), 2)
    if cap > 0:
        return round(cap, 2)
    return round(max(1.0, amount), 2)


def resolve_mode(
    policy: AutoTradePolicyConfig,
    execution: ExecutionConfig,
    caps: ExecutionCapabilities,
) -> Tuple[str, List[str]]:
    """Pick paper or live; every reason for not going live becomes a warning."""
    warnings: List[str] = []
    wants_live = policy.mode == "live" or execution.mode == "live"

    if policy.mode != execution.mode:
        warnings.append(
            f"mode mismatch: policy={policy.mode}, execution={execution.mode}; using paper until both match"
        )
    if wants_live and caps.user_plan != LIVE_PLAN:
        warnings.append("live mode requires premium plan")
    if wants_live and not caps.live_enabled:
        warnings.append("live mode requested but live execution is globally disabled; downgraded to paper simulation")
    if wants_live and not caps.signer_configured:
        warnings.append("live mode requested but no trader key is configured; downgraded to paper simulation")

    if (
        policy.mode == "live"
        and execution.mode == "live"
        and caps.user_plan == LIVE_PLAN
        and caps.live_enabled
        and caps.signer_configured
    ):
        return "live", warnings
    return "paper", warnings


def project_pnl_pct(pattern_score: float, confidence: float) -> float:
    edge = confidence * 0.7 + (pattern_score / 100) * 0.3
    return round((edge - 0.55) * 18, 2)
