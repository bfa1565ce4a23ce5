# rugradar/config/autotrade.py
"""Per-user autotrade policy and execution settings with server-side clamping."""

from typing import Any, Dict, Literal
from pydantic import BaseModel

Mode = Literal["paper", "live"]


class AutoTradePolicyConfig(BaseModel):
    enabled: bool = False
    mode: Mode = "paper"
    min_pattern_score: float = 70.0
    min_confidence: float = 0.75
    max_connected_holder_pct: float = 20.0
    require_kill_switch_pass: bool = True
    max_position_usd: float = 100.0
    scan_interval_sec: float = 60.0


class ExecutionConfig(BaseModel):
    enabled: bool = False
    mode: Mode = "paper"
    trade_amount_usd: float = 50.0
    max_open_positions: int = 3
    tp_pct: float = 20.0
    sl_pct: float = 10.0
    trailing_stop_pct: float = 8.0
    max_hold_minutes: float = 240.0
    cooldown_sec: float = 300.0
    poll_interval_sec: float = 30.0


POLICY_RANGES = {
    "min_pattern_score": (40, 95),
    "min_confidence": (0.1, 0.99),
    "max_connected_holder_pct": (1, 80),
    "max_position_usd": (1, 50000),
    "scan_interval_sec": (10, 3600),
}

EXECUTION_RANGES = {
    "trade_amount_usd": (1, 50000),
    "max_open_positions": (1, 50),
    "tp_pct": (0.2, 200),
    "sl_pct": (0.2, 99),
    "trailing_stop_pct": (0.1, 99),
    "max_hold_minutes": (1, 10080),
    "cooldown_sec": (0, 86400),
    "poll_interval_sec": (5, 3600),
}


def clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))


def parse_mode(value: Any, current: str) -> str:
    raw = str(value if value is not None else current).strip().lower()
    return "live" if raw == "live" else "paper"


def _merge(current: BaseModel, patch: Dict[str, Any], ranges: Dict[str, tuple]) -> Dict[str, Any]:
    data = current.model_dump()
    if isinstance(patch.get("enabled"), bool):
        data["enabled"] = patch["enabled"]
    data["mode"] = parse_mode(patch.get("mode"), current.mode)
    for key, (lo, hi) in ranges.items():
        raw = patch.get(key)
        if raw is None:
            continue
        try:
            value = float(raw)
        except (TypeError, ValueError):
            continue
        if value != value:  # NaN
            continue
        data[key] = clamp(value, lo, hi)
    return data


def apply_policy_update(current: AutoTradePolicyConfig, patch: Dict[str, Any]) -> AutoTradePolicyConfig:
    data = _merge(current, patch, POLICY_RANGES)
    if isinstance(patch.get("require_kill_switch_pass"), bool):
        data["require_kill_switch_pass"] = patch["require_kill_switch_pass"]
    return AutoTradePolicyConfig(**data)


def apply_execution_update(current: ExecutionConfig, patch: Dict[str, Any]) -> ExecutionConfig:
    data = _merge(current, patch, EXECUTION_RANGES)
    data["max_open_positions"] = int(data["max_open_positions"])
    return ExecutionConfig(**data)
