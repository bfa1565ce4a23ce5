from dataclasses import dataclass
from typing import Dict, List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field

ConcentrationRisk = Literal["low", "medium", "high", "unknown"]
Verdict = Literal["PASS", "CAUTION", "BLOCK"]
SignalStatus = Literal["FAVORABLE", "CAUTION", "HIGH_RISK"]
Decision = Literal["BUY_CANDIDATE", "SKIP"]
RunMode = Literal["paper", "live"]
PositionStatus = Literal["OPEN", "CLOSED"]
CloseReason = Literal["SL_HIT", "TP_HIT", "TRAILING_STOP", "MAX_HOLD_TIME"]
ActionType = Literal["OPEN", "CLOSE", "LIVE_BUY", "LIVE_SELL", "ERROR", "INFO"]

RISK_SCHEMA = "risk_signal.v1"
KILL_SWITCH_SCHEMA = "kill_switch.v1"
SIGNAL_SCHEMA = "signal.v1"


class ConnectedGroupSummary(BaseModel):
    id: int
    holder_count: int
    hold_pct: float
    owners: List[str]
    reason: str = "linked by shared recent token-account signatures"


class HolderBehavior(BaseModel):
    analyzed_top_accounts: int = 0
    avg_wallet_age_days: Optional[float] = None
    new_wallet_count: int = 0
    new_wallet_holder_pct: float = 0.0
    connected_group_count: int = 0
    connected_holder_pct: float = 0.0
    connected_groups: List[ConnectedGroupSummary] = Field(default_factory=list)


class HolderProfile(BaseModel):
    owner: str
    token_account: str
    amount_ui: float = 0.0
    amount_pct: float = 0.0
    wallet_age_days: Optional[float] = None
    connected_group_id: int = 0
    recent_tx_count: int = 0
    wallet_source: str = "unattributed-wallet"
    buy_tx_count: int = 0
    sell_tx_count: int = 0
    tags: List[str] = Field(default_factory=list)


class RiskSignal(BaseModel):
    schema_version: Literal["risk_signal.v1"] = RISK_SCHEMA
    mint: str
    concentration_risk: ConcentrationRisk
    top3_holder_share_pct: float = 0.0
    total_supply_raw: int = 0
    has_mint_authority: bool = False
    has_freeze_authority: bool = False
    mint_authority: Optional[str] = None
    freeze_authority: Optional[str] = None
    holder_behavior: HolderBehavior = Field(default_factory=HolderBehavior)
    holder_profiles: List[HolderProfile] = Field(default_factory=list)
    suspicious_patterns: List[str] = Field(default_factory=list)
    note: Optional[str] = None


class KillSwitchResult(BaseModel):
    schema_version: Literal["kill_switch.v1"] = KILL_SWITCH_SCHEMA
    mint: str
    score: int = Field(0, ge=0, le=100)
    verdict: Verdict
    reasons: List[str] = Field(default_factory=list)
    uncertainty: Literal["medium", "high"] = "medium"
    risk: RiskSignal


class MarketSnapshot(BaseModel):
    source: str = "dexscreener"
    dex_id: str = "unknown"
    pair_address: str = "unknown"
    pair_url: str = ""
    pair_created_at: int = 0
    token_address: str = ""
    token_name: str = "Unknown Token"
    token_symbol: str = "N/A"
    image_url: str = ""
    header_url: str = ""
    price_usd: float = 0.0
    liquidity_usd: float = 0.0
    volume24h_usd: float = 0.0
    price_change24h_pct: float = 0.0
    fdv_usd: float = 0.0


class TokenInfo(BaseModel):
    mint: str
    symbol: str = "N/A"
    name: str = "Unknown Token"
    image_url: str = ""
    header_url: str = ""


class TradePlan(BaseModel):
    entry_low: Optional[float] = None
    entry_high: Optional[float] = None
    stop_loss: Optional[float] = None
    take_profit_1: Optional[float] = None
    take_profit_2: Optional[float] = None


class Methodology(BaseModel):
    version: str
    formula: str
    components: Dict[str, float] = Field(default_factory=dict)
    mapping: Dict[str, str] = Field(default_factory=dict)


class Signal(BaseModel):
    model_config = ConfigDict(frozen=True)

    schema_version: Literal["signal.v1"] = SIGNAL_SCHEMA
    mint: str
    status: SignalStatus
    confidence: float = Field(..., ge=0.1, le=0.98)
    pattern_score: float = Field(..., ge=0.0, le=100.0)
    token: TokenInfo
    kill_switch: KillSwitchResult
    holder_behavior: HolderBehavior
    market: MarketSnapshot
    trade_plan: TradePlan = Field(default_factory=TradePlan)
    links: Dict[str, str] = Field(default_factory=dict)
    methodology: Methodology
    reasons: List[str] = Field(default_factory=list)
    disclaimer: str = "Scanner output is probabilistic risk analysis, not financial advice."


class StoredSignal(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    user_id: int
    created_at: float
    signal: Signal


class BatchItem(BaseModel):
    mint: str
    ok: bool
    signal_id: Optional[int] = None
    signal: Optional[Signal] = None
    error: Optional[str] = None

    @property
    def kill_score(self) -> int:
        return self.signal.kill_switch.score if self.signal is not None else 0


class PolicyDecision(BaseModel):
    mint: str
    ok: bool = True
    decision: Decision
    reasons: List[str] = Field(default_factory=list)
    signal_id: Optional[int] = None
    signal_status: Optional[SignalStatus] = None
    pattern_score: float = 0.0
    confidence: float = 0.0
    entry_price_usd: float = 0.0
    trade_plan: TradePlan = Field(default_factory=TradePlan)


class Position(BaseModel):
    id: int
    user_id: int
    mint: str
    status: PositionStatus = "OPEN"
    mode: RunMode = "paper"
    entry_signal_id: Optional[int] = None
    entry_price_usd: float
    size_usd: float
    qty_tokens: float
    tp_pct: float
    sl_pct: float
    trailing_stop_pct: float
    max_hold_minutes: float
    high_water_price_usd: float
    last_price_usd: float
    opened_at: float
    closed_at: Optional[float] = None
    close_reason: Optional[CloseReason] = None
    pnl_pct: Optional[float] = None


class EngineAction(BaseModel):
    type: ActionType
    position_id: Optional[int] = None
    mint: Optional[str] = None
    mode: Optional[RunMode] = None
    reason: Optional[str] = None
    pnl_pct: Optional[float] = None
    entry_price_usd: Optional[float] = None
    size_usd: Optional[float] = None
    qty_tokens: Optional[float] = None
    signature: Optional[str] = None
    status: Optional[str] = None
    note: Optional[str] = None


class AutoTradeRun(BaseModel):
    id: int
    user_id: int
    mode: RunMode
    scanned_count: int
    buy_candidates: int
    skipped_count: int
    simulated_exposure_usd: float
    expected_pnl_pct: float
    created_at: float


class User(BaseModel):
    id: int
    plan: str = "free"


@dataclass(frozen=True)
class ExecutionCapabilities:
    live_enabled: bool = False
    user_plan: str = "free"
    signer_configured: bool = False


class PositionsView(BaseModel):
    open_count: int = 0
    open: List[Position] = Field(default_factory=list)
    recently_closed: List[Position] = Field(default_factory=list)


class TickReport(BaseModel):
    ts: float
    mode: RunMode
    warnings: List[str] = Field(default_factory=list)
    effective_trade_amount_usd: float = 0.0
    scanned: int = 0
    decisions: List[PolicyDecision] = Field(default_factory=list)
    actions: List[EngineAction] = Field(default_factory=list)
    positions: PositionsView = Field(default_factory=PositionsView)
