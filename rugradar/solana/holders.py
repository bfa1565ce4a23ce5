"""Holder-graph analysis: who holds a mint, how old their wallets are, and which
holders move together.

Holders are linked when their token accounts share a recent transaction
signature; linked holders are grouped as connected components of that graph.
Any failure fetching the core mint facts degrades the whole result to
``concentration_risk="unknown"`` so downstream scoring stays conservative.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

import networkx as nx

from rugradar.cache import TTLCache
from rugradar.config import settings
from rugradar.errors import ChainCallError
from rugradar.solana.rpc import SolanaRpc
from rugradar.types import (
    ConnectedGroupSummary,
    HolderBehavior,
    HolderProfile,
    RiskSignal,
)

logger = logging.getLogger("rugradar.holders")

MIN_HOLDER_LIMIT = 8
MAX_HOLDER_LIMIT = 50
WALLET_AGE_WINDOW = 25
TOKEN_ACCOUNT_SIG_WINDOW = 20
ACTIVITY_WINDOW = 8
ACTIVITY_HOLDERS = 5
NEW_WALLET_DAYS = 14.0
SECONDS_PER_DAY = 86400.0


@dataclass
class HolderNode:
    token_account: str
    owner: str
    amount_raw: int
    amount_ui: float
    wallet_age_days: Optional[float] = None
    recent_signatures: Set[str] = field(default_factory=set)

    @property
    def is_new_wallet(self) -> bool:
        # unknown age is not treated as new
        return self.wallet_age_days is not None and self.wallet_age_days <= NEW_WALLET_DAYS


def pct(part: float, total: float) -> float:
    if not total:
        return 0.0
    return part / total * 100.0


def clamp_holder_limit(limit: Optional[int]) -> int:
    value = int(limit or settings.holder_limit_default)
    return min(MAX_HOLDER_LIMIT, max(MIN_HOLDER_LIMIT, value))


def concentration_tier(top3_pct: float) -> str:
    if top3_pct >= 50:
        return "high"
    if top3_pct >= 25:
        return "medium"
    return "low"


def connected_groups(holders: List[HolderNode]) -> List[List[HolderNode]]:
    """Partition linked holders into groups of two or more.

    Holders sharing a signature are chained together in an undirected graph;
    groups come back ordered by their first holder, members in holder order.
    """
    if len(holders) > MAX_HOLDER_LIMIT:
        raise ValueError(f"holder sample too large: {len(holders)} > {MAX_HOLDER_LIMIT}")

    by_signature: Dict[str, List[int]] = {}
    for idx, holder in enumerate(holders):
        for sig in holder.recent_signatures:
            by_signature.setdefault(sig, []).append(idx)

    G = nx.Graph()
    G.add_nodes_from(range(len(holders)))
    for members in by_signature.values():
        G.add_edges_from(zip(members, members[1:]))

    components = sorted(sorted(c) for c in nx.connected_components(G) if len(c) >= 2)
    return [[holders[idx] for idx in component] for component in components]


def infer_wallet_source(
    *,
    owner: str,
    token_account: str,
    is_lp_candidate: bool,
    is_new_wallet: bool,
    connected_group_id: int,
    recent_tx_count: int,
    buy_tx_count: int = 0,
    sell_tx_count: int = 0,
    configured_label: Optional[str] = None,
) -> str:
    if is_lp_candidate:
        return "liquidity-pool-candidate"
    label = (configured_label or "").strip()
    if label:
        return label
    if owner == token_account:
        return "token-account-owner"
    if connected_group_id > 0 and is_new_wallet:
        return "clustered-new-wallet"
    if connected_group_id > 0:
        return "clustered-wallet"
    if is_new_wallet:
        return "new-wallet"
    if buy_tx_count + sell_tx_count >= 4 or recent_tx_count >= 10:
        return "active-trader-wallet"
    return "unattributed-wallet"


def holder_tags(
    *,
    is_lp_candidate: bool,
    amount_pct: float,
    is_new_wallet: bool,
    connected_group_id: int,
    recent_tx_count: int,
    wallet_source: str,
) -> List[str]:
    tags: List[str] = []
    if is_lp_candidate:
        tags.append("lp-vault-candidate")
    if amount_pct >= 2:
        tags.append("whale")
    if is_new_wallet:
        tags.append("new-wallet")
    if connected_group_id > 0:
        tags.append(f"cluster-{connected_group_id}")
    if recent_tx_count >= 8:
        tags.append("high-activity")
    source = wallet_source.lower()
    for venue in ("okx", "binance", "phantom"):
        if venue in source:
            tags.append(f"{venue}-labeled")
    return tags


def _ui_amount(entry: Optional[Dict[str, Any]]) -> float:
    ui = (entry or {}).get("uiTokenAmount") or {}
    raw = ui.get("uiAmountString") or ui.get("uiAmount")
    if raw is None:
        raw = ui.get("amount") or 0
    try:
        return float(raw)
    except (TypeError, ValueError):
        return 0.0


def token_account_delta(tx: Dict[str, Any], token_account: str) -> float:
    """Net change of ``token_account``'s balance in a parsed transaction."""
    message = ((tx.get("transaction") or {}).get("message")) or {}
    keys = [k if isinstance(k, str) else str((k or {}).get("pubkey", "")) for k in message.get("accountKeys") or []]
    if token_account not in keys:
        return 0.0
    idx = keys.index(token_account)
    meta = tx.get("meta") or {}
    pre = next((b for b in meta.get("preTokenBalances") or [] if b.get("accountIndex") == idx), None)
    post = next((b for b in meta.get("postTokenBalances") or [] if b.get("accountIndex") == idx), None)
    return _ui_amount(post) - _ui_amount(pre)


class HolderAnalyzer:
    def __init__(
        self,
        rpc: SolanaRpc,
        cache: Optional[TTLCache] = None,
        wallet_labels: Optional[Dict[str, str]] = None,
        now: Callable[[], float] = time.time,
    ):
        self.rpc = rpc
        self.cache = cache or TTLCache(settings.onchain_cache_ttl_sec, settings.cache_max_entries)
        self.wallet_labels = wallet_labels if wallet_labels is not None else settings.wallet_label_map()
        self.now = now

    async def wallet_age_days(self, owner: str) -> Optional[float]:
        try:
            sigs = await self.rpc.call("getSignaturesForAddress", [owner, {"limit": WALLET_AGE_WINDOW}])
        except ChainCallError as e:
            logger.debug(f"[holders] wallet age lookup failed for {owner}: {e}")
            return None
        times = sorted(s["blockTime"] for s in sigs or [] if s.get("blockTime"))
        if not times:
            return None
        return max(0.0, (self.now() - times[0]) / SECONDS_PER_DAY)

    async def token_account_signatures(self, token_account: str) -> Set[str]:
        try:
            sigs = await self.rpc.call(
                "getSignaturesForAddress", [token_account, {"limit": TOKEN_ACCOUNT_SIG_WINDOW}]
            )
        except ChainCallError as e:
            logger.debug(f"[holders] signature lookup failed for {token_account}: {e}")
            return set()
        return {s["signature"] for s in sigs or [] if s.get("signature")}

    async def buy_sell_activity(self, token_account: str) -> Tuple[int, int]:
        try:
            sigs = await self.rpc.call("getSignaturesForAddress", [token_account, {"limit": ACTIVITY_WINDOW}])
        except ChainCallError:
            return 0, 0
        buys = sells = 0
        for item in sigs or []:
            signature = item.get("signature")
            if not signature:
                continue
            try:
                tx = await self.rpc.call(
                    "getTransaction",
                    [signature, {"encoding": "jsonParsed", "maxSupportedTransactionVersion": 0}],
                )
            except ChainCallError:
                continue
            if not tx:
                continue
            delta = token_account_delta(tx, token_account)
            if delta > 0:
                buys += 1
            elif delta < 0:
                sells += 1
        return buys, sells

    async def load_owners(self, token_accounts: List[str]) -> Dict[str, str]:
        if not token_accounts:
            return {}
        resp = await self.rpc.call("getMultipleAccounts", [token_accounts, {"encoding": "jsonParsed"}])
        owners: Dict[str, str] = {}
        for account, value in zip(token_accounts, (resp or {}).get("value") or []):
            owner = (((value or {}).get("data") or {}).get("parsed") or {}).get("info", {}).get("owner")
            if owner:
                owners[account] = owner
        return owners

    async def _holder_node(self, holder: Dict[str, Any], owner: str) -> HolderNode:
        signatures, age = await asyncio.gather(
            self.token_account_signatures(holder["address"]),
            self.wallet_age_days(owner),
        )
        return HolderNode(
            token_account=holder["address"],
            owner=owner,
            amount_raw=int(holder.get("amount") or 0),
            amount_ui=float(holder.get("uiAmountString") or holder.get("uiAmount") or 0),
            wallet_age_days=age,
            recent_signatures=signatures,
        )

    async def risk_signals(self, mint: str, holder_limit: Optional[int] = None) -> RiskSignal:
        mint = mint.strip()
        limit = clamp_holder_limit(holder_limit)
        if not self.rpc.primary:
            return RiskSignal(mint=mint, concentration_risk="unknown", note="No RPC endpoint configured")

        key = (mint, limit)
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        try:
            result = await self._analyze(mint, limit)
        except Exception as e:
            logger.warning(f"[holders] risk check failed for {mint}: {e}")
            fallback = RiskSignal(mint=mint, concentration_risk="unknown", note=f"Risk check failed: {e}")
            self.cache.set(key, fallback, ttl=settings.onchain_failure_ttl_sec)
            return fallback

        self.cache.set(key, result)
        return result

    async def _analyze(self, mint: str, limit: int) -> RiskSignal:
        largest, supply, mint_info = await asyncio.gather(
            self.rpc.call("getTokenLargestAccounts", [mint]),
            self.rpc.call("getTokenSupply", [mint]),
            self.rpc.call("getAccountInfo", [mint, {"encoding": "jsonParsed"}]),
        )
        accounts: List[Dict[str, Any]] = list(largest.get("value") or [])
        info = ((((mint_info or {}).get("value") or {}).get("data") or {}).get("parsed") or {}).get("info") or {}
        mint_authority = info.get("mintAuthority") or None
        freeze_authority = info.get("freezeAuthority") or None

        flags: List[str] = []
        if mint_authority:
            flags.append("Mint authority is active (token supply can potentially expand)")
        if freeze_authority:
            flags.append("Freeze authority is active (accounts can potentially be frozen)")

        total_supply = int(supply["value"].get("amount") or 0)
        top3_pct = pct(sum(int(a.get("amount") or 0) for a in accounts[:3]), total_supply)
        risk_tier = concentration_tier(top3_pct)
        if top3_pct >= 50:
            flags.append("Top-3 holder concentration is elevated")

        analyzed = accounts[:limit]
        owners = await self.load_owners([a["address"] for a in analyzed])
        nodes: List[HolderNode] = list(
            await asyncio.gather(*(self._holder_node(a, owners.get(a["address"], a["address"])) for a in analyzed))
        )

        fresh = [n for n in nodes if n.is_new_wallet]
        groups = connected_groups(nodes)
        group_by_account: Dict[str, int] = {}
        for gid, group in enumerate(groups, start=1):
            for node in group:
                group_by_account[node.token_account] = gid

        ages = [n.wallet_age_days for n in nodes if n.wallet_age_days is not None]
        behavior = HolderBehavior(
            analyzed_top_accounts=len(nodes),
            avg_wallet_age_days=sum(ages) / len(ages) if ages else None,
            new_wallet_count=len(fresh),
            new_wallet_holder_pct=round(pct(sum(n.amount_raw for n in fresh), total_supply), 2),
            connected_group_count=len(groups),
            connected_holder_pct=round(
                pct(sum(n.amount_raw for g in groups for n in g), total_supply), 2
            ),
            connected_groups=[
                ConnectedGroupSummary(
                    id=gid,
                    holder_count=len(group),
                    hold_pct=round(pct(sum(n.amount_raw for n in group), total_supply), 2),
                    owners=[n.owner for n in group],
                )
                for gid, group in enumerate(groups, start=1)
            ],
        )

        activity = await asyncio.gather(*(self.buy_sell_activity(n.token_account) for n in nodes[:ACTIVITY_HOLDERS]))
        activity_by_account = {n.token_account: a for n, a in zip(nodes[:ACTIVITY_HOLDERS], activity)}

        profiles: List[HolderProfile] = []
        for index, node in enumerate(nodes):
            amount_pct = round(pct(node.amount_raw, total_supply), 2)
            group_id = group_by_account.get(node.token_account, 0)
            buys, sells = activity_by_account.get(node.token_account, (0, 0))
            source = infer_wallet_source(
                owner=node.owner,
                token_account=node.token_account,
                is_lp_candidate=index == 0,
                is_new_wallet=node.is_new_wallet,
                connected_group_id=group_id,
                recent_tx_count=len(node.recent_signatures),
                buy_tx_count=buys,
                sell_tx_count=sells,
                configured_label=self.wallet_labels.get(node.owner),
            )
            profiles.append(
                HolderProfile(
                    owner=node.owner,
                    token_account=node.token_account,
                    amount_ui=node.amount_ui,
                    amount_pct=amount_pct,
                    wallet_age_days=node.wallet_age_days,
                    connected_group_id=group_id,
                    recent_tx_count=len(node.recent_signatures),
                    wallet_source=source,
                    buy_tx_count=buys,
                    sell_tx_count=sells,
                    tags=holder_tags(
                        is_lp_candidate=index == 0,
                        amount_pct=amount_pct,
                        is_new_wallet=node.is_new_wallet,
                        connected_group_id=group_id,
                        recent_tx_count=len(node.recent_signatures),
                        wallet_source=source,
                    ),
                )
            )

        if behavior.new_wallet_holder_pct >= 20:
            flags.append("High share held by recently observed wallets")
        if behavior.connected_holder_pct >= 25:
            flags.append("Connected holder cluster controls significant supply")

        logger.info(
            f"[holders] {mint} top3={top3_pct:.2f}% groups={len(groups)} "
            f"connected={behavior.connected_holder_pct}% new={behavior.new_wallet_holder_pct}%"
        )
        return RiskSignal(
            mint=mint,
            concentration_risk=risk_tier,
            top3_holder_share_pct=round(top3_pct, 2),
            total_supply_raw=total_supply,
            has_mint_authority=bool(mint_authority),
            has_freeze_authority=bool(freeze_authority),
            mint_authority=mint_authority,
            freeze_authority=freeze_authority,
            holder_behavior=behavior,
            holder_profiles=profiles,
            suspicious_patterns=flags,
        )
