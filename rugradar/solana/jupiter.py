"""Live order relay through the Jupiter Ultra API.

Every call returns a result dict: ``{"ok": True, ...}`` on success or
``{"ok": False, "error": "..."}``. The lifecycle engine records a non-ok result
as an ERROR action and leaves the position unchanged.
"""

import base64
import json
import logging
from typing import Any, Dict, Optional

import httpx
from solders.keypair import Keypair
from solders.transaction import VersionedTransaction

from rugradar.config import settings

logger = logging.getLogger("rugradar.jupiter")

USDC_MINT = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"
USDC_DECIMALS = 6


def load_keypair() -> Optional[Keypair]:
    """Trader keypair from base58 text or a JSON byte array; None when unset or malformed."""
    b58 = (settings.trader_private_key or "").strip()
    raw_json = (settings.trader_private_key_json or "").strip()
    try:
        if b58:
            return Keypair.from_base58_string(b58)
        if raw_json:
            arr = json.loads(raw_json)
            if not isinstance(arr, list) or not all(isinstance(v, int) for v in arr):
                return None
            return Keypair.from_bytes(bytes(arr))
    except ValueError as e:
        logger.warning(f"[jupiter] trader key rejected: {e}")
    return None


def _json_object(r: httpx.Response) -> Dict[str, Any]:
    data = r.json()
    if not isinstance(data, dict):
        raise RuntimeError(f"Jupiter malformed response (HTTP {r.status_code})")
    if r.status_code != 200:
        raise RuntimeError(str(data.get("error") or f"Jupiter HTTP {r.status_code}"))
    return data


class JupiterExecutor:
    def __init__(self, client: Optional[httpx.AsyncClient] = None, base_url: Optional[str] = None):
        self.base_url = (base_url or settings.jupiter_ultra_base).rstrip("/")
        self._client = client
        self._owns_client = client is None

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=20)
        return self._client

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if settings.jupiter_api_key:
            headers["x-api-key"] = settings.jupiter_api_key
        return headers

    async def _get(self, path: str, params: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        r = await self._http().get(f"{self.base_url}{path}", params=params, headers=self._headers())
        return _json_object(r)

    async def _sign_and_execute(self, kp: Keypair, order: Dict[str, Any]) -> Dict[str, Any]:
        tx_b64 = str(order.get("transaction") or "").strip()
        request_id = str(order.get("requestId") or "").strip()
        if not tx_b64 or not request_id:
            raise RuntimeError("Jupiter order response missing transaction/requestId")
        unsigned = VersionedTransaction.from_bytes(base64.b64decode(tx_b64))
        signed = VersionedTransaction(unsigned.message, [kp])
        r = await self._http().post(
            f"{self.base_url}/execute",
            json={"signedTransaction": base64.b64encode(bytes(signed)).decode(), "requestId": request_id},
            headers=self._headers(),
        )
        return _json_object(r)

    async def buy(self, mint: str, amount_usd: float) -> Dict[str, Any]:
        kp = load_keypair()
        if kp is None:
            return {"ok": False, "error": "missing_keys"}
        amount = str(max(1, int(amount_usd * 10**USDC_DECIMALS)))
        try:
            order = await self._get(
                "/order",
                {"inputMint": USDC_MINT, "outputMint": mint, "amount": amount, "taker": str(kp.pubkey())},
            )
            execution = await self._sign_and_execute(kp, order)
        except (httpx.HTTPError, RuntimeError, ValueError) as e:
            return {"ok": False, "error": f"live buy failed: {e}"}
        return {
            "ok": True,
            "side": "BUY",
            "signature": str(execution.get("signature") or ""),
            "status": str(execution.get("status") or "UNKNOWN"),
        }

    async def sell(self, mint: str) -> Dict[str, Any]:
        kp = load_keypair()
        if kp is None:
            return {"ok": False, "error": "missing_keys"}
        try:
            holdings = await self._get(f"/holdings/{kp.pubkey()}")
            tokens = holdings.get("tokens") or {}
            if not isinstance(tokens, dict):
                raise RuntimeError("Jupiter malformed holdings")
            accounts = tokens.get(mint) or []
            amount_raw = sum(int(a.get("amount") or 0) for a in accounts)
            if amount_raw <= 0:
                return {"ok": False, "error": "live sell failed: no token balance for mint"}
            order = await self._get(
                "/order",
                {"inputMint": mint, "outputMint": USDC_MINT, "amount": str(amount_raw), "taker": str(kp.pubkey())},
            )
            execution = await self._sign_and_execute(kp, order)
        except (httpx.HTTPError, RuntimeError, ValueError) as e:
            return {"ok": False, "error": f"live sell failed: {e}"}
        return {
            "ok": True,
            "side": "SELL",
            "amount_raw": str(amount_raw),
            "signature": str(execution.get("signature") or ""),
            "status": str(execution.get("status") or "UNKNOWN"),
        }

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None
