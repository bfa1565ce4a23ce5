import asyncio
import logging
import random
from typing import Any, Awaitable, Callable, List, Optional

import httpx

from rugradar.config import settings
from rugradar.errors import ChainCallError

logger = logging.getLogger("rugradar.rpc")

RETRYABLE_HTTP_STATUS = {408, 429, 500, 502, 503, 504}
NODE_BUSY_CODE = -32005


class RpcHttpError(Exception):
    def __init__(self, status: int):
        self.status = status
        super().__init__(f"RPC HTTP {status}")


class RpcNodeError(Exception):
    def __init__(self, code: int, message: str):
        self.code = code
        super().__init__(f"RPC error {code}: {message}")


def is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, RpcHttpError):
        return exc.status in RETRYABLE_HTTP_STATUS
    if isinstance(exc, RpcNodeError):
        return exc.code == NODE_BUSY_CODE
    return isinstance(exc, (asyncio.TimeoutError, httpx.TimeoutException, httpx.TransportError))


class SolanaRpc:
    """JSON-RPC caller with per-call timeout, endpoint fallback and retry/backoff.

    Endpoints are tried in order. Each endpoint gets up to ``attempts`` tries,
    sleeping ``backoff_base * 2**attempt + jitter`` between retryable failures.
    A non-retryable failure moves straight on to the next endpoint.
    """

    def __init__(
        self,
        urls: Optional[List[str]] = None,
        timeout: Optional[float] = None,
        attempts: Optional[int] = None,
        client: Optional[httpx.AsyncClient] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rng: Callable[[], float] = random.random,
    ):
        self.urls = list(urls) if urls is not None else settings.rpc_urls()
        self.timeout = float(timeout if timeout is not None else settings.rpc_timeout_sec)
        self.attempts = max(1, int(attempts if attempts is not None else settings.rpc_retry_attempts))
        self.backoff_base = settings.rpc_backoff_base_sec
        self.backoff_jitter = settings.rpc_backoff_jitter_sec
        self._client = client
        self._owns_client = client is None
        self._sleep = sleep
        self._rng = rng

    @property
    def primary(self) -> Optional[str]:
        return self.urls[0] if self.urls else None

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def _post(self, url: str, method: str, params: list) -> Any:
        payload = {"jsonrpc": "2.0", "id": 1, "method": method, "params": params}
        r = await self._http().post(url, json=payload)
        if r.status_code != 200:
            raise RpcHttpError(r.status_code)
        data = r.json()
        if not isinstance(data, dict):
            raise RuntimeError("RPC malformed response")
        error = data.get("error")
        if error:
            if not isinstance(error, dict):
                raise RuntimeError(f"RPC malformed error: {error!r}")
            raise RpcNodeError(int(error.get("code", 0)), str(error.get("message", "")))
        if "result" not in data:
            raise RuntimeError("RPC missing result")
        return data["result"]

    async def _call_once(self, url: str, method: str, params: list) -> Any:
        return await asyncio.wait_for(self._post(url, method, params), timeout=self.timeout)

    def backoff(self, attempt: int) -> float:
        return self.backoff_base * 2**attempt + self._rng() * self.backoff_jitter

    async def call(self, method: str, params: Optional[list] = None) -> Any:
        params = params or []
        if not self.urls:
            raise ChainCallError(method, RuntimeError("No RPC URL configured"))

        last_error: Optional[BaseException] = None
        for url in self.urls:
            for attempt in range(self.attempts):
                try:
                    return await self._call_once(url, method, params)
                except (RpcHttpError, RpcNodeError, RuntimeError, ValueError, asyncio.TimeoutError, httpx.HTTPError) as e:
                    last_error = e
                    retryable = is_retryable(e)
                    logger.debug(f"[rpc] {method} at {url} attempt={attempt + 1} failed: {e!r}")
                    if not retryable or attempt >= self.attempts - 1:
                        break
                    await self._sleep(self.backoff(attempt))
            logger.warning(f"[rpc] {method} giving up on {url}: {last_error!r}")
        raise ChainCallError(method, last_error)

    async def health(self) -> dict:
        if not self.primary:
            return {"ok": False, "message": "No RPC URL configured"}
        try:
            version = await self.call("getVersion", [])
        except ChainCallError as e:
            return {"ok": False, "message": str(e), "rpc": self.primary}
        return {
            "ok": True,
            "version": version,
            "rpc": self.primary,
            "fallbackCount": max(0, len(self.urls) - 1),
        }

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None
