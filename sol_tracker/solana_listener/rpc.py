"""
Solana JSON-RPC transport over httpx.

Builds getSignaturesForAddress / getTransaction bodies, maps transport and
HTTP failures onto the tracker's RpcError family (429 -> RateLimitedError,
timeout/5xx -> TransientRpcError) and sends every call through a
RateLimitedClient.
"""

from __future__ import annotations

import itertools
from typing import Any

import httpx

from sol_tracker.core.exceptions import (
    MalformedResponseError,
    RateLimitedError,
    RpcError,
    TransientRpcError,
)
from sol_tracker.solana_listener.rate_limiter import RateLimitedClient
from sol_tracker.tracker_logging import get_logger

logger = get_logger(__name__)

DEFAULT_TIMEOUT_SEC = 15.0
DEFAULT_COMMITMENT = "finalized"
# Max entries the node accepts for getSignaturesForAddress
MAX_SIGNATURES_LIMIT = 1000
# JSON-RPC error codes providers use for throttling
RATE_LIMIT_RPC_CODES = frozenset({429, -32429})


def _parse_retry_after(value: str | None) -> float | None:
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


class SolanaRpc:
    """
    Async Solana RPC client for the two calls the pipeline needs.

    Owns an httpx.AsyncClient unless one is injected (tests pass one built on
    httpx.MockTransport). Use as an async context manager or call aclose().
    """

    def __init__(
        self,
        rpc_url: str,
        limiter: RateLimitedClient | None = None,
        *,
        http_client: httpx.AsyncClient | None = None,
        timeout_sec: float = DEFAULT_TIMEOUT_SEC,
        commitment: str = DEFAULT_COMMITMENT,
    ) -> None:
        if not rpc_url or not rpc_url.strip():
            raise ValueError("rpc_url must be non-empty")
        self._rpc_url = rpc_url.strip()
        self._limiter = limiter or RateLimitedClient()
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=httpx.Timeout(timeout_sec))
        self._commitment = commitment
        self._ids = itertools.count(1)

    @property
    def limiter(self) -> RateLimitedClient:
        return self._limiter

    async def __aenter__(self) -> "SolanaRpc":
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def call(self, method: str, params: list[Any]) -> Any:
        """Rate-limited JSON-RPC call; returns `result` (may be None)."""
        return await self._limiter.send(lambda: self._post(method, params))

    async def get_signatures_for_address(
        self,
        address: str,
        *,
        limit: int,
        before: str | None = None,
    ) -> list[dict[str, Any]]:
        """getSignaturesForAddress, newest first. `before` pages backward."""
        if not (1 <= limit <= MAX_SIGNATURES_LIMIT):
            raise ValueError(f"limit must be between 1 and {MAX_SIGNATURES_LIMIT}")
        opts: dict[str, Any] = {"limit": limit, "commitment": self._commitment}
        if before is not None:
            opts["before"] = before
        result = await self.call("getSignaturesForAddress", [address, opts])
        if result is None:
            return []
        if not isinstance(result, list):
            raise MalformedResponseError("getSignaturesForAddress result is not a list")
        return result

    async def get_transaction(
        self,
        signature: str,
        *,
        encoding: str = "jsonParsed",
    ) -> dict[str, Any] | None:
        """getTransaction; None when the node has no record of the signature."""
        result = await self.call(
            "getTransaction",
            [
                signature,
                {
                    "encoding": encoding,
                    "maxSupportedTransactionVersion": 0,
                    "commitment": self._commitment,
                },
            ],
        )
        if result is not None and not isinstance(result, dict):
            raise MalformedResponseError("getTransaction result is not an object")
        return result

    async def _post(self, method: str, params: list[Any]) -> Any:
        """One HTTP round trip; raise on transport, HTTP or RPC error."""
        body = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        try:
            resp = await self._client.post(self._rpc_url, json=body)
        except httpx.TimeoutException as e:
            raise TransientRpcError(f"{method} timed out: {e}") from e
        except httpx.TransportError as e:
            raise RpcError(f"{method} transport error: {e}") from e
        except httpx.RequestError as e:
            raise RpcError(f"{method} request failed: {e}") from e

        if resp.status_code == 429:
            raise RateLimitedError(
                f"{method} rate limited",
                code=429,
                retry_after=_parse_retry_after(resp.headers.get("Retry-After")),
            )
        if resp.status_code >= 500:
            raise TransientRpcError(f"{method} server error", code=resp.status_code)
        if resp.status_code >= 400:
            raise RpcError(f"{method} HTTP error", code=resp.status_code)

        try:
            data = resp.json()
        except ValueError as e:
            raise MalformedResponseError(f"{method} returned non-JSON body") from e
        if not isinstance(data, dict):
            raise MalformedResponseError(f"{method} returned non-object body")

        err = data.get("error")
        if err:
            code = err.get("code") if isinstance(err, dict) else None
            message = err.get("message", str(err)) if isinstance(err, dict) else str(err)
            if code in RATE_LIMIT_RPC_CODES:
                raise RateLimitedError(f"{method}: {message}", code=code)
            logger.debug("rpc_error_response", method=method, code=code, error=message)
            raise RpcError(f"Solana RPC error in {method}: {message}", code=code)
        if "result" not in data:
            raise MalformedResponseError(f"{method} response has no result")
        return data["result"]
