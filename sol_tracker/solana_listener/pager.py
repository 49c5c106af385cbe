"""
Backward paging over a wallet's signature index.

Each next_batch() call is one rate-limited getSignaturesForAddress request
for entries older than the cursor. Order is kept as the remote reports it
(newest to oldest). The pager does not know what is stored; deciding when
history is caught up is the orchestrator's job.
"""

from __future__ import annotations

from typing import Any, Protocol

from sol_tracker.solana_listener.models import SignatureInfo, SignaturePage
from sol_tracker.tracker_logging import get_logger

logger = get_logger(__name__)


class SignatureSource(Protocol):
    async def get_signatures_for_address(
        self, address: str, *, limit: int, before: str | None = None
    ) -> list[dict[str, Any]]: ...


class SignaturePager:
    """Walks getSignaturesForAddress backward in time for one address."""

    def __init__(self, rpc: SignatureSource, address: str) -> None:
        if not address or not address.strip():
            raise ValueError("address must be non-empty")
        self._rpc = rpc
        self._address = address.strip()

    @property
    def address(self) -> str:
        return self._address

    async def next_batch(self, before: str | None, batch_size: int) -> SignaturePage:
        """
        Fetch up to batch_size signatures older than `before` (None = newest).

        Malformed entries are dropped. next_cursor is the oldest signature in
        the page, or `before` unchanged when the page is empty.
        RPC errors propagate to the caller.
        """
        raw = await self._rpc.get_signatures_for_address(
            self._address, limit=batch_size, before=before
        )
        infos: list[SignatureInfo] = []
        for item in raw:
            if not isinstance(item, dict) or not item.get("signature"):
                continue
            try:
                infos.append(SignatureInfo.from_rpc_item(item))
            except (KeyError, TypeError, ValueError) as e:
                logger.debug("pager_skip_invalid_item", error=str(e))
                continue

        exhausted = len(raw) == 0
        next_cursor = infos[-1].signature if infos else before
        logger.info(
            "pager_batch_fetched",
            wallet_id=self._address,
            before=before,
            count=len(infos),
            exhausted=exhausted,
        )
        return SignaturePage(signatures=infos, next_cursor=next_cursor, exhausted=exhausted)
