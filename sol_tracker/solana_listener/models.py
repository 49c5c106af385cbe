"""
Data models for Solana listener output.

SignatureInfo mirrors one getSignaturesForAddress entry; SignaturePage is
what the pager hands back to the orchestrator for one request.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class SignatureInfo:
    """
    Normalized transaction signature info from getSignaturesForAddress.

    Mirrors Solana RPC response fields; used as the unit of work
    handed from the pager to the detail fetch.
    """

    signature: str
    slot: int
    err: Any  # None if success; dict/object from RPC if failed
    block_time: int | None  # Unix timestamp; None if not available
    memo: str | None = None
    confirmation_status: str | None = None  # processed | confirmed | finalized

    @property
    def failed(self) -> bool:
        return self.err is not None

    @classmethod
    def from_rpc_item(cls, item: dict[str, Any]) -> "SignatureInfo":
        """Build from a single getSignaturesForAddress result item."""
        return cls(
            signature=item["signature"],
            slot=int(item.get("slot") or 0),
            err=item.get("err"),
            block_time=item.get("blockTime"),
            memo=item.get("memo"),
            confirmation_status=item.get("confirmationStatus"),
        )


@dataclass(frozen=True)
class SignaturePage:
    """One page of signatures, newest first, as reported by the remote."""

    signatures: list[SignatureInfo] = field(default_factory=list)
    next_cursor: str | None = None
    """Signature to pass as `before` for the next (older) page."""
    exhausted: bool = False
    """True when the remote returned zero entries."""

    def __len__(self) -> int:
        return len(self.signatures)
