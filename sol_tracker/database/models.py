"""
Domain models for persisted entities.

TransactionRecord is the canonical unit of the record set; StoredSnapshot is
what a storage backend reads and writes in one piece. No ORM coupling so
backends stay swappable.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any

LAMPORTS_PER_SOL = 1_000_000_000


def lamports_to_sol(lamports: int) -> float:
    """Convert lamports to SOL, rounded to the 9 decimals SOL actually has."""
    return round(lamports / float(LAMPORTS_PER_SOL), 9)


class Direction(str, Enum):
    RECEIVED = "received"
    SENT = "sent"
    UNKNOWN = "unknown"


STATUS_SUCCESS = "success"


@dataclass(frozen=True)
class TransactionRecord:
    """
    One classified native transfer touching the tracked wallet.

    Amounts are held in lamports so aggregates stay exact; `amount` is the
    SOL view. Direction carries the sign, lamports are never negative.
    """

    signature: str
    block_time: int | None
    """Unix timestamp (seconds) from blockTime; None if the node omitted it."""
    slot: int
    direction: Direction
    lamports: int
    """Transfer size in lamports; 0 when direction is unknown."""
    counterparty: str | None = None
    """Sender when received, receiver when sent. Best-effort (first balance match)."""
    fee_lamports: int = 0
    status: str = STATUS_SUCCESS
    detailed: bool = True
    """False when built from a signature entry without a detail fetch."""

    def __post_init__(self) -> None:
        if self.lamports < 0:
            raise ValueError("lamports must be non-negative; direction encodes the sign")
        if self.direction is Direction.UNKNOWN and self.lamports != 0:
            raise ValueError("unknown-direction records must carry a zero amount")

    @property
    def amount(self) -> float:
        return lamports_to_sol(self.lamports)

    @property
    def timestamp(self) -> str | None:
        if self.block_time is None:
            return None
        return datetime.fromtimestamp(self.block_time, tz=timezone.utc).isoformat()

    def sort_key(self) -> tuple[int, int]:
        return (self.block_time or 0, self.slot or 0)

    def with_updates(self, **changes: Any) -> "TransactionRecord":
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-serializable dict (storage and API share this shape)."""
        return {
            "signature": self.signature,
            "blockTime": self.block_time,
            "slot": self.slot,
            "timestamp": self.timestamp,
            "direction": self.direction.value,
            "lamports": self.lamports,
            "amount": self.amount,
            "counterparty": self.counterparty,
            "feeLamports": self.fee_lamports,
            "status": self.status,
            "detailed": self.detailed,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TransactionRecord":
        """Inverse of to_dict. Raises KeyError/ValueError/TypeError on bad input."""
        lamports = data.get("lamports")
        if lamports is None:
            # Older snapshots stored only the SOL amount
            lamports = int(round(float(data.get("amount") or 0) * LAMPORTS_PER_SOL))
        block_time = data.get("blockTime")
        return cls(
            signature=str(data["signature"]),
            block_time=int(block_time) if block_time is not None else None,
            slot=int(data.get("slot") or 0),
            direction=Direction(data.get("direction", Direction.UNKNOWN.value)),
            lamports=int(lamports),
            counterparty=data.get("counterparty"),
            fee_lamports=int(data.get("feeLamports") or 0),
            status=str(data.get("status") or STATUS_SUCCESS),
            detailed=bool(data.get("detailed", True)),
        )


@dataclass
class StoredSnapshot:
    """Everything a backend persists: records, last fetch time, failed signatures."""

    records: list[TransactionRecord] = field(default_factory=list)
    last_fetch_timestamp: str | None = None
    """ISO-8601 time of the last completed ingestion run; staleness indicator."""
    failed_signatures: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "records": [r.to_dict() for r in self.records],
            "lastFetchTimestamp": self.last_fetch_timestamp,
            "failedSignatures": list(self.failed_signatures),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StoredSnapshot":
        if not isinstance(data, dict):
            raise TypeError("snapshot must be a JSON object")
        raw_records = data.get("records")
        if not isinstance(raw_records, list):
            raise TypeError("snapshot.records must be a list")
        return cls(
            records=[TransactionRecord.from_dict(r) for r in raw_records],
            last_fetch_timestamp=data.get("lastFetchTimestamp"),
            failed_signatures=[str(s) for s in data.get("failedSignatures") or []],
        )
