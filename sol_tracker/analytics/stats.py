"""
Aggregate statistics over the record set.

A pure fold: counts and sums per direction, accumulated in lamports and
converted to SOL once at the end. Unknown-direction records only add to the
total count.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable

from sol_tracker.database.models import Direction, TransactionRecord, lamports_to_sol

DEFAULT_RECENT_LIMIT = 10


@dataclass(frozen=True)
class AggregateStats:
    total_count: int = 0
    unknown_count: int = 0
    sent_count: int = 0
    sent_lamports: int = 0
    received_count: int = 0
    received_lamports: int = 0

    @property
    def current_balance_lamports(self) -> int:
        """Net flow through the wallet: received minus sent (fees excluded)."""
        return self.received_lamports - self.sent_lamports

    @property
    def sent_total(self) -> float:
        return lamports_to_sol(self.sent_lamports)

    @property
    def received_total(self) -> float:
        return lamports_to_sol(self.received_lamports)

    @property
    def current_balance(self) -> float:
        return lamports_to_sol(self.current_balance_lamports)

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalCount": self.total_count,
            "unknownCount": self.unknown_count,
            "byDirection": {
                "sent": {"count": self.sent_count, "total": self.sent_total},
                "received": {"count": self.received_count, "total": self.received_total},
            },
            "currentBalance": self.current_balance,
        }


def compute_stats(records: Iterable[TransactionRecord]) -> AggregateStats:
    total = unknown = sent_n = recv_n = 0
    sent_sum = recv_sum = 0
    for r in records:
        total += 1
        if r.direction is Direction.SENT:
            sent_n += 1
            sent_sum += r.lamports
        elif r.direction is Direction.RECEIVED:
            recv_n += 1
            recv_sum += r.lamports
        else:
            unknown += 1
    return AggregateStats(
        total_count=total,
        unknown_count=unknown,
        sent_count=sent_n,
        sent_lamports=sent_sum,
        received_count=recv_n,
        received_lamports=recv_sum,
    )


def build_stats_payload(
    records: Iterable[TransactionRecord],
    recent: Iterable[TransactionRecord],
    *,
    last_fetch_timestamp: str | None,
    stale: bool,
) -> dict[str, Any]:
    """Stats payload for API and bot callers (camelCase keys)."""
    payload = compute_stats(records).to_dict()
    payload["recent"] = [r.to_dict() for r in recent]
    payload["lastFetchTimestamp"] = last_fetch_timestamp
    payload["stale"] = stale
    return payload
