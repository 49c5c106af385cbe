"""
In-memory record store owned by one tracker instance.

Holds the sorted record set, the signatures known to have failed on chain,
and the last fetch time. Only the orchestrator mutates it (through
apply_merge / mark_failed / clear); readers get copies.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterable

from sol_tracker.database.models import Direction, StoredSnapshot, TransactionRecord
from sol_tracker.ingestion.merger import MergeResult, merge


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class RecordStore:
    """Record set plus ingestion bookkeeping; see module docstring."""

    def __init__(
        self,
        records: Iterable[TransactionRecord] = (),
        *,
        last_fetch_timestamp: str | None = None,
        failed_signatures: Iterable[str] = (),
    ) -> None:
        # Loaded data may predate the uniqueness/sort rules; merging normalizes it
        self._records: list[TransactionRecord] = merge([], records).records
        self._index: dict[str, TransactionRecord] = {r.signature: r for r in self._records}
        self._failed: set[str] = set(failed_signatures)
        self.last_fetch_timestamp = last_fetch_timestamp
        self.hydrated = False
        """True once a load from persistence has been attempted."""
        self.has_prior_state = False
        self.dirty = False

    @classmethod
    def from_snapshot(cls, snapshot: StoredSnapshot | None) -> "RecordStore":
        store = cls()
        store.restore(snapshot)
        return store

    def restore(self, snapshot: StoredSnapshot | None) -> None:
        """Replace contents with a loaded snapshot (None = nothing stored)."""
        if snapshot is None:
            self._records, self._index, self._failed = [], {}, set()
            self.last_fetch_timestamp = None
        else:
            self._records = merge([], snapshot.records).records
            self._index = {r.signature: r for r in self._records}
            self._failed = set(snapshot.failed_signatures)
            self.last_fetch_timestamp = snapshot.last_fetch_timestamp
        self.hydrated = True
        self.has_prior_state = snapshot is not None
        self.dirty = False

    def to_snapshot(self) -> StoredSnapshot:
        return StoredSnapshot(
            records=list(self._records),
            last_fetch_timestamp=self.last_fetch_timestamp,
            failed_signatures=sorted(self._failed),
        )

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, signature: object) -> bool:
        return signature in self._index

    @property
    def records(self) -> list[TransactionRecord]:
        return list(self._records)

    @property
    def failed_signatures(self) -> frozenset[str]:
        return frozenset(self._failed)

    def get(self, signature: str) -> TransactionRecord | None:
        return self._index.get(signature)

    def is_known(self, signature: str, *, require_detail: bool = True) -> bool:
        """Stored (with full detail unless require_detail=False), or recorded as failed on chain."""
        if signature in self._failed:
            return True
        record = self._index.get(signature)
        if record is None:
            return False
        return record.detailed or not require_detail

    def recent(self, limit: int, direction: Direction | None = None) -> list[TransactionRecord]:
        """Most recent records first; the set is kept sorted so this is a prefix scan."""
        if limit <= 0:
            return []
        if direction is None:
            return self._records[:limit]
        out: list[TransactionRecord] = []
        for r in self._records:
            if r.direction is direction:
                out.append(r)
                if len(out) >= limit:
                    break
        return out

    def apply_merge(self, new: Iterable[TransactionRecord]) -> MergeResult:
        result = merge(self._records, new)
        self._records = result.records
        self._index = {r.signature: r for r in self._records}
        if result.added_count or result.replaced_count:
            self.dirty = True
        return result

    def mark_failed(self, signatures: Iterable[str]) -> int:
        added = 0
        for sig in signatures:
            if sig not in self._failed:
                self._failed.add(sig)
                added += 1
        if added:
            self.dirty = True
        return added

    def touch(self, timestamp: str | None = None) -> None:
        """Record a completed fetch. Does not mark the record set dirty."""
        self.last_fetch_timestamp = timestamp or utc_now_iso()

    def clear(self) -> int:
        """Drop every record (administrative refresh). Returns how many were removed."""
        count = len(self._records)
        self._records = []
        self._index = {}
        self._failed.clear()
        self.last_fetch_timestamp = None
        self.dirty = True
        return count

    def mark_saved(self) -> None:
        self.dirty = False
