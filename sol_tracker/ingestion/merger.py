"""
Deduplicating merge of classified records into the record set.

Upsert by signature: unseen signatures append, seen ones are replaced in
place. The result is re-sorted newest first (block_time, then slot) with a
stable sort, so merging the same batch twice changes nothing.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from sol_tracker.database.models import TransactionRecord


@dataclass(frozen=True)
class MergeResult:
    records: list[TransactionRecord] = field(default_factory=list)
    added_count: int = 0
    replaced_count: int = 0


def sort_records(records: list[TransactionRecord]) -> list[TransactionRecord]:
    """Newest first by block_time, slot as tie-break. Stable."""
    return sorted(records, key=TransactionRecord.sort_key, reverse=True)


def merge(
    existing: Iterable[TransactionRecord],
    new: Iterable[TransactionRecord],
) -> MergeResult:
    merged = list(existing)
    position = {r.signature: i for i, r in enumerate(merged)}
    added = 0
    replaced = 0
    for record in new:
        i = position.get(record.signature)
        if i is None:
            position[record.signature] = len(merged)
            merged.append(record)
            added += 1
        else:
            merged[i] = record
            replaced += 1
    return MergeResult(records=sort_records(merged), added_count=added, replaced_count=replaced)
