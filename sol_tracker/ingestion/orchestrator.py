"""
Budgeted ingestion orchestrator: load → page → detail → merge → save, under a deadline.

One invocation walks the wallet's signature history newest-first, fetches
details only for signatures the store does not know yet, classifies and
merges them, and saves after each batch that added records. It stops on the
first of: wall-clock deadline, caught up with stored history, end of remote
history, batch cap, record cap, or a failed signature page. Every stop path
persists unsaved merges with a forced final save.

The same loop serves long-running and serverless hosts; only the
PipelineConfig differs (see sol_tracker.config.settings profiles).
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Protocol

from sol_tracker.core.exceptions import TrackerError
from sol_tracker.database.models import TransactionRecord
from sol_tracker.database.storage import PersistenceGateway, SaveOutcome
from sol_tracker.ingestion.store import RecordStore
from sol_tracker.solana_listener.classifier import TransactionClassifier
from sol_tracker.solana_listener.models import SignatureInfo, SignaturePage
from sol_tracker.solana_listener.pager import SignaturePager
from sol_tracker.tracker_logging import bind_wallet

DEFAULT_BATCH_SIZE = 100
DEFAULT_MAX_BATCHES = 10
DEFAULT_DEADLINE_SEC = 300.0
DEFAULT_ENCODING = "jsonParsed"


class PipelineState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    PAGING = "paging"
    DETAILING = "detailing"
    MERGING = "merging"
    SAVING = "saving"
    STOPPED = "stopped"


class StopReason(str, Enum):
    DEADLINE = "deadline"
    CAUGHT_UP = "caught_up"
    END_OF_HISTORY = "end_of_history"
    MAX_BATCHES = "max_batches"
    RECORD_LIMIT = "record_limit"
    PAGE_FAILED = "page_failed"


@dataclass(frozen=True)
class PipelineConfig:
    """
    Budget and pacing for one ingestion run.

    batch_size: signatures per getSignaturesForAddress page (1-1000).
    max_batches: safety valve on pages per run.
    deadline_sec: wall-clock budget; no new detail fetch starts after it.
    detail_delay_sec: pause between detail fetches in a batch.
    detail_concurrency: detail fetches in flight at once (still rate limited).
    skip_details: build placeholder records from signature entries only.
    record_limit: stop once this many new records were added (None = no cap).
    """

    batch_size: int = DEFAULT_BATCH_SIZE
    max_batches: int = DEFAULT_MAX_BATCHES
    deadline_sec: float = DEFAULT_DEADLINE_SEC
    detail_delay_sec: float = 0.0
    detail_concurrency: int = 1
    skip_details: bool = False
    record_limit: int | None = None
    encoding: str = DEFAULT_ENCODING

    def __post_init__(self) -> None:
        if not (1 <= self.batch_size <= 1000):
            raise ValueError("batch_size must be between 1 and 1000")
        if self.max_batches < 1:
            raise ValueError("max_batches must be >= 1")
        if self.deadline_sec <= 0:
            raise ValueError("deadline_sec must be positive")
        if self.detail_delay_sec < 0:
            raise ValueError("detail_delay_sec must be >= 0")
        if self.detail_concurrency < 1:
            raise ValueError("detail_concurrency must be >= 1")
        if self.record_limit is not None and self.record_limit < 1:
            raise ValueError("record_limit must be >= 1 or None")


class TransactionSource(Protocol):
    async def get_signatures_for_address(
        self, address: str, *, limit: int, before: str | None = None
    ) -> list[dict[str, Any]]: ...

    async def get_transaction(
        self, signature: str, *, encoding: str = DEFAULT_ENCODING
    ) -> dict[str, Any] | None: ...


@dataclass
class IngestionResult:
    """Outcome of one run; to_dict() is the merge-result shown to API/bot callers."""

    added_count: int = 0
    replaced_count: int = 0
    total_count: int = 0
    batches: int = 0
    details_fetched: int = 0
    details_failed: int = 0
    failed_signatures: int = 0
    stop_reason: StopReason | None = None
    error: str | None = None
    states: list[PipelineState] = field(default_factory=list)
    save_outcomes: list[SaveOutcome] = field(default_factory=list)
    elapsed_sec: float = 0.0
    last_fetch_timestamp: str | None = None

    @property
    def saved(self) -> bool:
        return bool(self.save_outcomes) and self.save_outcomes[-1] is SaveOutcome.COMMITTED

    def to_dict(self) -> dict[str, Any]:
        return {
            "addedCount": self.added_count,
            "totalCount": self.total_count,
            "replacedCount": self.replaced_count,
            "batches": self.batches,
            "stopReason": self.stop_reason.value if self.stop_reason else None,
            "error": self.error,
            "saved": self.saved,
            "elapsedSec": round(self.elapsed_sec, 3),
            "lastFetchTimestamp": self.last_fetch_timestamp,
        }


class BudgetedOrchestrator:
    """Drives pager, rate-limited detail fetch, classifier, merger and gateway for one wallet."""

    def __init__(
        self,
        rpc: TransactionSource,
        gateway: PersistenceGateway,
        store: RecordStore,
        classifier: TransactionClassifier,
        config: PipelineConfig | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._rpc = rpc
        self._gateway = gateway
        self._store = store
        self._classifier = classifier
        self._config = config or PipelineConfig()
        self._clock = clock
        self._sleep = sleep
        self._pager = SignaturePager(rpc, classifier.tracked_address)
        self._state = PipelineState.IDLE
        self._log = bind_wallet(classifier.tracked_address)

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def store(self) -> RecordStore:
        return self._store

    def _enter(self, state: PipelineState, result: IngestionResult) -> None:
        self._state = state
        result.states.append(state)

    def _expired(self, deadline_at: float) -> bool:
        return self._clock() >= deadline_at

    async def run(self) -> IngestionResult:
        """Run one invocation to a stop condition; never raises for remote or storage failures."""
        cfg = self._config
        store = self._store
        result = IngestionResult()
        started = self._clock()
        deadline_at = started + cfg.deadline_sec
        result.states.append(self._state)

        self._enter(PipelineState.LOADING, result)
        if not store.hydrated:
            store.restore(self._gateway.load())

        cursor: str | None = None
        stop: StopReason | None = None
        while stop is None:
            if self._expired(deadline_at):
                stop = StopReason.DEADLINE
                break
            if result.batches >= cfg.max_batches:
                stop = StopReason.MAX_BATCHES
                break
            if cfg.record_limit is not None and result.added_count >= cfg.record_limit:
                stop = StopReason.RECORD_LIMIT
                break

            self._enter(PipelineState.PAGING, result)
            try:
                page = await self._pager.next_batch(cursor, cfg.batch_size)
            except TrackerError as e:
                result.error = str(e)
                stop = StopReason.PAGE_FAILED
                self._log.error("ingestion_page_failed", batch=result.batches + 1, error=str(e))
                break
            result.batches += 1
            if page.exhausted:
                stop = StopReason.END_OF_HISTORY
                break

            fresh, caught_up = self._select_unknown(page)
            failed = [i.signature for i in fresh if i.failed]
            todo = [i for i in fresh if not i.failed]
            truncated = False
            if cfg.record_limit is not None:
                remaining = cfg.record_limit - result.added_count
                if len(todo) > remaining:
                    todo = todo[:remaining]
                    truncated = True

            self._enter(PipelineState.DETAILING, result)
            records, chain_failed, deadline_hit = await self._detail(todo, deadline_at, result)
            failed.extend(chain_failed)

            self._enter(PipelineState.MERGING, result)
            merged = store.apply_merge(records)
            result.added_count += merged.added_count
            result.replaced_count += merged.replaced_count
            result.failed_signatures += store.mark_failed(failed)
            self._log.info(
                "ingestion_batch_merged",
                batch=result.batches,
                page_size=len(page),
                unknown=len(fresh),
                added=merged.added_count,
                replaced=merged.replaced_count,
                failed=len(failed),
                total=len(store),
            )

            if merged.added_count:
                self._enter(PipelineState.SAVING, result)
                outcome = self._gateway.save(store.to_snapshot())
                result.save_outcomes.append(outcome)
                if outcome is SaveOutcome.COMMITTED:
                    store.mark_saved()

            if deadline_hit or self._expired(deadline_at):
                stop = StopReason.DEADLINE
            elif caught_up and not truncated:
                stop = StopReason.CAUGHT_UP
            elif truncated:
                stop = StopReason.RECORD_LIMIT
            cursor = page.next_cursor

        if stop is not StopReason.PAGE_FAILED:
            store.touch()
        if store.dirty or stop is not StopReason.PAGE_FAILED:
            self._enter(PipelineState.SAVING, result)
            # Unsaved merges must survive the stop; a timestamp-only change may wait for the debounce
            outcome = self._gateway.save(store.to_snapshot(), force=store.dirty)
            result.save_outcomes.append(outcome)
            if outcome is SaveOutcome.COMMITTED:
                store.mark_saved()
            elif outcome is SaveOutcome.FAILED:
                self._log.warning("ingestion_final_save_failed", unsaved=len(store))

        self._enter(PipelineState.STOPPED, result)
        result.stop_reason = stop
        result.total_count = len(store)
        result.last_fetch_timestamp = store.last_fetch_timestamp
        result.elapsed_sec = self._clock() - started
        self._log.info(
            "ingestion_stopped",
            stop_reason=stop.value,
            batches=result.batches,
            added=result.added_count,
            total=result.total_count,
            details_fetched=result.details_fetched,
            details_failed=result.details_failed,
            elapsed_sec=round(result.elapsed_sec, 3),
        )
        return result

    def _select_unknown(self, page: SignaturePage) -> tuple[list[SignatureInfo], bool]:
        """
        Split a page into signatures to process and a caught-up flag.

        Caught up means the page holds no unknown signature. A page with any
        unknown entry keeps paging, so gaps left deeper in the history by an
        interrupted run are reached and filled.
        """
        require_detail = not self._config.skip_details
        fresh: list[SignatureInfo] = []
        seen: set[str] = set()
        for info in page.signatures:
            if info.signature in seen:
                continue
            seen.add(info.signature)
            if not self._store.is_known(info.signature, require_detail=require_detail):
                fresh.append(info)
        return fresh, not fresh

    async def _detail(
        self,
        todo: list[SignatureInfo],
        deadline_at: float,
        result: IngestionResult,
    ) -> tuple[list[TransactionRecord], list[str], bool]:
        """Fetch and classify; returns (records, signatures failed on chain, deadline_hit)."""
        cfg = self._config
        records: list[TransactionRecord] = []
        chain_failed: list[str] = []
        if cfg.skip_details:
            for info in todo:
                record = self._classifier.from_signature(info)
                if record is not None:
                    records.append(record)
            return records, chain_failed, False

        step = cfg.detail_concurrency
        for start in range(0, len(todo), step):
            if self._expired(deadline_at):
                self._log.info("ingestion_deadline_mid_batch", pending=len(todo) - start)
                return records, chain_failed, True
            if start and cfg.detail_delay_sec > 0:
                await self._sleep(cfg.detail_delay_sec)
                if self._expired(deadline_at):
                    return records, chain_failed, True
            chunk = todo[start:start + step]
            if len(chunk) == 1:
                outcomes = [await self._fetch_one(chunk[0], result)]
            else:
                outcomes = await asyncio.gather(*(self._fetch_one(i, result) for i in chunk))
            for info, (record, failed_on_chain) in zip(chunk, outcomes):
                if record is not None:
                    records.append(record)
                elif failed_on_chain:
                    chain_failed.append(info.signature)
        return records, chain_failed, False

    async def _fetch_one(
        self, info: SignatureInfo, result: IngestionResult
    ) -> tuple[TransactionRecord | None, bool]:
        """One detail fetch; failures are logged and skipped, never raised."""
        try:
            raw = await self._rpc.get_transaction(info.signature, encoding=self._config.encoding)
        except TrackerError as e:
            result.details_failed += 1
            self._log.warning(
                "ingestion_detail_failed",
                signature=info.signature,
                error=str(e),
            )
            return None, False
        result.details_fetched += 1
        if raw is None:
            self._log.debug("ingestion_detail_missing", signature=info.signature)
            return None, False
        record = self._classifier.classify(info.signature, raw)
        meta = raw.get("meta") if isinstance(raw, dict) else None
        failed_on_chain = record is None and isinstance(meta, dict) and meta.get("err") is not None
        return record, failed_on_chain
