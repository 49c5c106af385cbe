"""
Tracker service: the one object API handlers and the collector CLI talk to.

Owns the record store, the persistence gateway and the settings; builds a
rate-limited RPC client per ingestion run. Reads are served from the store;
an ingestion run is triggered when the last fetch is older than the cache
window, or explicitly through refresh()/force_refresh(). Runs are serialized
so only one orchestrator mutates the store at a time.
"""

from __future__ import annotations

import asyncio
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, AsyncIterator, Callable

from sol_tracker.analytics.stats import DEFAULT_RECENT_LIMIT, build_stats_payload
from sol_tracker.core.exceptions import TrackerUnavailableError
from sol_tracker.database.models import Direction, TransactionRecord
from sol_tracker.database.storage import PersistenceGateway, build_backend
from sol_tracker.ingestion.orchestrator import (
    BudgetedOrchestrator,
    IngestionResult,
    StopReason,
    TransactionSource,
)
from sol_tracker.ingestion.store import RecordStore
from sol_tracker.solana_listener.classifier import TransactionClassifier
from sol_tracker.solana_listener.rate_limiter import RateLimitedClient
from sol_tracker.solana_listener.rpc import SolanaRpc
from sol_tracker.tracker_logging import bind_wallet

if TYPE_CHECKING:
    from sol_tracker.config.settings import TrackerSettings

RpcFactory = Callable[[], Any]
"""Returns an async context manager yielding a TransactionSource."""


def _parse_iso(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class TrackerService:
    """Cache-window reads plus on-demand ingestion for one tracked wallet."""

    def __init__(
        self,
        settings: "TrackerSettings",
        *,
        gateway: PersistenceGateway | None = None,
        rpc_factory: RpcFactory | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Any] = asyncio.sleep,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._settings = settings
        self._gateway = gateway or PersistenceGateway(
            build_backend(settings.storage_backend, settings.storage_path),
            min_save_interval_sec=settings.save_debounce_sec,
            clock=clock,
        )
        self._rpc_factory = rpc_factory or self._default_rpc
        self._clock = clock
        self._sleep = sleep
        self._now = now
        self._store = RecordStore()
        self._classifier = TransactionClassifier(settings.wallet_address)
        self._lock = asyncio.Lock()
        self._last_result: IngestionResult | None = None
        self._log = bind_wallet(settings.wallet_address)

    @property
    def settings(self) -> "TrackerSettings":
        return self._settings

    @property
    def store(self) -> RecordStore:
        return self._store

    @property
    def last_result(self) -> IngestionResult | None:
        return self._last_result

    @asynccontextmanager
    async def _default_rpc(self) -> AsyncIterator[TransactionSource]:
        s = self._settings
        limiter = RateLimitedClient(s.rate_limit, sleep=self._sleep, clock=self._clock)
        async with SolanaRpc(s.rpc_url, limiter, timeout_sec=s.rpc_timeout_sec) as rpc:
            yield rpc

    def _ensure_loaded(self) -> None:
        if not self._store.hydrated:
            self._store.restore(self._gateway.load())

    def is_stale(self) -> bool:
        """True when the last fetch is missing or older than the cache window."""
        last = _parse_iso(self._store.last_fetch_timestamp)
        if last is None:
            return True
        age = (self._now() - last).total_seconds()
        return age >= self._settings.cache_ttl_sec

    async def _ingest(self) -> IngestionResult:
        async with self._lock:
            self._ensure_loaded()
            had_state = self._store.has_prior_state or len(self._store) > 0
            async with self._rpc_factory() as rpc:
                orchestrator = BudgetedOrchestrator(
                    rpc,
                    self._gateway,
                    self._store,
                    self._classifier,
                    self._settings.pipeline,
                    clock=self._clock,
                    sleep=self._sleep,
                )
                result = await orchestrator.run()
            self._last_result = result
        if result.stop_reason is StopReason.PAGE_FAILED and result.batches == 0 and not had_state:
            raise TrackerUnavailableError(f"no stored data and remote unavailable: {result.error}")
        return result

    async def get_stats(self, limit: int = DEFAULT_RECENT_LIMIT) -> dict[str, Any]:
        """
        Stats payload, refreshed first when the cache window has passed.

        A failed refresh still returns the stored snapshot with stale=True
        unless nothing was ever stored (TrackerUnavailableError).
        """
        self._ensure_loaded()
        stale = False
        if self.is_stale():
            result = await self._ingest()
            stale = result.stop_reason is StopReason.PAGE_FAILED
        records = self._store.records
        return build_stats_payload(
            records,
            self._store.recent(limit),
            last_fetch_timestamp=self._store.last_fetch_timestamp,
            stale=stale,
        )

    def get_transactions(
        self,
        limit: int = DEFAULT_RECENT_LIMIT,
        direction: Direction | None = None,
    ) -> list[TransactionRecord]:
        self._ensure_loaded()
        return self._store.recent(limit, direction)

    async def refresh(self) -> IngestionResult:
        """Run ingestion now regardless of the cache window."""
        return await self._ingest()

    async def force_refresh(self) -> IngestionResult:
        """Drop every stored record and re-ingest from the newest signature."""
        async with self._lock:
            self._ensure_loaded()
            removed = self._store.clear()
            self._gateway.clear()
            self._log.warning("tracker_force_refresh_cleared", removed=removed)
        return await self._ingest()
