"""
Pytest fixtures for tracker tests.

FakeClock stands in for time.monotonic and asyncio.sleep so rate limits,
backoff and deadlines run instantly. FakeRpc serves a scripted signature
history and transaction details; it advances the clock by `cost_sec` per call.
"""

from __future__ import annotations

from typing import Any

import pytest

# Valid Solana pubkeys (base58, 32 bytes)
TRACKED = "9QCfNuQuxct1Xk9ytFYgxc5fThmTzL4pHQnSjjrVUrka"
OTHER = "7F1WzVNQ1Qpurqxxdyv3UrFQR3uoNepULVW9A4bAJ5nZ"

START_BALANCE = 50_000_000_000


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_raw_tx(
    delta: int,
    *,
    tracked: str = TRACKED,
    other: str = OTHER,
    block_time: int | None = 1_700_000_000,
    slot: int = 1,
    fee: int = 5000,
    err: Any = None,
    include_tracked: bool = True,
) -> dict[str, Any]:
    """getTransaction (jsonParsed) result moving `delta` lamports into `tracked` from `other`."""
    keys = [tracked, other] if include_tracked else [other, "11111111111111111111111111111111"]
    pre = [START_BALANCE, START_BALANCE]
    post = [START_BALANCE + delta, START_BALANCE - delta]
    return {
        "slot": slot,
        "blockTime": block_time,
        "meta": {"err": err, "fee": fee, "preBalances": pre, "postBalances": post},
        "transaction": {
            "message": {
                "accountKeys": [{"pubkey": k, "signer": i == 0, "writable": True} for i, k in enumerate(keys)],
            },
            "signatures": ["x"],
        },
    }


def sig_entry(signature: str, *, slot: int, block_time: int | None, err: Any = None) -> dict[str, Any]:
    return {
        "signature": signature,
        "slot": slot,
        "err": err,
        "blockTime": block_time,
        "memo": None,
        "confirmationStatus": "finalized",
    }


class FakeRpc:
    """
    Scripted signature history (newest first) plus detail payloads.

    page_errors / detail_errors map a call index or signature to an exception
    to raise instead of answering.
    """

    def __init__(self, clock: FakeClock | None = None, cost_sec: float = 0.0) -> None:
        self.entries: list[dict[str, Any]] = []
        self.details: dict[str, dict[str, Any] | None] = {}
        self.page_errors: dict[int, Exception] = {}
        self.detail_errors: dict[str, Exception] = {}
        self.page_calls: list[tuple[int, str | None]] = []
        self.detail_calls: list[str] = []
        self.clock = clock
        self.cost_sec = cost_sec
        self.closed = False

    def add(self, signature: str, delta: int, *, slot: int, block_time: int | None = None, err: Any = None) -> None:
        """Append one transaction, older than everything added before."""
        bt = block_time if block_time is not None else 1_700_000_000 + slot
        self.entries.append(sig_entry(signature, slot=slot, block_time=bt, err=err))
        self.details[signature] = make_raw_tx(delta, slot=slot, block_time=bt, err=err)

    def prepend(self, signature: str, delta: int, *, slot: int) -> None:
        """Insert a transaction newer than everything present."""
        bt = 1_700_000_000 + slot
        self.entries.insert(0, sig_entry(signature, slot=slot, block_time=bt))
        self.details[signature] = make_raw_tx(delta, slot=slot, block_time=bt)

    def _tick(self) -> None:
        if self.clock is not None and self.cost_sec:
            self.clock.advance(self.cost_sec)

    async def get_signatures_for_address(
        self, address: str, *, limit: int, before: str | None = None
    ) -> list[dict[str, Any]]:
        index = len(self.page_calls)
        self.page_calls.append((limit, before))
        self._tick()
        if index in self.page_errors:
            raise self.page_errors[index]
        start = 0
        if before is not None:
            start = next(i for i, e in enumerate(self.entries) if e["signature"] == before) + 1
        return [dict(e) if isinstance(e, dict) else e for e in self.entries[start:start + limit]]

    async def get_transaction(self, signature: str, *, encoding: str = "jsonParsed") -> dict[str, Any] | None:
        self.detail_calls.append(signature)
        self._tick()
        if signature in self.detail_errors:
            raise self.detail_errors[signature]
        return self.details.get(signature)

    async def __aenter__(self) -> "FakeRpc":
        return self

    async def __aexit__(self, *exc: Any) -> None:
        self.closed = True


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_rpc(clock):
    return FakeRpc(clock)


@pytest.fixture
def raw_tx():
    """Builder for getTransaction payloads; see make_raw_tx."""
    return make_raw_tx


@pytest.fixture
def history():
    """Factory: FakeRpc with n received transfers sig000 (newest) .. sig{n-1} (oldest)."""

    def _build(n: int, clock: FakeClock | None = None, cost_sec: float = 0.0) -> FakeRpc:
        rpc = FakeRpc(clock, cost_sec)
        for i in range(n):
            rpc.add(f"sig{i:03d}", 1_000_000 * (i + 1), slot=10_000 - i)
        return rpc

    return _build


@pytest.fixture
def memory_gateway(clock):
    from sol_tracker.database.storage import MemoryBackend, PersistenceGateway

    return PersistenceGateway(MemoryBackend(), min_save_interval_sec=5.0, clock=clock)


@pytest.fixture
def tracker_env(tmp_path, monkeypatch):
    """Environment for get_settings(): tracked wallet, file storage under tmp_path."""
    for name in (
        "SOLANA_RPC_URL",
        "HELIUS_API_KEY",
        "SOLANA_NETWORK",
        "TRACKER_PROFILE",
        "VERCEL",
        "DISTRIBUTION_WALLET_ADDRESS",
        "RECORD_LIMIT",
        "SKIP_DETAILS",
        "MAX_BATCHES",
        "SIGNATURE_BATCH_SIZE",
        "DEADLINE_SEC",
        "STORAGE_BACKEND",
        "CACHE_TTL_SEC",
        "RPC_REQUESTS_PER_SECOND",
        "RPC_MAX_RETRIES",
        "RPC_INITIAL_BACKOFF_SEC",
        "RPC_MAX_BACKOFF_SEC",
        "RPC_TIMEOUT_SEC",
        "DETAIL_DELAY_SEC",
        "SAVE_DEBOUNCE_SEC",
        "SOLANA_CLUSTER",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("TRACKED_WALLET_ADDRESS", TRACKED)
    monkeypatch.setenv("STORAGE_PATH", str(tmp_path / "transactions.json"))
    monkeypatch.setattr("sol_tracker.config.env._ENV_PATH", tmp_path / "missing.env")
    return tmp_path
