"""
Typed tracker settings built from the environment.

A profile picks a preset for the pipeline budget and RPC pacing; individual
environment variables override single fields on top of it. The pipeline
itself never looks at which host it runs on.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from pathlib import Path

from solders.pubkey import Pubkey

from sol_tracker.config.env import (
    env_bool,
    env_float,
    env_int,
    env_str,
    get_solana_rpc_url,
    is_serverless_host,
    load_tracker_env,
)
from sol_tracker.core.exceptions import ConfigError
from sol_tracker.ingestion.orchestrator import PipelineConfig
from sol_tracker.solana_listener.rate_limiter import RateLimitConfig
from sol_tracker.solana_listener.rpc import DEFAULT_TIMEOUT_SEC

PROFILE_STANDARD = "standard"
PROFILE_SERVERLESS = "serverless"
PROFILE_SERVERLESS_FAST = "serverless_fast"

STORAGE_KINDS = ("file", "memory", "sqlite")
DEFAULT_CACHE_TTL_SEC = 3600.0
DEFAULT_SAVE_DEBOUNCE_SEC = 5.0


@dataclass(frozen=True)
class Profile:
    pipeline: PipelineConfig
    rate_limit: RateLimitConfig
    storage_backend: str


# Long-running host: slow and patient, stays well under public RPC limits.
# Serverless: must finish inside a ~15s function timeout, so small pages and a short deadline.
# Every preset stays at or under 2 req/s, the usual ceiling of public and free-tier RPC nodes.
PROFILES: dict[str, Profile] = {
    PROFILE_STANDARD: Profile(
        pipeline=PipelineConfig(batch_size=100, max_batches=10, deadline_sec=300.0, detail_delay_sec=2.0),
        rate_limit=RateLimitConfig(
            requests_per_second=0.5, max_retries=5, initial_backoff_sec=30.0, max_backoff_sec=120.0
        ),
        storage_backend="file",
    ),
    PROFILE_SERVERLESS: Profile(
        pipeline=PipelineConfig(batch_size=20, max_batches=3, deadline_sec=12.0, detail_delay_sec=0.0),
        rate_limit=RateLimitConfig(
            requests_per_second=2.0, max_retries=2, initial_backoff_sec=1.0, max_backoff_sec=4.0
        ),
        storage_backend="memory",
    ),
    PROFILE_SERVERLESS_FAST: Profile(
        pipeline=PipelineConfig(batch_size=100, max_batches=5, deadline_sec=12.0, skip_details=True),
        rate_limit=RateLimitConfig(
            requests_per_second=2.0, max_retries=2, initial_backoff_sec=1.0, max_backoff_sec=4.0
        ),
        storage_backend="memory",
    ),
}


@dataclass(frozen=True)
class TrackerSettings:
    """Everything needed to build a TrackerService for one wallet."""

    wallet_address: str
    rpc_url: str
    profile: str = PROFILE_STANDARD
    pipeline: PipelineConfig = PipelineConfig()
    rate_limit: RateLimitConfig = RateLimitConfig()
    rpc_timeout_sec: float = DEFAULT_TIMEOUT_SEC
    cache_ttl_sec: float = DEFAULT_CACHE_TTL_SEC
    storage_backend: str = "file"
    storage_path: Path | None = None
    save_debounce_sec: float = DEFAULT_SAVE_DEBOUNCE_SEC

    def __post_init__(self) -> None:
        validate_address(self.wallet_address)
        if self.storage_backend not in STORAGE_KINDS:
            raise ConfigError(f"STORAGE_BACKEND must be one of {STORAGE_KINDS}, got {self.storage_backend!r}")
        if self.cache_ttl_sec < 0:
            raise ConfigError("CACHE_TTL_SEC must be >= 0")
        if self.rpc_timeout_sec <= 0:
            raise ConfigError("RPC_TIMEOUT_SEC must be positive")


def validate_address(address: str | None) -> str:
    """Return the address if it parses as a Solana public key, else raise ConfigError."""
    address = (address or "").strip()
    if not address:
        raise ConfigError("TRACKED_WALLET_ADDRESS is not set")
    try:
        Pubkey.from_string(address)
    except Exception as e:
        raise ConfigError(f"invalid wallet address {address!r}: {e}") from e
    return address


def resolve_profile(name: str | None = None) -> str:
    name = (name or env_str("TRACKER_PROFILE") or "").strip().lower()
    if not name:
        return PROFILE_SERVERLESS if is_serverless_host() else PROFILE_STANDARD
    if name not in PROFILES:
        raise ConfigError(f"unknown TRACKER_PROFILE {name!r}; expected one of {sorted(PROFILES)}")
    return name


def get_settings(
    *,
    profile: str | None = None,
    wallet_address: str | None = None,
    storage_backend: str | None = None,
    record_limit: int | None = None,
) -> TrackerSettings:
    """
    Build settings from the environment (.env loaded first).

    Keyword arguments come from the CLI and win over the environment.
    Raises ConfigError for a missing or invalid wallet address, an unknown
    profile, or a malformed numeric variable.
    """
    load_tracker_env()
    name = resolve_profile(profile)
    preset = PROFILES[name]

    address = wallet_address or env_str("TRACKED_WALLET_ADDRESS") or env_str("DISTRIBUTION_WALLET_ADDRESS")
    p, r = preset.pipeline, preset.rate_limit
    try:
        pipeline = replace(
            p,
            batch_size=env_int("SIGNATURE_BATCH_SIZE", p.batch_size),
            max_batches=env_int("MAX_BATCHES", p.max_batches),
            deadline_sec=env_float("DEADLINE_SEC", p.deadline_sec),
            detail_delay_sec=env_float("DETAIL_DELAY_SEC", p.detail_delay_sec),
            skip_details=env_bool("SKIP_DETAILS", p.skip_details),
            record_limit=record_limit if record_limit is not None else env_int("RECORD_LIMIT", p.record_limit),
        )
        rate_limit = replace(
            r,
            requests_per_second=env_float("RPC_REQUESTS_PER_SECOND", r.requests_per_second),
            max_retries=env_int("RPC_MAX_RETRIES", r.max_retries),
            initial_backoff_sec=env_float("RPC_INITIAL_BACKOFF_SEC", r.initial_backoff_sec),
            max_backoff_sec=env_float("RPC_MAX_BACKOFF_SEC", r.max_backoff_sec),
        )
    except ValueError as e:
        if isinstance(e, ConfigError):
            raise
        raise ConfigError(str(e)) from e

    storage_path = env_str("STORAGE_PATH")
    return TrackerSettings(
        wallet_address=validate_address(address),
        rpc_url=get_solana_rpc_url(),
        profile=name,
        pipeline=pipeline,
        rate_limit=rate_limit,
        rpc_timeout_sec=env_float("RPC_TIMEOUT_SEC", DEFAULT_TIMEOUT_SEC),
        cache_ttl_sec=env_float("CACHE_TTL_SEC", DEFAULT_CACHE_TTL_SEC),
        storage_backend=(storage_backend or env_str("STORAGE_BACKEND") or preset.storage_backend).lower(),
        storage_path=Path(storage_path) if storage_path else None,
        save_debounce_sec=env_float("SAVE_DEBOUNCE_SEC", DEFAULT_SAVE_DEBOUNCE_SEC),
    )
