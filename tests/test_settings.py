"""
Tests for get_settings(): profiles, per-field overrides, RPC URL resolution
and wallet address validation.
"""

from __future__ import annotations

import pytest

from sol_tracker.config.settings import (
    PROFILES,
    PROFILE_SERVERLESS,
    PROFILE_SERVERLESS_FAST,
    PROFILE_STANDARD,
    get_settings,
)
from sol_tracker.core.exceptions import ConfigError

TRACKED = "9QCfNuQuxct1Xk9ytFYgxc5fThmTzL4pHQnSjjrVUrka"
OTHER = "7F1WzVNQ1Qpurqxxdyv3UrFQR3uoNepULVW9A4bAJ5nZ"


def test_standard_defaults(tracker_env):
    s = get_settings()
    assert s.wallet_address == TRACKED
    assert s.profile == PROFILE_STANDARD
    assert s.rpc_url == "https://api.mainnet-beta.solana.com"
    assert s.storage_backend == "file"
    assert str(s.storage_path).endswith("transactions.json")
    assert s.rate_limit.requests_per_second == 0.5
    assert s.pipeline.skip_details is False


def test_vercel_defaults_to_serverless(tracker_env, monkeypatch):
    monkeypatch.setenv("VERCEL", "1")
    s = get_settings()
    assert s.profile == PROFILE_SERVERLESS
    assert s.storage_backend == "memory"
    assert s.pipeline.deadline_sec < 15


def test_fast_profile_skips_details(tracker_env):
    s = get_settings(profile="serverless_fast")
    assert s.profile == PROFILE_SERVERLESS_FAST
    assert s.pipeline.skip_details is True


@pytest.mark.parametrize("name", sorted(PROFILES))
def test_presets_stay_under_public_rpc_ceiling(name):
    """Public and free-tier nodes typically allow 2 req/s or less."""
    assert PROFILES[name].rate_limit.requests_per_second <= 2.0


def test_env_overrides(tracker_env, monkeypatch):
    monkeypatch.setenv("SIGNATURE_BATCH_SIZE", "25")
    monkeypatch.setenv("MAX_BATCHES", "4")
    monkeypatch.setenv("RECORD_LIMIT", "50")
    monkeypatch.setenv("SKIP_DETAILS", "yes")
    monkeypatch.setenv("RPC_REQUESTS_PER_SECOND", "2")
    monkeypatch.setenv("STORAGE_BACKEND", "sqlite")
    s = get_settings()
    assert s.pipeline.batch_size == 25
    assert s.pipeline.max_batches == 4
    assert s.pipeline.record_limit == 50
    assert s.pipeline.skip_details is True
    assert s.rate_limit.min_interval_sec == 0.5
    assert s.storage_backend == "sqlite"


def test_keyword_arguments_win(tracker_env, monkeypatch):
    monkeypatch.setenv("RECORD_LIMIT", "50")
    s = get_settings(wallet_address=OTHER, storage_backend="memory", record_limit=7)
    assert s.wallet_address == OTHER
    assert s.storage_backend == "memory"
    assert s.pipeline.record_limit == 7


def test_helius_url_by_network(tracker_env, monkeypatch):
    monkeypatch.setenv("HELIUS_API_KEY", "k123")
    assert get_settings().rpc_url == "https://mainnet.helius-rpc.com/?api-key=k123"
    monkeypatch.setenv("SOLANA_NETWORK", "devnet")
    assert get_settings().rpc_url == "https://devnet.helius-rpc.com/?api-key=k123"
    monkeypatch.setenv("SOLANA_RPC_URL", "https://custom.example")
    assert get_settings().rpc_url == "https://custom.example"


def test_legacy_wallet_variable(tracker_env, monkeypatch):
    monkeypatch.delenv("TRACKED_WALLET_ADDRESS")
    monkeypatch.setenv("DISTRIBUTION_WALLET_ADDRESS", OTHER)
    assert get_settings().wallet_address == OTHER


@pytest.mark.parametrize("address", ["", "not-a-key", "0OIl" * 11])
def test_invalid_wallet_rejected(tracker_env, monkeypatch, address):
    monkeypatch.setenv("TRACKED_WALLET_ADDRESS", address)
    with pytest.raises(ConfigError):
        get_settings()


@pytest.mark.parametrize(
    "name,value",
    [
        ("SIGNATURE_BATCH_SIZE", "many"),
        ("SIGNATURE_BATCH_SIZE", "5000"),
        ("DEADLINE_SEC", "-1"),
        ("SKIP_DETAILS", "maybe"),
        ("TRACKER_PROFILE", "turbo"),
        ("STORAGE_BACKEND", "redis"),
    ],
)
def test_bad_values_raise_config_error(tracker_env, monkeypatch, name, value):
    monkeypatch.setenv(name, value)
    with pytest.raises(ConfigError):
        get_settings()


def test_config_error_is_value_error():
    assert issubclass(ConfigError, ValueError)
