from __future__ import annotations

from pathlib import Path

import pytest

from raydium_pool_tracker.config import settings

_ENV_VARS = (
    "TRACKER_MODE",
    "HELIUS_API_KEY",
    "HELIUS_RPC_URL",
    "RPC__PRIMARY_URL",
    "RPC__FALLBACK_URLS",
    "RPC__REQUEST_TIMEOUT",
    "HELIUS__API_KEY",
    "RECONCILER__MAX_PRICE_CHANGE",
    "RATE_LIMIT__PERMITS_PER_WINDOW",
    "WORKER__MAX_CONCURRENCY",
)


@pytest.fixture
def isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    # Keep a developer's .env out of the picture.
    monkeypatch.chdir(tmp_path)
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    config_path = tmp_path / "app.toml"
    monkeypatch.setenv("APP_CONFIG_FILE", str(config_path))
    settings.get_app_config.cache_clear()
    yield config_path
    settings.get_app_config.cache_clear()


def test_defaults_without_config_file(isolated_env: Path) -> None:
    cfg = settings.get_app_config()

    assert cfg.mode.active == settings.AppMode.DEVELOPMENT
    assert cfg.mode.config_file is None
    assert cfg.reconciler.program_id == "675kPX9MHTjS2zt1qfr1NYHuzeLXfQM9H24wFSUt1Mp8"
    assert cfg.reconciler.max_price_change == pytest.approx(0.20)
    assert cfg.reconciler.min_account_size == 192
    assert cfg.rate_limit.permits_per_window == 7
    assert cfg.rate_limit.window_seconds == 10.0
    assert cfg.rate_limit.acquire_timeout_seconds == 0.5
    assert settings.get_app_config() is cfg


def test_profiles_merge_and_env_wins(isolated_env: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    isolated_env.write_text(
        """
[default.mode]
active = "development"

[default.rpc]
primary_url = "https://api.default"
request_timeout = 9.5

[default.worker]
max_concurrency = 2
poll_interval_seconds = 45

[production.mode]
active = "production"

[production.rpc]
primary_url = "https://api.production"

[production.worker]
max_concurrency = 16
"""
    )
    monkeypatch.setenv("TRACKER_MODE", "production")
    monkeypatch.setenv("RPC__REQUEST_TIMEOUT", "18")

    cfg = settings.get_app_config()

    assert cfg.mode.active == settings.AppMode.PRODUCTION
    assert cfg.mode.config_file == isolated_env
    assert "api.production" in str(cfg.rpc.primary_url)
    assert cfg.rpc.request_timeout == 18.0
    assert cfg.worker.max_concurrency == 16
    assert cfg.worker.poll_interval_seconds == 45.0


def test_default_profile_used_when_mode_unknown(isolated_env: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    isolated_env.write_text(
        """
[default.reconciler]
max_price_change = 0.35
"""
    )
    monkeypatch.setenv("TRACKER_MODE", "staging")

    cfg = settings.get_app_config()

    assert cfg.reconciler.max_price_change == pytest.approx(0.35)


def test_helius_key_derives_rpc_endpoint(isolated_env: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("HELIUS_API_KEY", " abc123 ")

    cfg = settings.get_app_config()

    assert cfg.helius.api_key == "abc123"
    assert "helius-rpc.com" in str(cfg.rpc.primary_url)
    assert [str(url) for url in cfg.rpc.fallback_urls] == ["https://api.mainnet-beta.solana.com/"]


def test_invalid_values_are_rejected(isolated_env: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("RATE_LIMIT__PERMITS_PER_WINDOW", "0")
    with pytest.raises(ValueError):
        settings.get_app_config()
