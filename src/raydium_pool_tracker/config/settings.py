"""Configuration management for the pool tracker."""

from __future__ import annotations

import os
import tomllib
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple, cast

from pydantic import AnyHttpUrl, BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..utils.constants import RAYDIUM_AMM_V4_PROGRAM_ID

DEFAULT_CONFIG_FILE = Path("config/app.toml")
CONFIG_FILE_ENV_VAR = "APP_CONFIG_FILE"
MODE_ENV_VAR = "TRACKER_MODE"


class AppMode(str, Enum):
    """Supported runtime profiles."""

    DEVELOPMENT = "development"
    PRODUCTION = "production"


def _resolve_config_path() -> Path:
    env_value = os.getenv(CONFIG_FILE_ENV_VAR)
    if env_value:
        candidate = Path(env_value)
        if not candidate.is_absolute():
            candidate = Path.cwd() / candidate
        return candidate
    return Path.cwd() / DEFAULT_CONFIG_FILE


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    result: Dict[str, Any] = {**base}
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(cast(Dict[str, Any], result[key]), value)
        else:
            result[key] = value
    return result


def _select_profile(data: Dict[str, Any]) -> Dict[str, Any]:
    if not data:
        return {}
    base_section = cast(Dict[str, Any], data.get("default", {}))
    requested_mode = os.getenv(MODE_ENV_VAR)
    if not requested_mode:
        mode_section = base_section.get("mode")
        if isinstance(mode_section, dict):
            requested_mode = cast(str, mode_section.get("active", AppMode.DEVELOPMENT.value))
        elif isinstance(mode_section, str):
            requested_mode = mode_section
    requested_mode = (requested_mode or AppMode.DEVELOPMENT.value).lower()

    if requested_mode in data and requested_mode != "default":
        return _deep_merge(base_section, cast(Dict[str, Any], data[requested_mode]))
    if base_section:
        return base_section
    return data


def _load_toml_config() -> Tuple[Dict[str, Any], Optional[Path]]:
    path = _resolve_config_path()
    if not path.exists():
        return {}, None
    with path.open("rb") as handle:
        payload = tomllib.load(handle)
    if not isinstance(payload, dict):
        return {}, path
    merged = dict(_select_profile(payload))
    mode_section = merged.get("mode")
    if isinstance(mode_section, dict):
        mode_section = dict(mode_section)
        mode_section.setdefault("config_file", str(path))
        merged["mode"] = mode_section
    else:
        merged["mode"] = {"config_file": str(path)}
    return merged, path


class ModeConfig(BaseModel):
    """Active profile and where it was loaded from."""

    active: AppMode = AppMode.DEVELOPMENT
    config_file: Optional[Path] = None


class RPCConfig(BaseModel):
    """Solana JSON-RPC endpoints used to fetch pool accounts."""

    primary_url: AnyHttpUrl = Field(default="https://api.mainnet-beta.solana.com")
    fallback_urls: List[AnyHttpUrl] = Field(default_factory=list)
    request_timeout: float = Field(default=12.0, ge=1.0, le=60.0)
    commitment: str = Field(default="confirmed")

    @field_validator("fallback_urls", mode="before")
    @classmethod
    def _unique_urls(cls, value: Iterable[AnyHttpUrl]) -> List[AnyHttpUrl]:
        if isinstance(value, str):
            value = [item.strip() for item in value.split(",") if item.strip()]
        seen: set[str] = set()
        unique: List[AnyHttpUrl] = []
        for url in value:
            if str(url) not in seen:
                unique.append(url)
                seen.add(str(url))
        return unique

    @field_validator("request_timeout", mode="before")
    @classmethod
    def _parse_request_timeout(cls, value) -> float:
        if isinstance(value, str):
            return float(value)
        return value


class HeliusConfig(BaseModel):
    """Helius enhanced-transactions API settings."""

    api_base_url: AnyHttpUrl = Field(default="https://api.helius.xyz")
    api_key: Optional[str] = None
    transaction_limit: int = Field(default=100, ge=1, le=100)
    http_timeout: float = Field(default=10.0, ge=1.0, le=120.0)
    seen_signature_ttl_seconds: int = Field(default=3_600, ge=0)
    seen_signature_capacity: int = Field(default=50_000, ge=1)


class ReconcilerConfig(BaseModel):
    """Rules applied while reconciling a pool from a swap."""

    program_id: str = Field(default=RAYDIUM_AMM_V4_PROGRAM_ID)
    max_price_change: float = Field(default=0.20, gt=0.0)
    min_account_size: int = Field(default=192, ge=113)
    fetch_timeout_seconds: float = Field(default=15.0, gt=0.0)


class RateLimitConfig(BaseModel):
    """Fixed quota of account fetches per time window."""

    permits_per_window: int = Field(default=7, ge=1)
    window_seconds: float = Field(default=10.0, gt=0.0)
    acquire_timeout_seconds: float = Field(default=0.5, ge=0.0)


class WorkerConfig(BaseModel):
    """Async worker pool settings."""

    max_concurrency: int = Field(default=4, ge=1, le=64)
    poll_interval_seconds: float = Field(default=30.0, gt=0.0)


class StorageConfig(BaseModel):
    """State persistence configuration."""

    database_path: Path = Field(default=Path("./pools.sqlite3"))


class MonitoringConfig(BaseModel):
    """Logging configuration."""

    log_level: str = Field(default="INFO")


class ApiConfig(BaseModel):
    """HTTP boundary exposing pool state."""

    host: str = Field(default="127.0.0.1")
    port: int = Field(default=8080, ge=1, le=65535)


class AppConfig(BaseSettings):
    """Aggregated application configuration."""

    mode: ModeConfig = Field(default_factory=ModeConfig)
    rpc: RPCConfig = Field(default_factory=RPCConfig)
    helius: HeliusConfig = Field(default_factory=HeliusConfig)
    reconciler: ReconcilerConfig = Field(default_factory=ReconcilerConfig)
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    worker: WorkerConfig = Field(default_factory=WorkerConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)
    api: ApiConfig = Field(default_factory=ApiConfig)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        def file_settings(_: Optional[BaseSettings] = None) -> Dict[str, Any]:
            payload, _ = _load_toml_config()
            return payload

        # Environment variables win over the static config file.
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            file_settings,
            file_secret_settings,
        )

    @model_validator(mode="after")
    def _apply_helius_key(self) -> "AppConfig":
        helius_key = self.helius.api_key or os.getenv("HELIUS_API_KEY")
        if helius_key:
            self.helius.api_key = helius_key.strip()
        helius_url = os.getenv("HELIUS_RPC_URL")
        if not helius_url and self.helius.api_key:
            helius_url = f"https://mainnet.helius-rpc.com/?api-key={self.helius.api_key}"
        if helius_url:
            previous_primary = str(self.rpc.primary_url)
            self.rpc.primary_url = helius_url
            candidates = [previous_primary, *[str(url) for url in self.rpc.fallback_urls]]
            seen: set[str] = {str(self.rpc.primary_url)}
            deduped: list[str] = []
            for url in candidates:
                if url in seen:
                    continue
                seen.add(url)
                deduped.append(url)
            self.rpc.fallback_urls = deduped
        return self


@lru_cache(maxsize=1)
def get_app_config() -> AppConfig:
    """Create a cached application configuration object."""

    return AppConfig()


__all__ = [
    "ApiConfig",
    "AppConfig",
    "AppMode",
    "HeliusConfig",
    "ModeConfig",
    "MonitoringConfig",
    "RPCConfig",
    "RateLimitConfig",
    "ReconcilerConfig",
    "StorageConfig",
    "WorkerConfig",
    "get_app_config",
]
