"""Configuration management for the migration liquidity bot."""

from __future__ import annotations

import os
import tomllib
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, cast

from pydantic import AnyHttpUrl, BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_CONFIG_FILE = Path("config/app.toml")
CONFIG_FILE_ENV_VAR = "APP_CONFIG_FILE"
MODE_ENV_VAR = "BOT_MODE"


class AppMode(str, Enum):
    """Supported runtime modes."""

    DRY_RUN = "dry_run"
    LIVE = "live"


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
            requested_mode = cast(str, mode_section.get("active", AppMode.DRY_RUN.value))
        elif isinstance(mode_section, str):
            requested_mode = mode_section
    requested_mode = (requested_mode or AppMode.DRY_RUN.value).lower()

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
    merged = _select_profile(payload)
    mode_section = merged.get("mode")
    if isinstance(mode_section, dict):
        mode_section = dict(mode_section)
        mode_section.setdefault("config_file", str(path))
        merged["mode"] = mode_section
    else:
        merged["mode"] = {"config_file": str(path)}
    return merged, path


class ModeConfig(BaseModel):
    """Runtime mode toggles."""

    active: AppMode = Field(default=AppMode.DRY_RUN)
    config_file: Optional[Path] = None


class RPCConfig(BaseModel):
    """Solana HTTP and websocket endpoints plus rate-limit handling."""

    http_url: AnyHttpUrl = Field(default="https://api.mainnet-beta.solana.com")
    ws_url: str = Field(default="wss://api.mainnet-beta.solana.com")
    commitment: str = Field(default="confirmed")
    request_timeout: float = Field(default=12.0, ge=1.0, le=60.0)
    rate_limit_attempts: int = Field(default=5, ge=1, le=10)
    rate_limit_base_delay: float = Field(default=0.5, ge=0.0)
    rate_limit_max_delay: float = Field(default=8.0, ge=0.0)

    @field_validator("ws_url")
    @classmethod
    def _check_ws_scheme(cls, value: str) -> str:
        if not value.startswith(("ws://", "wss://")):
            raise ValueError("ws_url must use the ws:// or wss:// scheme")
        return value

    @field_validator("commitment")
    @classmethod
    def _check_commitment(cls, value: str) -> str:
        lowered = value.lower()
        if lowered not in {"processed", "confirmed", "finalized"}:
            raise ValueError(f"Unsupported commitment level: {value}")
        return lowered


class ProgramConfig(BaseModel):
    """On-chain program addresses and DAMM v2 account layout constants."""

    migration_program_id: str = Field(default="39azUYFWPz3VHgKCf3VChUwbpURdCHRxjWVowf5jUJjg")
    damm_program_id: str = Field(default="cpamdpZCGKUy5JxQXB4dcpGPiikHawvSWAd6mEn1sGG")
    pool_account_size: int = Field(default=1112, gt=0)
    token_a_offset: int = Field(default=168, ge=0)
    token_b_offset: int = Field(default=200, ge=0)


class ListenerConfig(BaseModel):
    """Migration log listener filtering and de-duplication."""

    keyword_hints: List[str] = Field(
        default_factory=lambda: ["migrate", "Migrate", "migration", "Migration", "withdraw", "Withdraw"]
    )
    instruction_marker: str = Field(default="Instruction: Migrate")
    dedup_ttl_seconds: float = Field(default=180.0, gt=0.0)
    queue_size: int = Field(default=1024, ge=1)
    reconnect_max_delay: float = Field(default=30.0, ge=1.0)
    receive_timeout: float = Field(default=30.0, ge=1.0)


class RegistryConfig(BaseModel):
    """Lifetime of pending migration candidates."""

    candidate_ttl_seconds: float = Field(default=420.0, gt=0.0)


class ReconciliationConfig(BaseModel):
    """Pool scan cadence."""

    interval_seconds: float = Field(default=20.0, gt=0.0)
    scan_token_b: bool = False


class TradingConfig(BaseModel):
    """Purchase sizing, retries and liquidity provisioning toggles."""

    swap_amount_sol: float = Field(default=0.002, gt=0.0)
    liquidity_amount_sol: Optional[float] = Field(default=None, gt=0.0)
    slippage_bps: int = Field(default=2000, ge=1, le=10_000)
    add_liquidity: bool = True
    fee_reserve_sol: float = Field(default=0.01, ge=0.0)
    priority_fee_lamports: int = Field(default=100_000, ge=0)
    swap_attempts: int = Field(default=3, ge=1, le=10)
    swap_retry_delay: float = Field(default=5.0, ge=0.0)
    confirmation_checks: int = Field(default=6, ge=1)
    confirmation_step_seconds: float = Field(default=5.0, ge=0.0)
    settlement_delays: List[float] = Field(default_factory=lambda: [2.0, 4.0, 6.0, 8.0, 10.0])
    non_critical_instruction_index: int = Field(default=4, ge=0)

    @property
    def liquidity_budget_sol(self) -> float:
        return self.liquidity_amount_sol if self.liquidity_amount_sol is not None else self.swap_amount_sol


class JupiterConfig(BaseModel):
    """Swap aggregator endpoints."""

    base_url: AnyHttpUrl = Field(default="https://lite-api.jup.ag/swap/v1")
    api_key: Optional[str] = None
    http_timeout: float = Field(default=15.0, ge=1.0)


class WalletConfig(BaseModel):
    """Wallet and signer configuration."""

    private_key: Optional[str] = None
    keypair_path: Optional[Path] = None


class MonitoringConfig(BaseModel):
    """Logging and notification configuration."""

    log_level: str = Field(default="INFO")
    discord_webhook_url: Optional[AnyHttpUrl] = None
    notification_timeout: float = Field(default=5.0, gt=0.0)
    bot_name: str = Field(default="Migration LP Bot")
    enrich_token_metadata: bool = True


class AppConfig(BaseSettings):
    """Aggregated application configuration."""

    mode: ModeConfig = Field(default_factory=ModeConfig)
    rpc: RPCConfig = Field(default_factory=RPCConfig)
    programs: ProgramConfig = Field(default_factory=ProgramConfig)
    listener: ListenerConfig = Field(default_factory=ListenerConfig)
    registry: RegistryConfig = Field(default_factory=RegistryConfig)
    reconciliation: ReconciliationConfig = Field(default_factory=ReconciliationConfig)
    trading: TradingConfig = Field(default_factory=TradingConfig)
    jupiter: JupiterConfig = Field(default_factory=JupiterConfig)
    wallet: WalletConfig = Field(default_factory=WalletConfig)
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)

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

    @model_validator(mode="before")
    @classmethod
    def _apply_flat_environment(cls, data: Any) -> Any:
        # Merged before validation so the section constraints also cover the flat names.
        if not isinstance(data, dict):
            return data
        overrides: Dict[str, Dict[str, Any]] = {}
        http_url = os.getenv("RPC_HTTP") or os.getenv("HELIUS_RPC_URL")
        if not http_url:
            helius_key = os.getenv("HELIUS_API_KEY")
            if helius_key:
                http_url = f"https://mainnet.helius-rpc.com/?api-key={helius_key.strip()}"
        if http_url:
            overrides.setdefault("rpc", {})["http_url"] = http_url
        ws_url = os.getenv("RPC_WS")
        if ws_url:
            overrides.setdefault("rpc", {})["ws_url"] = ws_url
        elif http_url and "helius-rpc.com" in http_url:
            overrides.setdefault("rpc", {})["ws_url"] = http_url.replace("https://", "wss://", 1)
        private_key = os.getenv("PRIVATE_KEY")
        if private_key:
            overrides.setdefault("wallet", {})["private_key"] = private_key.strip()
        sol_amount = os.getenv("SOL_AMOUNT")
        if sol_amount:
            overrides.setdefault("trading", {})["swap_amount_sol"] = sol_amount.strip()
        slippage = os.getenv("SLIPPAGE_BPS")
        if slippage:
            overrides.setdefault("trading", {})["slippage_bps"] = slippage.strip()
        add_liquidity = os.getenv("ADD_LIQUIDITY")
        if add_liquidity:
            overrides.setdefault("trading", {})["add_liquidity"] = add_liquidity.strip().lower() in {
                "1",
                "true",
                "yes",
                "on",
            }
        webhook = os.getenv("DISCORD_WEBHOOK")
        if webhook:
            overrides.setdefault("monitoring", {})["discord_webhook_url"] = webhook.strip()
        if not overrides:
            return data

        merged: Dict[str, Any] = dict(data)
        for section, values in overrides.items():
            current = merged.get(section)
            if isinstance(current, BaseModel):
                current = current.model_dump()
            merged[section] = _deep_merge(cast(Dict[str, Any], current or {}), values)
        return merged


def env_path() -> Path:
    """Return the default path for the `.env` file."""

    return Path.cwd() / ".env"


@lru_cache(maxsize=1)
def get_app_config() -> AppConfig:
    """Create a cached application configuration object."""

    return AppConfig()


__all__ = [
    "AppConfig",
    "AppMode",
    "JupiterConfig",
    "ListenerConfig",
    "ModeConfig",
    "MonitoringConfig",
    "ProgramConfig",
    "RPCConfig",
    "ReconciliationConfig",
    "RegistryConfig",
    "TradingConfig",
    "WalletConfig",
    "env_path",
    "get_app_config",
]
