"""Configuration management for the trading bot.

Rules:
- YAML provides defaults for non-secret config.
- Secrets (Alpaca key id / secret) come from .env / environment variables and override YAML.
- We do NOT inject YAML into os.environ.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


PLACEHOLDER_SECRETS = {"DUMMY", "PLACEHOLDER", "CHANGEME"}

# environment variable -> path in the YAML document
ENV_OVERRIDES: Dict[str, Tuple[str, ...]] = {
    "ALPACA__API_KEY_ID": ("alpaca", "api_key_id"),
    "ALPACA__API_SECRET_KEY": ("alpaca", "api_secret_key"),
    "ALPACA__TRADING_BASE_URL": ("alpaca", "trading_base_url"),
    "ALPACA__MARKET_DATA_BASE_URL": ("alpaca", "market_data_base_url"),
    "ALPACA__DATA_FEED": ("alpaca", "data_feed"),
    "ENVIRONMENT": ("environment",),
    "LOG_LEVEL": ("log_level",),
    "LOG_FORMAT": ("log_format",),
}


class AlpacaConfig(BaseModel):
    """Alpaca API configuration."""

    api_key_id: str = Field(..., description="APCA-API-KEY-ID")
    api_secret_key: str = Field(..., description="APCA-API-SECRET-KEY")
    trading_base_url: str = Field(default="https://paper-api.alpaca.markets")
    market_data_base_url: str = Field(default="https://data.alpaca.markets")
    data_feed: str = Field(default="iex", description="Market data feed: iex or sip")
    request_timeout_sec: float = Field(default=10.0, gt=0, le=120)

    @field_validator("api_key_id", "api_secret_key")
    @classmethod
    def validate_secret(cls, v: str) -> str:
        if not v or not str(v).strip():
            raise ValueError("Alpaca credentials must not be empty")
        return str(v).strip()

    @field_validator("data_feed")
    @classmethod
    def validate_feed(cls, v: str) -> str:
        if str(v).lower() not in {"iex", "sip"}:
            raise ValueError("data_feed must be 'iex' or 'sip'")
        return str(v).lower()


class EmaCrossoverStrategyConfig(BaseModel):
    ema_short_period: int = Field(default=5, ge=2, le=200)
    ema_long_period: int = Field(default=20, ge=3, le=500)

    @field_validator("ema_long_period")
    @classmethod
    def validate_ema_periods(cls, v: int, info) -> int:
        if "ema_short_period" in info.data and v <= info.data["ema_short_period"]:
            raise ValueError("ema_long_period must be greater than ema_short_period")
        return v


class RiskConfig(BaseModel):
    """Sizing, bracket legs and cooldown."""

    position_notional_fraction: float = Field(default=0.10, gt=0, le=1.0)
    min_notional_usd: float = Field(default=1.0, gt=0)
    take_profit_percent: float = Field(default=0.02, gt=0, le=1.0)
    stop_loss_percent: float = Field(default=0.01, gt=0, lt=1.0)
    trailing_stop_percent: float = Field(default=0.0, ge=0, le=50.0, description="> 0 replaces the fixed stop with a trailing stop (percent, e.g. 1.5)")
    cooldown_minutes: int = Field(default=5, ge=1, le=1440)
    cooldown_on_low_equity: bool = Field(default=False, description="Also cool down when equity * fraction < min notional")


class SchedulerConfig(BaseModel):
    polling_interval_seconds: int = Field(default=15, ge=1, le=3600)
    closed_market_fallback_seconds: int = Field(default=300, ge=1, le=86400)
    min_closed_wait_seconds: int = Field(default=60, ge=1, le=3600)


class TradingConfig(BaseModel):
    symbols: List[str] = Field(default_factory=lambda: ["AAPL", "MSFT"])
    time_in_force: str = Field(default="gtc")
    bars_seed: int = Field(default=100, ge=1, le=10000)
    max_bars: int = Field(default=2000, ge=10, le=100000)
    strategy: EmaCrossoverStrategyConfig = Field(default_factory=EmaCrossoverStrategyConfig)
    risk: RiskConfig = Field(default_factory=RiskConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)

    @field_validator("symbols")
    @classmethod
    def validate_symbols(cls, v: List[Any]) -> List[str]:
        out: List[str] = []
        for x in v or []:
            s = str(x).strip().upper() if x is not None else ""
            if s and s not in out:
                out.append(s)
        if not out:
            raise ValueError("at least one symbol is required")
        return out

    @field_validator("time_in_force")
    @classmethod
    def validate_tif(cls, v: str) -> str:
        if str(v).lower() not in {"day", "gtc", "opg", "cls", "ioc", "fok"}:
            raise ValueError("time_in_force must be one of day, gtc, opg, cls, ioc, fok")
        return str(v).lower()


class ScannerConfig(BaseModel):
    """Asset scanner: cheap tradable symbols inside a local-time window."""

    enabled: bool = Field(default=True)
    start_hour_local: int = Field(default=8, ge=0, le=23)
    end_hour_local: int = Field(default=23, ge=1, le=24)
    price_threshold_usd: float = Field(default=50.0, gt=0)
    symbols: Optional[List[str]] = Field(default=None, description="Explicit scan list; None = all tradable assets")

    @field_validator("end_hour_local")
    @classmethod
    def validate_window(cls, v: int, info) -> int:
        if "start_hour_local" in info.data and v <= info.data["start_hour_local"]:
            raise ValueError("end_hour_local must be greater than start_hour_local")
        return v


class APIConfig(BaseModel):
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000, ge=1024, le=65535)
    cors_origins: List[str] = Field(default=["http://localhost:3000", "http://localhost:5173"])


class MonitoringConfig(BaseModel):
    metrics_path: str = Field(default="data/metrics.json")


class TradingBotConfig(BaseSettings):
    """Main configuration class for the trading bot.

    YAML is parsed as base config, then env overrides for secrets are re-applied.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    environment: str = Field(default="PAPER")
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")

    alpaca: AlpacaConfig
    trading: TradingConfig = Field(default_factory=TradingConfig)
    scanner: ScannerConfig = Field(default_factory=ScannerConfig)
    api: APIConfig = Field(default_factory=APIConfig)
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        if str(v).upper() not in {"PAPER", "LIVE"}:
            raise ValueError("Environment must be 'PAPER' or 'LIVE'")
        return str(v).upper()

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if str(v).upper() not in valid:
            raise ValueError(f"Log level must be one of: {sorted(valid)}")
        return str(v).upper()

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        if str(v).lower() not in {"json", "console"}:
            raise ValueError("log_format must be 'json' or 'console'")
        return str(v).lower()

    @classmethod
    def from_yaml(cls, yaml_path: Path) -> "TradingBotConfig":
        """Load configuration from YAML without polluting environment.

        Steps:
        1) Parse YAML -> base config dict
        2) Apply ENV_OVERRIDES on top (secrets, endpoints, log settings)
        3) Validate into model
        """
        if not yaml_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {yaml_path}")

        try:
            with open(yaml_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in configuration file: {e}")

        for env_name, keys in ENV_OVERRIDES.items():
            value = os.getenv(env_name)
            if not value:
                continue
            section = data
            for key in keys[:-1]:
                child = section.get(key)
                if not isinstance(child, dict):
                    child = {}
                    section[key] = child
                section = child
            section[keys[-1]] = value

        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise ValueError(f"Configuration validation error: {e}")

    def has_real_credentials(self) -> bool:
        return self.alpaca.api_key_id.upper() not in PLACEHOLDER_SECRETS


def load_config(config_path: Optional[Path] = None) -> TradingBotConfig:
    """Load configuration from YAML + .env (env wins for secrets)."""

    load_dotenv(dotenv_path=Path(".env"))

    if config_path is None:
        possible_paths = [Path("config/default.yaml"), Path("config/config.yaml"), Path("config.yaml")]
        for path in possible_paths:
            if path.exists():
                config_path = path
                break
        else:
            raise FileNotFoundError("No configuration file found. Create config/default.yaml or specify config path.")

    return TradingBotConfig.from_yaml(config_path)


# Process-wide config, loaded on first use
_config: Optional[TradingBotConfig] = None


def get_config() -> TradingBotConfig:
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config(config_path: Optional[Path] = None) -> TradingBotConfig:
    global _config
    _config = load_config(config_path)
    return _config
