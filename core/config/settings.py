# Complete settings with ALL required sections
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import BaseModel, Field, field_validator
from enum import Enum
from typing import List, Union
from pathlib import Path


class Environment(str, Enum):
    DEVELOPMENT = "development"
    PRODUCTION = "production"
    TESTING = "testing"


class ConnectionSettings(BaseModel):
    """Persistent websocket connection to the exchange info/stream API"""
    ws_url: str = "wss://api.hyperliquid-testnet.xyz/ws"
    open_timeout_seconds: float = 10.0
    # Protocol-level keepalive handled by the websocket library
    ping_interval_seconds: float | None = 20.0
    ping_timeout_seconds: float | None = 10.0
    # Application-level request/response correlation
    request_timeout_seconds: float = 15.0
    # Liveness loop (exchangeStatus round trip)
    liveness_interval_seconds: float = 10.0
    liveness_timeout_seconds: float = 5.0


class SubscriptionSettings(BaseModel):
    # Send an explicit upstream unsubscribe once the last local handler detaches
    unsubscribe_upstream: bool = True


class MarketDataSettings(BaseModel):
    top_k: int = 10
    rank_metric: str = "day_notional_volume"  # day_notional_volume | open_interest | percent_change | funding_rate
    min_update_interval_ms: int = 1000

    @field_validator('top_k')
    @classmethod
    def validate_top_k(cls, v):
        if v <= 0:
            raise ValueError("top_k must be positive")
        return v


class LatencySettings(BaseModel):
    """Connectivity indicator buckets"""
    strong_below_ms: float = 1000.0
    moderate_below_ms: float = 3000.0


class AccountSettings(BaseModel):
    # Account addresses initialized at startup and kept in sync with live prices
    watch: Union[str, List[str]] = Field(default_factory=list)

    @field_validator('watch', mode='before')
    @classmethod
    def parse_watch(cls, v):
        """Parse comma-separated string or return list as-is"""
        if isinstance(v, str):
            return [address.strip() for address in v.split(',') if address.strip()]
        return v


class LoggingSettings(BaseModel):
    # Core logging settings
    level: str = "INFO"
    json_format: bool = True

    # Console logging
    console_enabled: bool = True
    console_json_format: bool = False  # Plain text for console by default

    # File logging
    file_enabled: bool = False
    logs_dir: str = "logs"
    file_max_size: str = "50MB"
    file_backup_count: int = 5

    # Multi-channel logging
    multi_channel_enabled: bool = True

    # Channel-specific levels
    connection_level: str = "INFO"
    market_data_level: str = "INFO"
    account_level: str = "INFO"

    # Redaction
    redact_keys: list[str] = [
        "authorization", "access_token", "refresh_token", "api_key", "api_secret",
        "password", "secret", "token", "private_key", "signature",
    ]


class Settings(BaseSettings):
    """Main engine settings, loaded from environment variables"""
    model_config = SettingsConfigDict(
        env_file=".env",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore"
    )

    app_name: str = "Agent State Engine"
    version: str = "0.3.0"
    environment: Environment = Environment.DEVELOPMENT

    connection: ConnectionSettings = ConnectionSettings()
    subscriptions: SubscriptionSettings = SubscriptionSettings()
    market_data: MarketDataSettings = MarketDataSettings()
    latency: LatencySettings = LatencySettings()
    accounts: AccountSettings = AccountSettings()
    logging: LoggingSettings = LoggingSettings()

    @property
    def logs_dir(self) -> str:
        """Get absolute path to logs directory"""
        return self.logging.logs_dir

    @property
    def base_dir(self) -> str:
        """Get base application directory dynamically"""
        # Go up 2 levels from core/config/settings.py to reach project root
        return str(Path(__file__).resolve().parents[2])


# No global settings instance - use dependency injection instead
