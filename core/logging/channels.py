"""
Log channels of the state engine.

Each channel is written to its own rotating file when file logging is on; a
record is routed by the ``channel`` key bound on its structlog logger.
"""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional


class LogChannel(str, Enum):
    APPLICATION = "application"  # Orchestrator, CLI
    CONNECTION = "connection"    # Socket lifecycle, requests, subscriptions
    MARKET_DATA = "market_data"  # Ranked assets and the mids stream
    ACCOUNT = "account"          # Account snapshots and live PnL
    LEDGER = "ledger"            # Ledger reconstruction
    PERFORMANCE = "performance"  # Liveness round trips
    ERROR = "error"              # Every ERROR+ record, whatever its channel


@dataclass(frozen=True)
class ChannelConfig:
    """File and rotation settings of one channel."""

    channel: LogChannel
    level: str = "INFO"
    max_bytes: str = "50MB"
    backup_count: int = 10
    retention_days: Optional[int] = 30

    @property
    def filename(self) -> str:
        return f"{self.channel.value}.log"

    def get_file_path(self, logs_dir: str) -> Path:
        return Path(logs_dir) / self.filename


CHANNEL_CONFIGS: Dict[LogChannel, ChannelConfig] = {
    config.channel: config
    for config in (
        ChannelConfig(LogChannel.APPLICATION, max_bytes="100MB"),
        ChannelConfig(LogChannel.CONNECTION, retention_days=14),
        # Mids ticks make this the noisiest channel
        ChannelConfig(LogChannel.MARKET_DATA, max_bytes="200MB", backup_count=5, retention_days=7),
        ChannelConfig(LogChannel.ACCOUNT),
        ChannelConfig(LogChannel.LEDGER, retention_days=90),
        ChannelConfig(LogChannel.PERFORMANCE, retention_days=14),
        ChannelConfig(LogChannel.ERROR, level="ERROR", backup_count=20, retention_days=90),
    )
}

COMPONENT_CHANNELS: Dict[str, LogChannel] = {
    "connection": LogChannel.CONNECTION,
    "subscriptions": LogChannel.CONNECTION,
    "requests": LogChannel.CONNECTION,
    "liveness": LogChannel.PERFORMANCE,
    "performance": LogChannel.PERFORMANCE,
    "market_data": LogChannel.MARKET_DATA,
    "account_state": LogChannel.ACCOUNT,
    "ledger": LogChannel.LEDGER,
}


def get_channel_for_component(component: str) -> LogChannel:
    """Unknown components log to the application channel."""
    return COMPONENT_CHANNELS.get(component, LogChannel.APPLICATION)


def get_channel_config(channel: LogChannel) -> ChannelConfig:
    return CHANNEL_CONFIGS[channel]


def create_log_directory_structure(logs_dir: str) -> None:
    Path(logs_dir).mkdir(parents=True, exist_ok=True)


def get_channel_statistics() -> Dict[str, Any]:
    return {
        "total_channels": len(CHANNEL_CONFIGS),
        "channels": {
            channel.value: {
                "filename": config.filename,
                "level": config.level,
                "max_bytes": config.max_bytes,
                "backup_count": config.backup_count,
                "retention_days": config.retention_days,
            }
            for channel, config in CHANNEL_CONFIGS.items()
        },
    }
