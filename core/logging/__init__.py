# Structured logging with multi-channel support
import structlog
from typing import Optional, Dict, Any

from core.config.settings import Settings

from .channels import LogChannel
from .enhanced_logging import (
    configure_enhanced_logging,
    get_enhanced_logger,
    get_channel_logger,
    get_logging_statistics,
)


def configure_logging(settings: Settings) -> None:
    """Configure logging system (idempotent)."""
    configure_enhanced_logging(settings)


def get_logger(name: str, component: Optional[str] = None) -> structlog.BoundLogger:
    """Get a structured logger instance."""
    return get_enhanced_logger(name, component)


def get_statistics() -> Dict[str, Any]:
    """Get logging system statistics."""
    return get_logging_statistics()


def bind_account_context(logger: structlog.BoundLogger, account: str) -> structlog.BoundLogger:
    """Bind the account key consistently to a logger."""
    return logger.bind(account=account)


# Channel-specific logger functions
def get_connection_logger_safe(name: str) -> structlog.BoundLogger:
    """Get a connection logger safely."""
    return get_channel_logger(name, LogChannel.CONNECTION)


def get_market_data_logger_safe(name: str) -> structlog.BoundLogger:
    """Get a market data logger safely."""
    return get_channel_logger(name, LogChannel.MARKET_DATA)


def get_account_logger_safe(name: str) -> structlog.BoundLogger:
    """Get an account logger safely."""
    return get_channel_logger(name, LogChannel.ACCOUNT)


def get_ledger_logger_safe(name: str) -> structlog.BoundLogger:
    """Get a ledger logger safely."""
    return get_channel_logger(name, LogChannel.LEDGER)


def get_performance_logger_safe(name: str) -> structlog.BoundLogger:
    """Get a performance logger safely."""
    return get_channel_logger(name, LogChannel.PERFORMANCE)


def get_error_logger_safe(name: str) -> structlog.BoundLogger:
    """Get an error logger safely."""
    return get_channel_logger(name, LogChannel.ERROR)


__all__ = [
    "LogChannel",
    "configure_logging",
    "get_logger",
    "get_statistics",
    "bind_account_context",
    "get_connection_logger_safe",
    "get_market_data_logger_safe",
    "get_account_logger_safe",
    "get_ledger_logger_safe",
    "get_performance_logger_safe",
    "get_error_logger_safe",
]
