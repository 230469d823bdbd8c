# structlog on top of stdlib logging, with one rotating file per channel
import logging
import logging.handlers
import re
import sys
from typing import Any, Dict, List, Optional

import structlog

from core.config.settings import Settings
from .channels import (
    LogChannel,
    create_log_directory_structure,
    get_channel_config,
    get_channel_for_component,
    get_channel_statistics,
)

_logger_manager: Optional["EnhancedLoggerManager"] = None

# configure_enhanced_logging() only runs once per process
_enhanced_logging_configured = False

_SIZE_PATTERN = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([KMG]?)B?\s*$", re.IGNORECASE)
_SIZE_UNITS = {"": 1, "K": 1024, "M": 1024 ** 2, "G": 1024 ** 3}


def parse_size(size: str) -> int:
    """'50MB' -> bytes. Raises ValueError for anything else."""
    match = _SIZE_PATTERN.match(size)
    if match is None:
        raise ValueError(f"Invalid log file size: {size!r}")
    number, unit = match.groups()
    return int(float(number) * _SIZE_UNITS[unit.upper()])


class ChannelFilter(logging.Filter):
    """Pass only records logged on ``expected_channel``.

    structlog records reach handlers with the event dict as ``record.msg``
    (see ``ProcessorFormatter.wrap_for_formatter``); plain stdlib records may
    carry ``channel`` as an extra attribute.
    """

    def __init__(self, expected_channel: str):
        super().__init__()
        self.expected_channel = expected_channel

    def filter(self, record: logging.LogRecord) -> bool:
        channel = getattr(record, "channel", None)
        if channel is None and isinstance(record.msg, dict):
            channel = record.msg.get("channel")
        return channel is not None and str(channel) == self.expected_channel


class EnhancedLoggerManager:
    """Installs console and channel handlers and hands out bound loggers."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.config = settings.logging
        self.channel_handlers: Dict[LogChannel, logging.Handler] = {}
        self.configured_loggers: Dict[str, structlog.stdlib.BoundLogger] = {}

        root = logging.getLogger()
        root.setLevel(self.config.level.upper())

        if self.config.console_enabled:
            self._install_console_handler(root)
        if self.config.file_enabled:
            create_log_directory_structure(settings.logs_dir)
            if self.config.multi_channel_enabled:
                self._install_channel_handlers(root)

        structlog.configure(
            processors=self._shared_processors() + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
            logger_factory=structlog.stdlib.LoggerFactory(),
            wrapper_class=structlog.stdlib.BoundLogger,
            cache_logger_on_first_use=True,
        )

    # Handlers

    @staticmethod
    def _formatter(renderer) -> structlog.stdlib.ProcessorFormatter:
        # foreign_pre_chain covers records from plain stdlib loggers (e.g. websockets)
        return structlog.stdlib.ProcessorFormatter(
            processor=renderer,
            foreign_pre_chain=[
                structlog.stdlib.add_log_level,
                structlog.stdlib.add_logger_name,
                structlog.processors.TimeStamper(fmt="iso"),
            ],
        )

    def _install_console_handler(self, root: logging.Logger) -> None:
        if any(isinstance(h, logging.StreamHandler) and getattr(h, "stream", None) is sys.stdout
               for h in root.handlers):
            return
        renderer = (
            structlog.processors.JSONRenderer()
            if self.config.console_json_format
            else structlog.dev.ConsoleRenderer()
        )
        handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(self.config.level.upper())
        handler.setFormatter(self._formatter(renderer))
        root.addHandler(handler)

    def _install_channel_handlers(self, root: logging.Logger) -> None:
        renderer = (
            structlog.processors.JSONRenderer()
            if self.config.json_format
            else structlog.processors.KeyValueRenderer(key_order=["event", "level", "timestamp"])
        )
        for channel in LogChannel:
            channel_config = get_channel_config(channel)
            handler = logging.handlers.RotatingFileHandler(
                filename=channel_config.get_file_path(self.settings.logs_dir),
                maxBytes=parse_size(channel_config.max_bytes),
                backupCount=channel_config.backup_count,
                encoding="utf-8",
            )
            handler.setLevel(self._level_for(channel, channel_config.level))
            handler.setFormatter(self._formatter(renderer))
            if channel != LogChannel.ERROR:
                handler.addFilter(ChannelFilter(channel.value))
            self.channel_handlers[channel] = handler

        # The error file collects ERROR+ from everywhere
        self._attach(root, self.channel_handlers[LogChannel.ERROR])

        # websockets logs through stdlib; only its warnings are interesting
        ws_logger = logging.getLogger("websockets")
        self._attach(ws_logger, self.channel_handlers[LogChannel.CONNECTION])
        if ws_logger.level == logging.NOTSET:
            ws_logger.setLevel(logging.WARNING)

    def _level_for(self, channel: LogChannel, default: str) -> str:
        overrides = {
            LogChannel.CONNECTION: self.config.connection_level,
            LogChannel.MARKET_DATA: self.config.market_data_level,
            LogChannel.ACCOUNT: self.config.account_level,
        }
        return overrides.get(channel, default).upper()

    @staticmethod
    def _attach(logger: logging.Logger, handler: logging.Handler) -> None:
        if handler not in logger.handlers:
            logger.addHandler(handler)

    # structlog

    def _shared_processors(self) -> List[Any]:
        settings = self.settings
        redact_keys = {key.lower() for key in self.config.redact_keys}

        def add_standard_context(logger, method_name, event_dict):
            event_dict.setdefault("service", settings.app_name)
            event_dict.setdefault("version", settings.version)
            event_dict.setdefault("env", getattr(settings.environment, "value", str(settings.environment)))
            return event_dict

        def scrub(value):
            if isinstance(value, dict):
                return {
                    k: "[REDACTED]" if isinstance(k, str) and k.lower() in redact_keys else scrub(v)
                    for k, v in value.items()
                }
            if isinstance(value, list):
                return [scrub(v) for v in value]
            return value

        def redact_sensitive(logger, method_name, event_dict):
            return scrub(event_dict)

        return [
            add_standard_context,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            redact_sensitive,
        ]

    # Loggers

    def get_logger(self, name: str, component: Optional[str] = None) -> structlog.stdlib.BoundLogger:
        cache_key = f"{name}:{component}"
        logger = self.configured_loggers.get(cache_key)
        if logger is None:
            if component:
                logger = self.get_channel_logger(name, get_channel_for_component(component)).bind(component=component)
            else:
                logger = structlog.get_logger(name)
            self.configured_loggers[cache_key] = logger
        return logger

    def get_channel_logger(self, name: str, channel: LogChannel) -> structlog.stdlib.BoundLogger:
        handler = self.channel_handlers.get(channel)
        if handler is not None:
            self._attach(logging.getLogger(name), handler)
        return structlog.get_logger(name).bind(channel=channel.value)

    def get_statistics(self) -> Dict[str, Any]:
        stats = {
            "total_loggers": len(self.configured_loggers),
            "console_logging_enabled": self.config.console_enabled,
            "file_logging_enabled": self.config.file_enabled,
            "multi_channel_enabled": self.config.multi_channel_enabled,
            "json_format": self.config.json_format,
            "logs_directory": self.settings.logs_dir,
            "channel_handlers": {channel.value: channel in self.channel_handlers for channel in LogChannel},
        }
        if self.config.multi_channel_enabled:
            stats.update(get_channel_statistics())
        return stats


def configure_enhanced_logging(settings: Settings) -> None:
    """Set up handlers and structlog once; later calls are ignored."""
    global _logger_manager, _enhanced_logging_configured
    if _enhanced_logging_configured:
        return
    _logger_manager = EnhancedLoggerManager(settings)
    _enhanced_logging_configured = True


def get_enhanced_logger(name: str, component: Optional[str] = None) -> structlog.stdlib.BoundLogger:
    if _logger_manager is not None:
        return _logger_manager.get_logger(name, component)
    # Before configuration: structlog defaults, channel context still bound
    logger = structlog.get_logger(name)
    if component:
        logger = logger.bind(component=component, channel=get_channel_for_component(component).value)
    return logger


def get_channel_logger(name: str, channel: LogChannel) -> structlog.stdlib.BoundLogger:
    if _logger_manager is not None:
        return _logger_manager.get_channel_logger(name, channel)
    return structlog.get_logger(name).bind(channel=channel.value)


def get_logging_statistics() -> Dict[str, Any]:
    if _logger_manager is None:
        return {"error": "Logger manager not initialized"}
    return _logger_manager.get_statistics()
