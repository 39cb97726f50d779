"""
Main logging module for the credit ledger worker
"""

import logging
from typing import Optional, Dict, Any

from .config import LoggingConfig, FileHandlerConfig, ConsoleHandlerConfig
from .handlers import FileHandler, ConsoleHandler

# Global logger cache
_loggers: Dict[str, logging.Logger] = {}


class StructuredLogger:
    """Wrapper around a standard logger that renders keyword arguments as key=value pairs"""

    def __init__(self, logger: logging.Logger, context: Optional[Dict[str, Any]] = None):
        self._logger = logger
        self._context = context or {}

    def bind(self, **context) -> "StructuredLogger":
        """Return a logger that repeats `context` on every line"""
        merged = dict(self._context)
        merged.update(context)
        return StructuredLogger(self._logger, merged)

    def _format_message(self, message: str, **kwargs) -> str:
        fields = dict(self._context)
        fields.update(kwargs)
        if not fields:
            return message

        structured_parts = []
        for key, value in fields.items():
            if value is None:
                continue
            if isinstance(value, (dict, list)):
                structured_parts.append(f"{key}={str(value)}")
            elif isinstance(value, str) and " " in value:
                structured_parts.append(f'{key}="{value}"')
            else:
                structured_parts.append(f"{key}={value}")

        if structured_parts:
            return f"{message} | {' | '.join(structured_parts)}"
        return message

    def debug(self, message: str, **kwargs):
        self._logger.debug(self._format_message(message, **kwargs))

    def info(self, message: str, **kwargs):
        self._logger.info(self._format_message(message, **kwargs))

    def warning(self, message: str, **kwargs):
        self._logger.warning(self._format_message(message, **kwargs))

    def error(self, message: str, **kwargs):
        self._logger.error(self._format_message(message, **kwargs))

    def critical(self, message: str, **kwargs):
        self._logger.critical(self._format_message(message, **kwargs))

    def exception(self, message: str, **kwargs):
        self._logger.exception(self._format_message(message, **kwargs))


def setup_logging(config: Optional[LoggingConfig] = None) -> None:
    """Install console and file handlers on the root logger"""
    if config is None:
        config = LoggingConfig()

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    level = getattr(logging, config.level.upper())
    root_logger.setLevel(level)

    if config.file.enabled:
        if config.file.app_log_enabled:
            root_logger.addHandler(
                FileHandler.create_app_handler(
                    log_dir=config.file.log_dir,
                    max_bytes=config.file.max_file_size,
                    backup_count=config.file.backup_count,
                    level=level,
                    formatter_type=config.format,
                )
            )
        if config.file.error_log_enabled:
            root_logger.addHandler(
                FileHandler.create_error_handler(
                    log_dir=config.file.log_dir,
                    max_bytes=config.file.max_file_size,
                    backup_count=config.file.backup_count,
                    formatter_type=config.format,
                )
            )

    if config.console.enabled:
        root_logger.addHandler(
            ConsoleHandler.create_handler(
                level=getattr(logging, config.console.level.upper()),
                formatter_type=config.format,
            )
        )

    # Quiet noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

    logging.info("Logging system initialized")


def logging_config_from_settings(logging_settings) -> LoggingConfig:
    """Build a LoggingConfig from LoggingSettings"""
    return LoggingConfig(
        level=logging_settings.LOG_LEVEL,
        format=logging_settings.LOG_FORMAT,
        file=FileHandlerConfig(**logging_settings.LOGGING["file"]),
        console=ConsoleHandlerConfig(**logging_settings.LOGGING["console"]),
    )


def get_logger(name: str) -> StructuredLogger:
    """Get a structured logger instance"""
    if name not in _loggers:
        _loggers[name] = logging.getLogger(name)
    return StructuredLogger(_loggers[name])
