"""
Logging module for the credit ledger worker
"""

from .logger import get_logger, setup_logging, logging_config_from_settings, StructuredLogger
from .formatters import StructuredFormatter, JSONFormatter, ConsoleFormatter, SimpleFormatter
from .handlers import FileHandler, ConsoleHandler
from .config import LoggingConfig

__all__ = [
    "get_logger",
    "setup_logging",
    "logging_config_from_settings",
    "StructuredLogger",
    "StructuredFormatter",
    "JSONFormatter",
    "ConsoleFormatter",
    "SimpleFormatter",
    "FileHandler",
    "ConsoleHandler",
    "LoggingConfig",
]
