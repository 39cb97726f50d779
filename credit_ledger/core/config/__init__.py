"""
Configuration package
"""

from .settings import (
    settings,
    Settings,
    DatabaseSettings,
    BillingSettings,
    EmailSettings,
    LoggingSettings,
)

__all__ = [
    "settings",
    "Settings",
    "DatabaseSettings",
    "BillingSettings",
    "EmailSettings",
    "LoggingSettings",
]
