"""
Bridgewatch Configuration

Loads config.toml at startup. Environment variables override TOML values.
"""

from .loader import (
    AppConfig,
    DatabaseSectionConfig,
    LoggingSectionConfig,
    WithdrawalsSectionConfig,
    load_config,
)

__all__ = [
    "AppConfig",
    "DatabaseSectionConfig",
    "LoggingSectionConfig",
    "WithdrawalsSectionConfig",
    "load_config",
]
