"""
Bridgewatch TOML Configuration Loader

Loads every section of config.toml with environment variable overrides.

Environment variable mapping:
    [database] path                                  -> BRIDGEWATCH_DATABASE_PATH
    [logging] level                                  -> BRIDGEWATCH_LOG_LEVEL
    [withdrawals] challenge_period_seconds           -> BRIDGEWATCH_CHALLENGE_PERIOD_SECONDS
    [withdrawals] dispute_game_finality_delay_seconds -> BRIDGEWATCH_DISPUTE_GAME_FINALITY_DELAY_SECONDS
    [withdrawals] proof_maturity_delay_seconds       -> BRIDGEWATCH_PROOF_MATURITY_DELAY_SECONDS
    [withdrawals] respected_game_type                -> BRIDGEWATCH_RESPECTED_GAME_TYPE
"""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

from ..constants import BRIDGEWATCH_CONFIG, BRIDGEWATCH_DATABASE_PATH
from ..exceptions import ConfigurationError
from ..logger import get_logger
from ..withdrawals.types import WithdrawalPolicy

logger = get_logger(__name__)


def _optional_int(name: str, value: Any) -> Optional[int]:
    """Parse an optional non-negative integer, treating "" and None as unset."""
    if value is None or value == "":
        return None
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"{name} must be an integer, got {value!r}")
    if parsed < 0:
        raise ConfigurationError(f"{name} must be non-negative, got {parsed}")
    return parsed


@dataclass
class DatabaseSectionConfig:
    """[database] section."""
    path: str = str(BRIDGEWATCH_DATABASE_PATH)
    wal_mode: bool = True

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DatabaseSectionConfig":
        return cls(
            path=data.get("path", str(BRIDGEWATCH_DATABASE_PATH)),
            wal_mode=data.get("wal_mode", True),
        )

    def apply_env(self) -> None:
        if v := os.environ.get("BRIDGEWATCH_DATABASE_PATH"):
            self.path = v


@dataclass
class LoggingSectionConfig:
    """[logging] section."""
    level: str = "INFO"
    file_output: bool = True

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LoggingSectionConfig":
        return cls(
            level=data.get("level", "INFO"),
            file_output=data.get("file_output", True),
        )

    def apply_env(self) -> None:
        if v := os.environ.get("BRIDGEWATCH_LOG_LEVEL"):
            self.level = v


@dataclass
class WithdrawalsSectionConfig:
    """
    [withdrawals] section.

    The finality and maturity delays are only needed once a withdrawal is
    proven against a resolved dispute game; leaving them unset is not an
    error until then.
    """
    challenge_period_seconds: Optional[int] = None
    dispute_game_finality_delay_seconds: Optional[int] = None
    proof_maturity_delay_seconds: Optional[int] = None
    respected_game_type: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WithdrawalsSectionConfig":
        return cls(
            challenge_period_seconds=_optional_int(
                "challenge_period_seconds", data.get("challenge_period_seconds")),
            dispute_game_finality_delay_seconds=_optional_int(
                "dispute_game_finality_delay_seconds", data.get("dispute_game_finality_delay_seconds")),
            proof_maturity_delay_seconds=_optional_int(
                "proof_maturity_delay_seconds", data.get("proof_maturity_delay_seconds")),
            respected_game_type=_optional_int(
                "respected_game_type", data.get("respected_game_type")),
        )

    def apply_env(self) -> None:
        if v := os.environ.get("BRIDGEWATCH_CHALLENGE_PERIOD_SECONDS"):
            self.challenge_period_seconds = _optional_int("BRIDGEWATCH_CHALLENGE_PERIOD_SECONDS", v)
        if v := os.environ.get("BRIDGEWATCH_DISPUTE_GAME_FINALITY_DELAY_SECONDS"):
            self.dispute_game_finality_delay_seconds = _optional_int(
                "BRIDGEWATCH_DISPUTE_GAME_FINALITY_DELAY_SECONDS", v)
        if v := os.environ.get("BRIDGEWATCH_PROOF_MATURITY_DELAY_SECONDS"):
            self.proof_maturity_delay_seconds = _optional_int("BRIDGEWATCH_PROOF_MATURITY_DELAY_SECONDS", v)
        if v := os.environ.get("BRIDGEWATCH_RESPECTED_GAME_TYPE"):
            self.respected_game_type = _optional_int("BRIDGEWATCH_RESPECTED_GAME_TYPE", v)

    def to_policy(self) -> WithdrawalPolicy:
        return WithdrawalPolicy(
            challenge_period_seconds=self.challenge_period_seconds,
            dispute_game_finality_delay_seconds=self.dispute_game_finality_delay_seconds,
            proof_maturity_delay_seconds=self.proof_maturity_delay_seconds,
            respected_game_type=self.respected_game_type,
        )


# -----------------------------------------------------------------------
# Top-level unified config
# -----------------------------------------------------------------------

@dataclass
class AppConfig:
    """
    Unified bridgewatch configuration.

    Loads every section of config.toml and applies environment variable
    overrides.
    """
    database: DatabaseSectionConfig = field(default_factory=DatabaseSectionConfig)
    logging: LoggingSectionConfig = field(default_factory=LoggingSectionConfig)
    withdrawals: WithdrawalsSectionConfig = field(default_factory=WithdrawalsSectionConfig)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AppConfig":
        """Create AppConfig from a parsed TOML dict."""
        return cls(
            database=DatabaseSectionConfig.from_dict(data.get("database", {})),
            logging=LoggingSectionConfig.from_dict(data.get("logging", {})),
            withdrawals=WithdrawalsSectionConfig.from_dict(data.get("withdrawals", {})),
        )

    @classmethod
    def from_file(cls, config_path: str) -> "AppConfig":
        """
        Load configuration from a TOML file.

        A missing file is not an error: defaults plus environment overrides
        are used instead.
        """
        path = Path(config_path)
        if not path.exists():
            logger.warning("Config file not found: %s, using defaults", config_path)
            cfg = cls()
            cfg.apply_env()
            return cfg

        with open(path, "rb") as f:
            try:
                raw = tomllib.load(f)
            except tomllib.TOMLDecodeError as e:
                raise ConfigurationError(f"Invalid TOML in {config_path}: {e}") from e
        cfg = cls.from_dict(raw)
        cfg.apply_env()
        logger.info("Loaded configuration from %s", config_path)
        return cfg

    def apply_env(self) -> None:
        """Apply environment variable overrides to all sections."""
        self.database.apply_env()
        self.logging.apply_env()
        self.withdrawals.apply_env()

    def validate(self) -> bool:
        """
        Validate all configuration sections.

        Raises:
            ConfigurationError: on invalid config
        """
        if not self.database.path:
            raise ConfigurationError("database.path must not be empty")
        if self.logging.level.upper() not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ConfigurationError(f"Invalid log level: {self.logging.level}")
        if self.withdrawals.challenge_period_seconds == 0:
            raise ConfigurationError("withdrawals.challenge_period_seconds must be positive")
        return True

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dict (for diagnostics, NOT for re-creating TOML)."""
        return {
            "database": {
                "path": self.database.path,
                "wal_mode": self.database.wal_mode,
            },
            "logging": {
                "level": self.logging.level,
                "file_output": self.logging.file_output,
            },
            "withdrawals": {
                "challenge_period_seconds": self.withdrawals.challenge_period_seconds,
                "dispute_game_finality_delay_seconds": self.withdrawals.dispute_game_finality_delay_seconds,
                "proof_maturity_delay_seconds": self.withdrawals.proof_maturity_delay_seconds,
                "respected_game_type": self.withdrawals.respected_game_type,
            },
        }


def load_config(path: Optional[str] = None) -> AppConfig:
    """
    Load bridgewatch configuration.

    Resolution order:
        1. Explicit *path* argument
        2. BRIDGEWATCH_CONFIG env var
        3. BRIDGEWATCH_CONFIG from .env, then ./config.toml
        4. Defaults (with env overrides)
    """
    if path is None:
        path = os.environ.get("BRIDGEWATCH_CONFIG", str(BRIDGEWATCH_CONFIG))
    return AppConfig.from_file(path)
