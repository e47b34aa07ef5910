"""
Bridgewatch Constants

This module consolidates global constants and environment configuration
used throughout the codebase. Constants are organized by category for easy
reference and maintenance.
"""
import ast
from dotenv import dotenv_values

# =============================================================================
# ENVIRONMENT CONFIGURATION
# =============================================================================
# Load environment variables once at module import
_config = dotenv_values(".env")

STORE_DEFAULTS = {
    'BRIDGEWATCH_DATABASE_PATH':       './data/bridgewatch.db',
    'BRIDGEWATCH_CONFIG':              'config.toml',
}

LOGGER_DEFAULTS = {
    'LOG_LEVEL':                       'INFO',
    'LOG_FORMAT':                      '%(asctime)s - %(levelname)s - %(name)s - %(message)s',
    'LOG_DATE_FORMAT':                 '%Y-%m-%dT%H:%M:%S',
    'LOG_CONSOLE_HIGHLIGHTING':        'True',
    'LOG_FILE_OUTPUT':                 'True',
}

LOG_MAX_FILE_SIZE = 10 * 1024 * 1024 # 10MB
LOG_BACKUP_COUNT = 5


# ==================================================================================
# ROLLUP (BATCH / CONFIRMATION) CONSTANTS
# ==================================================================================

# First id handed out by the lifecycle transaction allocator on an empty table
FIRST_LIFECYCLE_TRANSACTION_ID = 1


# ==================================================================================
# WITHDRAWAL CONSTANTS
# ==================================================================================
# Legacy (pre fault proofs) challenge period used when none is configured
DEFAULT_CHALLENGE_PERIOD_SECONDS = 604_800  # 7 days

# Dispute game status value meaning DEFENDER_WINS
GAME_STATUS_DEFENDER_WINS = 2

# Number of most recent games of the respected type inspected for state roots
RESPECTED_GAMES_SCAN_LIMIT = 100

# The upper 16 bits of a withdrawal nonce carry the message version
WITHDRAWAL_NONCE_BITS = 240
WITHDRAWAL_NONCE_MASK = (1 << WITHDRAWAL_NONCE_BITS) - 1

# Width of the zero-padded hex nonce column (256 bits)
WITHDRAWAL_NONCE_HEX_WIDTH = 64

DEFAULT_WITHDRAWALS_PAGE_SIZE = 50


# ==================================================================================
# CONFIGURATION WRAPPERS
# ==================================================================================
class ConfigString(str):
    """
    String subclass that stores a default value.
    """
    def __new__(cls, value, default):
        obj = str.__new__(cls, value)
        obj._default = default
        return obj

    def default(self):
        return self._default

class ConfigBool(int):
    """
    Int subclass acting as a boolean that stores a default value.
    """
    def __new__(cls, value, default):
        obj = int.__new__(cls, bool(value))
        obj._default = default
        return obj

    def default(self):
        return self._default

    def __repr__(self):
        return str(bool(self))

    def __str__(self):
        return str(bool(self))

    def __eq__(self, other):
        return bool(self) == other

    __hash__ = int.__hash__


# ==================================================================================
# DYNAMIC CONFIGURATION LOADING
# ==================================================================================
DEFAULTS = STORE_DEFAULTS | LOGGER_DEFAULTS
namespace = globals()

def parse_bool(v):
    """
    Convert "True"/"False" (any casing, with surrounding whitespace) into bool.
    Avoids exceptions by only calling ast.literal_eval for known literals.
    """
    if not isinstance(v, str):
        return v
    s = v.strip()
    if not s:
        return v
    if s.casefold() in {"true", "false"}:
        return ast.literal_eval(s.title())
    return v

for key, default_raw in DEFAULTS.items():
    # dotenv_values returns strings or None. None is treated as missing.
    raw = _config.get(key)
    value_raw = default_raw if raw is None else raw

    value = parse_bool(value_raw)
    default_val = parse_bool(default_raw)

    if isinstance(value, bool):
        namespace[key] = ConfigBool(value, default_val)
    else:
        namespace[key] = ConfigString(value_raw, default_val)
