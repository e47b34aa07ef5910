"""
Bridgewatch Encoding Helpers

Conversions between the values the store holds (hex text, integer unix
seconds, fixed-width nonce text, ABI words) and the Python values the read
model exposes.
"""

from datetime import datetime, timezone
from typing import Optional

from eth_utils import big_endian_to_int, decode_hex, encode_hex, is_hex

from .constants import WITHDRAWAL_NONCE_HEX_WIDTH, WITHDRAWAL_NONCE_MASK
from .exceptions import InvalidArgumentError

ABI_WORD_SIZE = 32


def normalize_hash(value) -> str:
    """
    Canonical form of a hash as stored: lowercase, 0x-prefixed hex.

    Accepts raw bytes or a hex string with or without prefix.
    """
    if isinstance(value, (bytes, bytearray)):
        return encode_hex(bytes(value))
    if not isinstance(value, str) or not value or not is_hex(value):
        raise InvalidArgumentError(f"Not a hex hash: {value!r}")
    try:
        return encode_hex(decode_hex(value))
    except ValueError as e:
        raise InvalidArgumentError(f"Not a hex hash: {value!r}") from e


def decode_uint256_word(data: bytes, word_index: int = 0) -> int:
    """
    Decode one big-endian ABI ``uint256`` word from ``data``.

    Raises:
        ValueError: if ``data`` is shorter than the requested word.
    """
    start = word_index * ABI_WORD_SIZE
    end = start + ABI_WORD_SIZE
    if data is None or len(data) < end:
        raise ValueError(
            f"ABI data too short for word {word_index}: {0 if data is None else len(data)} bytes"
        )
    return big_endian_to_int(bytes(data[start:end]))


def external_nonce(raw_nonce: int) -> int:
    """Strip the version encoded in the upper 16 bits of a withdrawal nonce."""
    return raw_nonce & WITHDRAWAL_NONCE_MASK


def nonce_to_db(raw_nonce: int) -> str:
    """Fixed-width hex so that text ordering matches numeric ordering."""
    if raw_nonce < 0 or raw_nonce.bit_length() > WITHDRAWAL_NONCE_HEX_WIDTH * 4:
        raise InvalidArgumentError(f"Nonce out of uint256 range: {raw_nonce}")
    return format(raw_nonce, f"0{WITHDRAWAL_NONCE_HEX_WIDTH}x")


def nonce_from_db(value: str) -> int:
    return int(value, 16)


def timestamp_to_db(value: Optional[datetime]) -> Optional[int]:
    if value is None:
        return None
    if value.tzinfo is None:
        raise InvalidArgumentError(f"Naive datetime is ambiguous: {value!r}")
    return int(value.timestamp())


def timestamp_from_db(value: Optional[int]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc)


def require_block_number(name: str, value) -> int:
    """Reject anything but a non-negative integer block or batch number."""
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise InvalidArgumentError(f"{name} must be a non-negative integer, got {value!r}")
    return value
