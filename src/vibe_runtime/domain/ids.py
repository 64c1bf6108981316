"""Prefixed ULID identifiers for agents, checkpoints, sessions and events."""

from __future__ import annotations

import secrets
import time
from collections.abc import Callable
from typing import Final

CROCKFORD_BASE32_ALPHABET: Final[str] = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"
ULID_LENGTH: Final[int] = 26
ULID_RANDOM_BYTES: Final[int] = 10
ULID_MAX_TIMESTAMP_MS: Final[int] = (1 << 48) - 1
_PREFIX_SEPARATOR: Final[str] = "-"

# Stable entity ID prefixes.
AGENT_ID_PREFIX: Final[str] = "agt"
CHECKPOINT_ID_PREFIX: Final[str] = "chk"
SESSION_ID_PREFIX: Final[str] = "ses"
EVENT_ID_PREFIX: Final[str] = "evt"
RUN_ID_PREFIX: Final[str] = "run"

_DECODE_TABLE: Final[dict[str, int]] = {
    char: index for index, char in enumerate(CROCKFORD_BASE32_ALPHABET)
}

_RandBytes = Callable[[int], bytes]

__all__ = [
    "AGENT_ID_PREFIX",
    "CHECKPOINT_ID_PREFIX",
    "EVENT_ID_PREFIX",
    "RUN_ID_PREFIX",
    "SESSION_ID_PREFIX",
    "ULID_LENGTH",
    "generate_agent_id",
    "generate_checkpoint_id",
    "generate_event_id",
    "generate_prefixed_id",
    "generate_run_id",
    "generate_session_id",
    "generate_ulid",
    "parse_ulid_timestamp_ms",
    "validate_prefixed_id",
]


def generate_ulid(
    *,
    timestamp_ms: int | None = None,
    randbytes: _RandBytes | None = None,
) -> str:
    """Generate a ULID as a 26-character uppercase Crockford Base32 string."""
    ts_ms = time.time_ns() // 1_000_000 if timestamp_ms is None else timestamp_ms
    if not 0 <= ts_ms <= ULID_MAX_TIMESTAMP_MS:
        raise ValueError(f"timestamp_ms out of range: {ts_ms}")
    raw = (secrets.token_bytes if randbytes is None else randbytes)(ULID_RANDOM_BYTES)
    if len(raw) != ULID_RANDOM_BYTES:
        raise ValueError(f"randbytes must return exactly {ULID_RANDOM_BYTES} bytes")
    value = (ts_ms << 80) | int.from_bytes(bytes(raw), "big")

    chars = ["0"] * ULID_LENGTH
    for index in range(ULID_LENGTH - 1, -1, -1):
        chars[index] = CROCKFORD_BASE32_ALPHABET[value & 0b11111]
        value >>= 5
    return "".join(chars)


def parse_ulid_timestamp_ms(ulid: str) -> int:
    """Extract the 48-bit millisecond timestamp from a ULID string."""
    if len(ulid) != ULID_LENGTH:
        raise ValueError(f"ulid length must be {ULID_LENGTH}, got {len(ulid)}")
    decoded = 0
    for index, char in enumerate(ulid):
        digit = _DECODE_TABLE.get(char.upper())
        if digit is None:
            raise ValueError(f"invalid ULID character {char!r} at index {index}")
        decoded = (decoded << 5) | digit
    return decoded >> 80


def generate_prefixed_id(prefix: str, *, timestamp_ms: int | None = None) -> str:
    """Generate an ID in the form ``<prefix>-<ulid>``."""
    if not prefix or _PREFIX_SEPARATOR in prefix:
        raise ValueError(f"invalid id prefix {prefix!r}")
    return f"{prefix}{_PREFIX_SEPARATOR}{generate_ulid(timestamp_ms=timestamp_ms)}"


def validate_prefixed_id(id_str: str, expected_prefix: str) -> None:
    """Validate ``<prefix>-<ulid>`` format and enforce ``expected_prefix``."""
    expected_lead = f"{expected_prefix}{_PREFIX_SEPARATOR}"
    if not isinstance(id_str, str) or not id_str.startswith(expected_lead):
        raise ValueError(f"expected prefix '{expected_lead}' in {id_str!r}")
    try:
        parse_ulid_timestamp_ms(id_str[len(expected_lead) :])
    except ValueError as exc:
        raise ValueError(f"invalid ULID part for prefix '{expected_prefix}': {exc}") from exc


def generate_agent_id() -> str:
    return generate_prefixed_id(AGENT_ID_PREFIX)


def generate_checkpoint_id() -> str:
    return generate_prefixed_id(CHECKPOINT_ID_PREFIX)


def generate_session_id() -> str:
    return generate_prefixed_id(SESSION_ID_PREFIX)


def generate_event_id() -> str:
    return generate_prefixed_id(EVENT_ID_PREFIX)


def generate_run_id() -> str:
    return generate_prefixed_id(RUN_ID_PREFIX)
