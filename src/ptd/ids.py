"""Identifier generation for PTD entities.

Identifiers take the form ``ptd:<entity-type>:<raw-id>`` where the raw id is
a 26 character Crockford base32 ULID: a 48-bit millisecond timestamp followed
by 80 bits of entropy. Raw ids sort lexicographically in generation order.
"""

from __future__ import annotations

import secrets
import threading
import time
from datetime import datetime, timezone
from typing import Callable, NamedTuple

from .errors import InvalidIDError

__all__ = [
    "NAMESPACE",
    "ParsedID",
    "IDGenerator",
    "parse_id",
    "validate_id",
    "is_valid_raw",
    "raw_id_timestamp",
    "default_generator",
    "generate_id",
    "generate_raw_id",
    "TYPE_TOURNAMENT",
    "TYPE_EVENT",
    "TYPE_MATCH",
    "TYPE_ENTRY",
    "TYPE_PLAYER",
    "TYPE_ROUND",
    "TYPE_BRACKET",
    "TYPE_VENUE",
    "TYPE_ORGANIZER",
    "TYPE_OFFICIAL",
]

NAMESPACE = "ptd"

TYPE_TOURNAMENT = "tournament"
TYPE_EVENT = "event"
TYPE_MATCH = "match"
TYPE_ENTRY = "entry"
TYPE_PLAYER = "player"
TYPE_ROUND = "round"
TYPE_BRACKET = "bracket"
TYPE_VENUE = "venue"
TYPE_ORGANIZER = "organizer"
TYPE_OFFICIAL = "official"

_ALPHABET = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"
_ALPHABET_SET = frozenset(_ALPHABET)
_RAW_LENGTH = 26
_ENTROPY_BITS = 80
_MAX_ENTROPY = (1 << _ENTROPY_BITS) - 1
_MAX_TIMESTAMP = (1 << 48) - 1


class ParsedID(NamedTuple):
    """Components of a parsed identifier."""

    namespace: str
    entity_type: str
    raw_id: str


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


def _random_entropy() -> int:
    return int.from_bytes(secrets.token_bytes(_ENTROPY_BITS // 8), "big")


def _encode(value: int) -> str:
    chars: list[str] = []
    for _ in range(_RAW_LENGTH):
        chars.append(_ALPHABET[value & 0x1F])
        value >>= 5
    return "".join(reversed(chars))


class IDGenerator:
    """Thread-safe generator of monotonic ULID-backed identifiers.

    Args:
        clock: Callable returning the current Unix time in milliseconds.
            Defaults to the system clock.
        entropy: Callable returning a fresh 80-bit random integer. Defaults to
            :mod:`secrets`.

    Calls landing in the same millisecond reuse the previous entropy plus
    one, so raw ids from one instance are strictly increasing even when the
    clock does not advance or steps backwards.
    """

    def __init__(
        self,
        clock: Callable[[], int] | None = None,
        entropy: Callable[[], int] | None = None,
    ) -> None:
        self._clock = clock or _now_ms
        self._entropy = entropy or _random_entropy
        self._lock = threading.Lock()
        self._last_ms = -1
        self._last_entropy = 0

    def _next_value(self) -> int:
        with self._lock:
            now = self._clock()
            if now > self._last_ms:
                self._last_ms = now
                self._last_entropy = self._entropy() & _MAX_ENTROPY
            else:
                self._last_entropy += 1
                if self._last_entropy > _MAX_ENTROPY:
                    # entropy exhausted for this tick: move to the next one
                    self._last_ms += 1
                    self._last_entropy = self._entropy() & _MAX_ENTROPY
            if self._last_ms > _MAX_TIMESTAMP:
                raise OverflowError("timestamp exceeds 48-bit ULID range")
            return (self._last_ms << _ENTROPY_BITS) | self._last_entropy

    def generate_raw(self) -> str:
        """Return a new uppercase raw id."""

        return _encode(self._next_value())

    def generate(self, entity_type: str) -> str:
        """Return a new ``ptd:<entity_type>:<raw-id>`` identifier."""

        if not entity_type or ":" in entity_type:
            raise InvalidIDError(f"invalid entity type for identifier: {entity_type!r}")
        return f"{NAMESPACE}:{entity_type}:{self.generate_raw().lower()}"


def parse_id(identifier: str) -> ParsedID:
    """Split ``identifier`` into namespace, entity type and raw id.

    Raises:
        InvalidIDError: If the identifier does not have exactly three
            colon-delimited parts or the namespace is not ``ptd``.
    """

    parts = identifier.split(":")
    if len(parts) != 3:
        raise InvalidIDError(
            f"expected format ptd:type:identifier, got {identifier!r}"
        )
    if parts[0] != NAMESPACE:
        raise InvalidIDError(f"ID must start with 'ptd:', got {identifier!r}")
    return ParsedID(parts[0], parts[1], parts[2])


def validate_id(identifier: str) -> bool:
    """Return ``True`` when ``identifier`` parses as a PTD identifier."""

    try:
        parse_id(identifier)
    except InvalidIDError:
        return False
    return True


def is_valid_raw(value: str) -> bool:
    """Return ``True`` when ``value`` is a well-formed raw id (any case)."""

    if len(value) != _RAW_LENGTH or not value.isascii():
        return False
    upper = value.upper()
    if not _ALPHABET_SET.issuperset(upper):
        return False
    # 26 base32 digits carry 130 bits; the top two must be zero
    return upper[0] <= "7"


def raw_id_timestamp(value: str) -> datetime:
    """Return the UTC creation time embedded in a raw id."""

    if not is_valid_raw(value):
        raise InvalidIDError(f"not a raw id: {value!r}")
    number = 0
    for char in value.upper():
        number = (number << 5) | _ALPHABET.index(char)
    millis = number >> _ENTROPY_BITS
    return datetime.fromtimestamp(millis / 1000, tz=timezone.utc)


_default_generator: IDGenerator | None = None
_default_lock = threading.Lock()


def default_generator() -> IDGenerator:
    """Return the process-wide generator, constructing it on first use."""

    global _default_generator
    if _default_generator is None:
        with _default_lock:
            if _default_generator is None:
                _default_generator = IDGenerator()
    return _default_generator


def generate_id(entity_type: str) -> str:
    """Generate an identifier with the process-wide generator."""

    return default_generator().generate(entity_type)


def generate_raw_id() -> str:
    """Generate a raw id with the process-wide generator."""

    return default_generator().generate_raw()
