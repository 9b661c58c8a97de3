"""Deterministic JSON canonicalization and hashing helpers."""

from __future__ import annotations

import hashlib
import json
from datetime import date, datetime, timezone

from pydantic import BaseModel

__all__ = [
    "canonicalize",
    "canonical_bytes",
    "hash_canonical",
    "format_timestamp",
    "to_canonical_data",
]


def format_timestamp(value: datetime) -> str:
    """Render ``value`` as RFC 3339 UTC with microsecond precision.

    Naive datetimes are taken to be UTC already.
    """

    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    else:
        value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def to_canonical_data(obj: object) -> object:
    """Convert pydantic models into plain data ready for canonical encoding.

    ``None`` valued model fields are dropped so an absent optional field and
    an explicit ``None`` produce the same bytes.
    """

    if isinstance(obj, BaseModel):
        return obj.model_dump(mode="python", by_alias=True, exclude_none=True)
    return obj


class _CanonicalEncoder(json.JSONEncoder):
    """JSON encoder restricted to plain data, datetimes and pydantic models."""

    def default(self, o: object) -> object:
        if isinstance(o, datetime):
            return format_timestamp(o)
        if isinstance(o, date):
            return o.isoformat()
        if isinstance(o, BaseModel):
            return to_canonical_data(o)
        if isinstance(o, tuple):
            return list(o)
        # Reject anything else rather than trusting its __str__/__repr__
        raise TypeError(f"Object of type {type(o).__name__} is not JSON serializable")


def canonicalize(obj: object) -> str:
    """
    Return deterministic JSON serialization for obj.

    Keys are sorted and separators compact so that identical logical content
    always produces identical text, independent of mapping insertion order.
    NaN and infinities are rejected.
    """
    return json.dumps(
        to_canonical_data(obj),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        allow_nan=False,
        cls=_CanonicalEncoder,
    )


def canonical_bytes(obj: object) -> bytes:
    """Return the UTF-8 encoded canonical form of ``obj``."""
    return canonicalize(obj).encode("utf-8")


def hash_canonical(obj: object) -> str:
    """Return SHA-256 hex digest over the canonicalized JSON representation."""
    return hashlib.sha256(canonical_bytes(obj)).hexdigest()
