"""Validation of envelopes and entity payloads.

Each known entity type has one validation function, selected from a closed
table keyed by the envelope's type tag. Typed payloads and plain mappings go
through the same rules: models are dumped to mappings first.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from datetime import datetime
from typing import Any

from pydantic import BaseModel

from . import ids
from .envelope import Envelope
from .errors import (
    EntityValidationError,
    InvalidIDError,
    InvalidSchemaError,
    InvalidTypeError,
    MissingFieldError,
    MissingSchemaError,
)

LOGGER = logging.getLogger(__name__)

__all__ = [
    "SchemaValidator",
    "validate_schema_version",
    "validate_envelope_quick",
    "validate_envelope_strict",
]

TOURNAMENT_STATUSES = frozenset(
    {"draft", "published", "in_progress", "completed", "cancelled"}
)
EVENT_TYPES = frozenset({"singles", "doubles", "team", "mixed"})
GENDERS = frozenset({"male", "female", "mixed"})
MATCH_STATUSES = frozenset({"scheduled", "in_progress", "completed", "cancelled"})
ENTRY_TYPES = frozenset({"individual", "doubles", "team"})
ENTRY_STATUSES = frozenset({"registered", "confirmed", "withdrawn", "cancelled"})


def _as_mapping(entity_type: str, spec: object) -> Mapping[str, Any]:
    if isinstance(spec, BaseModel):
        return spec.model_dump(mode="python", exclude_none=True)
    if isinstance(spec, Mapping):
        return spec
    raise EntityValidationError(f"{entity_type} spec must be an object")


def _text(spec: Mapping[str, Any], key: str) -> str:
    value = spec.get(key)
    return value if isinstance(value, str) else ""


def _require(spec: Mapping[str, Any], entity_type: str, key: str) -> str:
    value = _text(spec, key)
    if not value:
        raise MissingFieldError(f"{entity_type}.{key} is required")
    return value


def _check_choice(
    spec: Mapping[str, Any], entity_type: str, key: str, allowed: frozenset[str]
) -> None:
    value = _text(spec, key)
    if value and value not in allowed:
        raise EntityValidationError(f"invalid {entity_type}.{key}: {value}")


def _as_datetime(value: object) -> datetime | None:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str) and value:
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    return None


def _validate_tournament(spec: Mapping[str, Any]) -> None:
    _require(spec, "tournament", "name")
    _check_choice(spec, "tournament", "status", TOURNAMENT_STATUSES)
    start = _as_datetime(spec.get("start_date"))
    end = _as_datetime(spec.get("end_date"))
    if start is not None and end is not None:
        try:
            backwards = end < start
        except TypeError:
            # naive vs aware; nothing sensible to compare
            backwards = False
        if backwards:
            raise EntityValidationError("tournament.end_date must be after start_date")


def _validate_event(spec: Mapping[str, Any]) -> None:
    tournament_id = _require(spec, "event", "tournament_id")
    _require(spec, "event", "name")
    if not ids.validate_id(tournament_id):
        raise EntityValidationError("invalid event.tournament_id format")
    _check_choice(spec, "event", "event_type", EVENT_TYPES)
    _check_choice(spec, "event", "gender", GENDERS)


def _validate_match(spec: Mapping[str, Any]) -> None:
    _require(spec, "match", "event_id")
    _require(spec, "match", "match_number")
    _check_choice(spec, "match", "status", MATCH_STATUSES)
    winner = _text(spec, "winner")
    if winner and not ids.validate_id(winner):
        raise EntityValidationError("invalid match.winner format")


def _validate_entry(spec: Mapping[str, Any]) -> None:
    _require(spec, "entry", "event_id")
    _check_choice(spec, "entry", "entry_type", ENTRY_TYPES)
    _check_choice(spec, "entry", "status", ENTRY_STATUSES)
    if not spec.get("players") and not spec.get("team"):
        raise EntityValidationError("entry must have players or team")


def _validate_player(spec: Mapping[str, Any]) -> None:
    if not any(_text(spec, key) for key in ("first_name", "last_name", "display_name")):
        raise MissingFieldError("player must have at least one name field")


_VALIDATORS: dict[str, Callable[[Mapping[str, Any]], None]] = {
    ids.TYPE_TOURNAMENT: _validate_tournament,
    ids.TYPE_EVENT: _validate_event,
    ids.TYPE_MATCH: _validate_match,
    ids.TYPE_ENTRY: _validate_entry,
    ids.TYPE_PLAYER: _validate_player,
}


def validate_schema_version(schema: str) -> None:
    """Check ``schema`` has the form ``ptd.v<N>.<type>@<major>.<minor>.<patch>``.

    Raises:
        InvalidSchemaError: If the string is malformed.
    """

    parts = schema.split("@")
    if len(parts) != 2:
        raise InvalidSchemaError("schema must be in format 'ptd.v1.type@version'")
    schema_part, version_part = parts
    if not schema_part.startswith("ptd.v"):
        raise InvalidSchemaError("schema must start with 'ptd.v'")
    if len(version_part.split(".")) != 3:
        raise InvalidSchemaError("version must be semantic (major.minor.patch)")


class SchemaValidator:
    """Validate envelopes and entity payloads.

    Args:
        strict: Reject entity types without a registered validator. When
            ``False`` such payloads are accepted unchecked.
    """

    def __init__(self, strict: bool = False) -> None:
        self.strict = strict

    def validate_entity(self, entity_type: str, spec: object) -> None:
        """Validate ``spec`` against the rules for ``entity_type``."""

        validator = _VALIDATORS.get(entity_type)
        if validator is None:
            if self.strict:
                raise EntityValidationError(f"unknown entity type: {entity_type}")
            LOGGER.debug("No validator for entity type %s; accepting", entity_type)
            return
        validator(_as_mapping(entity_type, spec))

    def validate_envelope(self, envelope: Envelope[Any]) -> None:
        """Validate envelope structure, schema string and payload."""

        if not envelope.id:
            raise InvalidIDError("missing ID field")
        if not ids.validate_id(envelope.id):
            raise InvalidIDError(f"invalid ID format: {envelope.id}")
        if not envelope.type:
            raise InvalidTypeError("missing type field")
        if not envelope.meta.schema_version:
            raise MissingSchemaError("missing meta.schema")
        validate_schema_version(envelope.meta.schema_version)
        self.validate_entity(envelope.type, envelope.spec)


def validate_envelope_quick(envelope: Envelope[Any]) -> None:
    """Validate with unknown entity types accepted."""

    SchemaValidator(strict=False).validate_envelope(envelope)


def validate_envelope_strict(envelope: Envelope[Any]) -> None:
    """Validate with unknown entity types rejected."""

    SchemaValidator(strict=True).validate_envelope(envelope)
