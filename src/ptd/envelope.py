"""Universal envelope wrapped around every PTD entity.

An envelope carries an identifier, an entity type tag, the entity payload
(``spec``) and metadata. Envelopes and package manifests both implement the
:class:`Signable` capability used by :mod:`ptd.signing`.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Generic, Protocol, TypeVar, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field

from .canonical import canonical_bytes
from .ids import IDGenerator, default_generator
from .settings import get_settings

__all__ = [
    "SIGNATURE_ALGORITHM",
    "Signable",
    "Signature",
    "Transform",
    "Provenance",
    "Meta",
    "Envelope",
    "GenericEnvelope",
    "default_schema",
    "new_envelope",
]

SIGNATURE_ALGORITHM = "ed25519"

PayloadT = TypeVar("PayloadT")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@runtime_checkable
class Signable(Protocol):
    """Documents that can carry a detached-in-place signature."""

    def get_signature(self) -> "Signature | None":
        """Return the attached signature, if any."""

    def set_signature(self, signature: "Signature | None") -> None:
        """Attach ``signature``, replacing any existing one."""

    def canonical_bytes(self) -> bytes:
        """Return the bytes covered by the signature."""


class Signature(BaseModel):
    """Digital signature attached to an envelope or manifest."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    algorithm: str = Field(default=SIGNATURE_ALGORITHM, min_length=1)
    public_key_id: str = Field(..., description="Identifier of the signing key.")
    signature: str = Field(..., description="Base64-encoded signature bytes.")
    signed_at: datetime
    signed_by: str = Field(default="", description="Identity of the signer.")


class Transform(BaseModel):
    """A transformation applied to the data on its way here."""

    type: str
    description: str = ""
    applied_at: datetime
    applied_by: str = ""


class Provenance(BaseModel):
    """Origin and lineage of the data."""

    original_source: str
    imported_from: str | None = None
    imported_at: datetime | None = None
    transformations: list[Transform] | None = None


class Meta(BaseModel):
    """Metadata about an enveloped entity."""

    # Unknown fields are kept; they are part of the signed bytes.
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    schema_version: str = Field(
        default="",
        alias="schema",
        description="Schema version, e.g. 'ptd.v1.tournament@1.0.0'.",
    )
    version: int = Field(default=1, description="Entity revision counter.")
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
    source: str = Field(default="", description="Source system, e.g. 'icc:prod'.")

    tags: list[str] | None = None
    extensions: dict[str, Any] | None = None
    signature: Signature | None = None
    provenance: Provenance | None = None


class Envelope(BaseModel, Generic[PayloadT]):
    """Generic envelope: identifier, type tag, payload and metadata."""

    model_config = ConfigDict(extra="allow")

    id: str
    type: str
    spec: PayloadT
    meta: Meta = Field(default_factory=Meta)

    def get_signature(self) -> Signature | None:
        return self.meta.signature

    def set_signature(self, signature: Signature | None) -> None:
        self.meta.signature = signature

    def canonical_bytes(self) -> bytes:
        """Return the canonical JSON bytes with any signature removed."""

        data = self.model_dump(
            mode="python",
            by_alias=True,
            exclude_none=True,
            exclude={"meta": {"signature"}},
        )
        return canonical_bytes(data)

    def model_dump_json_ready(self) -> dict[str, object]:
        """Return a JSON-serialisable payload with ``None`` values removed."""

        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


GenericEnvelope = Envelope[dict[str, Any]]


def default_schema(entity_type: str) -> str:
    """Return the default v1 schema string for ``entity_type``."""

    return f"ptd.v1.{entity_type}@1.0.0"


def new_envelope(
    entity_type: str,
    spec: PayloadT,
    *,
    source: str | None = None,
    generator: IDGenerator | None = None,
    schema: str | None = None,
    tags: list[str] | None = None,
    extensions: dict[str, Any] | None = None,
) -> Envelope[PayloadT]:
    """Build a revision-1 envelope for ``spec`` with a freshly generated id.

    ``source`` defaults to ``PTD_SOURCE``.
    """

    gen = generator or default_generator()
    now = _utcnow()
    meta = Meta(
        schema_version=schema or default_schema(entity_type),
        version=1,
        created_at=now,
        updated_at=now,
        source=get_settings().source if source is None else source,
        tags=tags,
        extensions=extensions,
    )
    return Envelope[Any](
        id=gen.generate(entity_type),
        type=entity_type,
        spec=spec,
        meta=meta,
    )
