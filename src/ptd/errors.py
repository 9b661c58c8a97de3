"""Exception hierarchy for :mod:`ptd`.

Every failure raised by the library derives from :class:`PTDError`. None of
them are retryable: integrity and signature failures indicate tampering,
corruption or a programming error, never a transient condition.
"""

from __future__ import annotations

__all__ = [
    "PTDError",
    "InvalidIDError",
    "InvalidTypeError",
    "MissingSchemaError",
    "InvalidSchemaError",
    "EntityValidationError",
    "MissingFieldError",
    "SignatureError",
    "SignatureMissingError",
    "SignatureInvalidError",
    "SignatureFailedError",
    "SignatureKeyMissingError",
    "PackageError",
    "InvalidPackageError",
    "ManifestMissingError",
    "ManifestInvalidError",
    "HashMismatchError",
    "UnexpectedFileError",
    "MissingFileError",
]


class PTDError(Exception):
    """Base class for all ptd errors."""


# Envelope errors


class InvalidIDError(PTDError):
    """Identifier is missing or not of the form ``ptd:<type>:<raw-id>``."""


class InvalidTypeError(PTDError):
    """Entity type tag is missing or invalid."""


class MissingSchemaError(PTDError):
    """Envelope metadata carries no schema version."""


class InvalidSchemaError(PTDError):
    """Schema version string is malformed."""


# Validation errors


class EntityValidationError(PTDError):
    """Entity payload failed validation."""


class MissingFieldError(EntityValidationError):
    """A required entity field is absent or empty."""


# Signature errors


class SignatureError(PTDError):
    """Base class for signing and verification failures."""


class SignatureMissingError(SignatureError):
    """Signature required but missing."""


class SignatureInvalidError(SignatureError):
    """Stored signature is not a validly encoded Ed25519 signature."""


class SignatureFailedError(SignatureError):
    """Signature decoded but did not verify against the canonical bytes."""


class SignatureKeyMissingError(SignatureError):
    """Key lookup could not resolve the signing key identifier."""


# Package errors


class PackageError(PTDError):
    """Base class for archive build and open failures."""


class InvalidPackageError(PackageError):
    """Archive is unreadable or structurally unsound."""


class ManifestMissingError(PackageError):
    """``manifest.json`` not found in the archive."""


class ManifestInvalidError(PackageError):
    """``manifest.json`` could not be decoded into a manifest."""


class HashMismatchError(PackageError):
    """An archived file does not match the digest recorded in the manifest."""

    def __init__(self, path: str, expected: str, actual: str) -> None:
        super().__init__(f"file hash mismatch for {path}")
        self.path = path
        self.expected = expected
        self.actual = actual


class UnexpectedFileError(PackageError):
    """The archive holds a file the manifest does not list."""

    def __init__(self, path: str) -> None:
        super().__init__(f"unexpected file in package: {path}")
        self.path = path


class MissingFileError(PackageError):
    """The manifest lists files that are absent from the archive."""

    def __init__(self, paths: list[str]) -> None:
        super().__init__(f"files listed in manifest but missing: {', '.join(paths)}")
        self.paths = paths
