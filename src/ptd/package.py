"""
PTD packages: zip archives of NDJSON entity files plus a manifest.

Building a package stages files in a private directory, hashes each one
(SHA-256) into the manifest's file table, optionally signs the manifest and
writes everything into a zip archive with ``manifest.json`` at the root.

Opening a package reads the manifest and checks every other archived file
against the digest recorded for it. Any mismatch, any file the manifest does
not list, or a missing manifest fails the whole open; no partially verified
package is ever returned.

The manifest signature covers version, creation time, creator, description
and entity counts. The file table is excluded from the signed bytes; file
integrity rests on the per-file digests checked at open time.
"""

from __future__ import annotations

import hashlib
import json
import logging
import shutil
import tempfile
import weakref
import zipfile
import zlib
from collections import Counter
from collections.abc import Iterable, Iterator
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath
from typing import IO, Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from .canonical import canonical_bytes, canonicalize
from .config_loader import PackagingConfig, load_config
from .envelope import GenericEnvelope, Signature
from .errors import (
    HashMismatchError,
    InvalidPackageError,
    ManifestInvalidError,
    ManifestMissingError,
    MissingFileError,
    UnexpectedFileError,
)
from .ids import IDGenerator, default_generator
from .settings import PTDSettings
from .signing import PublicKeyLike, Signer, verify

LOGGER = logging.getLogger(__name__)

__all__ = [
    "MANIFEST_NAME",
    "FORMAT_VERSION",
    "FileEntry",
    "EntityCount",
    "Manifest",
    "Package",
    "open_package",
    "sign_manifest",
    "verify_manifest_signature",
    "detect_content_type",
    "hash_bytes",
    "build_file_entry",
    "entity_file_path",
]

MANIFEST_NAME = "manifest.json"
FORMAT_VERSION = "1.0.0"
DEFAULT_CONTENT_TYPE = "application/octet-stream"

_CONTENT_TYPES: dict[str, str] = {
    ".json": "application/json",
    ".ndjson": "application/x-ndjson",
    ".xml": "application/xml",
    ".csv": "text/csv",
}
_CHUNK_SIZE = 64 * 1024

# zipfile raises RuntimeError for encrypted members and NotImplementedError
# for compression methods it cannot decode
_UNREADABLE_MEMBER = (
    zipfile.BadZipFile,
    zlib.error,
    EOFError,
    RuntimeError,
    NotImplementedError,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class FileEntry(BaseModel):
    """Describes one archived file."""

    model_config = ConfigDict(extra="allow", frozen=True)

    path: str = Field(..., min_length=1, description="Relative path in the package.")
    size: int = Field(..., ge=0, description="File size in bytes.")
    hash: str = Field(
        ...,
        pattern=r"^[0-9a-f]{64}$",
        description="Hex-encoded SHA-256 digest of the file contents.",
    )
    modified: datetime
    type: str = Field(default=DEFAULT_CONTENT_TYPE, description="Content type.")


class EntityCount(BaseModel):
    """Number of entities of one type held in the package."""

    type: str
    count: int = Field(..., ge=0)


class Manifest(BaseModel):
    """Describes the contents of a PTD package."""

    # Unknown fields are kept; they are part of the signed bytes.
    model_config = ConfigDict(extra="allow")

    version: str = FORMAT_VERSION
    id: str | None = Field(default=None, description="Raw id of the package.")
    created: datetime = Field(default_factory=_utcnow)
    creator: str = ""
    description: str = ""
    files: dict[str, FileEntry] = Field(default_factory=dict)
    entities: dict[str, EntityCount] = Field(default_factory=dict)
    signature: Signature | None = None

    @model_validator(mode="after")
    def _check_file_keys(self) -> "Manifest":
        for key, entry in self.files.items():
            if key != entry.path:
                raise ValueError(f"file table key {key!r} does not match path {entry.path!r}")
        return self

    def get_signature(self) -> Signature | None:
        return self.signature

    def set_signature(self, signature: Signature | None) -> None:
        self.signature = signature

    def canonical_bytes(self) -> bytes:
        """Return the signable bytes: everything but the signature and file table."""

        data = self.model_dump(
            mode="python",
            by_alias=True,
            exclude_none=True,
            exclude={"signature", "files"},
        )
        return canonical_bytes(data)

    def to_json(self) -> str:
        """Render the manifest as indented JSON for ``manifest.json``."""

        return json.dumps(
            self.model_dump(mode="json", by_alias=True, exclude_none=True),
            indent=2,
            ensure_ascii=False,
        )


def detect_content_type(path: str) -> str:
    """Return the content type for ``path`` based on its extension."""

    return _CONTENT_TYPES.get(PurePosixPath(path).suffix.lower(), DEFAULT_CONTENT_TYPE)


def hash_bytes(data: bytes) -> str:
    """Return the hex SHA-256 digest of ``data``."""

    return hashlib.sha256(data).hexdigest()


def _hash_stream(stream: IO[bytes]) -> tuple[str, int]:
    hasher = hashlib.sha256()
    size = 0
    for chunk in iter(lambda: stream.read(_CHUNK_SIZE), b""):
        hasher.update(chunk)
        size += len(chunk)
    return hasher.hexdigest(), size


def build_file_entry(path: Path, relative: str) -> FileEntry:
    """Hash the file at ``path`` and describe it as ``relative`` in the archive."""

    with path.open("rb") as handle:
        digest, size = _hash_stream(handle)
    modified = datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)
    return FileEntry(
        path=relative,
        size=size,
        hash=digest,
        modified=modified,
        type=detect_content_type(relative),
    )


def entity_file_path(entity_type: str) -> str:
    """Return the archive path holding entities of ``entity_type``."""

    return f"{entity_type}/{entity_type}s.ndjson"


def _check_relative_path(relative: str) -> str:
    path = PurePosixPath(relative)
    if not relative or path.is_absolute() or ".." in path.parts or "\\" in relative:
        raise ValueError(f"invalid package path: {relative!r}")
    normalized = path.as_posix()
    if normalized == MANIFEST_NAME:
        raise ValueError(f"{MANIFEST_NAME} is reserved")
    return normalized


def sign_manifest(manifest: Manifest, signer: Signer) -> Signature:
    """Sign ``manifest`` in place; the file table is not covered."""

    signature = signer.sign(manifest)
    LOGGER.info(
        "Signed package manifest",
        extra={"public_key_id": signature.public_key_id, "creator": manifest.creator},
    )
    return signature


def verify_manifest_signature(manifest: Manifest, public_key: PublicKeyLike) -> Signature:
    """Verify the manifest signature; see :func:`ptd.signing.verify`."""

    return verify(manifest, public_key)


class Package:
    """A PTD package being built, or one opened from an archive.

    Args:
        description: Human-readable description recorded in the manifest.
            Defaults to ``package.description`` from the packaging profile.
        creator: Creator identity. Defaults to the profile, then
            ``PTD_CREATOR``.
        hash_workers: Threads used to hash files in :meth:`create_archive`.
            Defaults to the profile, then ``PTD_HASH_WORKERS``.
        generator: Identifier generator for the package id.
        settings: Environment settings the profile is layered over.
        config: Pre-loaded packaging profile. When omitted
            :func:`ptd.config_loader.load_config` is used.

    The staging directory is created on the first ``add_*`` call and removed
    by :meth:`cleanup`, on context exit, or when the package is collected.
    Packages returned by :meth:`open` are read-only: they carry the verified
    manifest and can stream entities back out of the archive.
    """

    def __init__(
        self,
        description: str = "",
        *,
        creator: str | None = None,
        hash_workers: int | None = None,
        generator: IDGenerator | None = None,
        settings: PTDSettings | None = None,
        config: PackagingConfig | None = None,
    ) -> None:
        defaults = (config or load_config(settings=settings)).package
        self.manifest = Manifest(
            id=(generator or default_generator()).generate_raw(),
            creator=creator if creator is not None else defaults.creator,
            description=description or defaults.description,
        )
        self.hash_workers = max(
            hash_workers if hash_workers is not None else defaults.hash_workers, 1
        )
        self.archive_path: Path | None = None
        self._staging: Path | None = None
        self._finalizer: weakref.finalize | None = None
        self._closed = False

    @classmethod
    def _from_archive(cls, manifest: Manifest, archive_path: Path) -> "Package":
        package = cls.__new__(cls)
        package.manifest = manifest
        package.hash_workers = 1
        package.archive_path = archive_path
        package._staging = None
        package._finalizer = None
        package._closed = True
        return package

    @classmethod
    def open(
        cls,
        archive_path: str | Path,
        *,
        require_complete: bool | None = None,
        config: PackagingConfig | None = None,
    ) -> "Package":
        """Open and verify an archive; see :func:`open_package`."""

        return open_package(archive_path, require_complete=require_complete, config=config)

    @property
    def id(self) -> str | None:
        """Raw id recorded in the manifest, if the archive carries one."""
        return self.manifest.id

    @property
    def created(self) -> datetime:
        return self.manifest.created

    @property
    def version(self) -> str:
        return self.manifest.version

    def __enter__(self) -> "Package":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.cleanup()

    def cleanup(self) -> None:
        """Remove the staging directory, if any. The package cannot be built further."""

        self._closed = True
        if self._finalizer is not None:
            self._finalizer()
            self._finalizer = None
        self._staging = None

    def _require_staging(self) -> Path:
        if self._closed:
            raise InvalidPackageError("package is not open for building")
        if self._staging is None:
            self._staging = Path(tempfile.mkdtemp(prefix="ptd-package-"))
            self._finalizer = weakref.finalize(
                self, shutil.rmtree, str(self._staging), ignore_errors=True
            )
        return self._staging

    def add_entities(self, entity_type: str, entities: Iterable[object]) -> int:
        """Write ``entities`` as NDJSON under ``<type>/<type>s.ndjson``.

        Each entity (envelope, model or plain mapping) becomes one canonical
        JSON line. Calling again for the same type replaces the earlier file.
        If any entity fails to serialize nothing is staged and an earlier file
        for the type is left as it was.

        Returns:
            Number of entities written.
        """

        if not entity_type or "/" in entity_type or entity_type in {".", ".."}:
            raise ValueError(f"invalid entity type: {entity_type!r}")
        relative = _check_relative_path(entity_file_path(entity_type))
        target = self._require_staging() / relative
        target.parent.mkdir(parents=True, exist_ok=True)
        partial = target.with_name(f".{target.name}.partial")

        count = 0
        try:
            with partial.open("w", encoding="utf-8", newline="\n") as handle:
                for entity in entities:
                    handle.write(canonicalize(entity))
                    handle.write("\n")
                    count += 1
        except BaseException:
            partial.unlink(missing_ok=True)
            raise
        partial.replace(target)

        self.manifest.entities[entity_type] = EntityCount(type=entity_type, count=count)
        LOGGER.debug("Staged %d %s entities", count, entity_type)
        return count

    def add_file(self, relative_path: str, data: bytes) -> None:
        """Stage an additional file at ``relative_path`` inside the archive."""

        relative = _check_relative_path(relative_path)
        target = self._require_staging() / relative
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)

    def _staged_files(self) -> list[tuple[str, Path]]:
        staging = self._require_staging()
        return sorted(
            (path.relative_to(staging).as_posix(), path)
            for path in staging.rglob("*")
            if path.is_file()
        )

    def _hash_files(self, files: list[tuple[str, Path]]) -> dict[str, FileEntry]:
        if self.hash_workers > 1 and len(files) > 1:
            with ThreadPoolExecutor(max_workers=self.hash_workers) as pool:
                entries = list(pool.map(lambda item: build_file_entry(item[1], item[0]), files))
        else:
            entries = [build_file_entry(path, relative) for relative, path in files]

        table: dict[str, FileEntry] = {}
        for entry in entries:
            table[entry.path] = entry
        return table

    def create_archive(
        self,
        output_path: str | Path,
        *,
        signer: Signer | None = None,
        compression: int = zipfile.ZIP_DEFLATED,
    ) -> Path:
        """Hash staged files, finalise the manifest and write the zip archive.

        Args:
            output_path: Destination archive path.
            signer: When given, the manifest is signed before it is written.
            compression: :mod:`zipfile` compression constant.

        Returns:
            The archive path.
        """

        files = self._staged_files()
        self.manifest.files = self._hash_files(files)
        if signer is not None:
            sign_manifest(self.manifest, signer)

        output = Path(output_path)
        output.parent.mkdir(parents=True, exist_ok=True)
        with zipfile.ZipFile(output, "w", compression=compression) as archive:
            archive.writestr(MANIFEST_NAME, self.manifest.to_json())
            for relative, path in files:
                archive.write(path, arcname=relative)

        self.archive_path = output
        LOGGER.info(
            "Created package archive",
            extra={"archive": str(output), "files": len(files), "signed": signer is not None},
        )
        return output

    def sign(self, signer: Signer) -> Signature:
        """Sign this package's manifest."""

        return sign_manifest(self.manifest, signer)

    def verify_signature(self, public_key: PublicKeyLike) -> Signature:
        """Verify this package's manifest signature."""

        return verify_manifest_signature(self.manifest, public_key)

    def read_entities(self, entity_type: str) -> Iterator[dict[str, Any]]:
        """Yield the records stored for ``entity_type`` in the opened archive.

        The member is re-hashed against the manifest before any record is
        yielded. Nothing is yielded when the package holds no such file.
        """

        if self.archive_path is None:
            raise InvalidPackageError("package has not been archived")
        relative = entity_file_path(entity_type)
        entry = self.manifest.files.get(relative)
        if entry is None:
            return
        try:
            with zipfile.ZipFile(self.archive_path) as archive:
                data = archive.read(relative)
        except KeyError:
            return
        except (*_UNREADABLE_MEMBER, OSError) as exc:
            raise InvalidPackageError(f"failed to read {relative}: {exc}") from exc
        actual = hash_bytes(data)
        if actual != entry.hash:
            raise HashMismatchError(relative, entry.hash, actual)
        for line in data.decode("utf-8").splitlines():
            if line.strip():
                yield json.loads(line)

    def read_envelopes(self, entity_type: str) -> list[GenericEnvelope]:
        """Return the stored records for ``entity_type`` parsed as envelopes."""

        return [GenericEnvelope.model_validate(record) for record in self.read_entities(entity_type)]


def _read_manifest(archive: zipfile.ZipFile) -> Manifest:
    try:
        data = archive.read(MANIFEST_NAME)
    except _UNREADABLE_MEMBER as exc:
        raise ManifestInvalidError(f"failed to read manifest: {exc}") from exc
    try:
        return Manifest.model_validate_json(data)
    except ValidationError as exc:
        raise ManifestInvalidError(f"failed to parse manifest: {exc}") from exc


def _hash_member(archive: zipfile.ZipFile, info: zipfile.ZipInfo) -> str | None:
    """Return the member digest, or ``None`` when its data is corrupt."""

    try:
        with archive.open(info) as handle:
            digest, _ = _hash_stream(handle)
    except _UNREADABLE_MEMBER:
        return None
    return digest


def open_package(
    archive_path: str | Path,
    *,
    require_complete: bool | None = None,
    config: PackagingConfig | None = None,
) -> Package:
    """Open ``archive_path`` and verify every archived file against the manifest.

    Args:
        archive_path: Path to the zip archive.
        require_complete: Also fail when manifest entries have no archived
            file. Defaults to ``package.require_complete`` from the
            packaging profile, then ``PTD_REQUIRE_COMPLETE``.
        config: Pre-loaded packaging profile used for that default.

    Raises:
        InvalidPackageError: The archive is unreadable or has duplicate members.
        ManifestMissingError: No ``manifest.json`` at the archive root.
        ManifestInvalidError: The manifest cannot be decoded.
        UnexpectedFileError: A file is not listed in the manifest.
        HashMismatchError: A file does not match its recorded digest.
        MissingFileError: ``require_complete`` is set and listed files are absent.
    """

    if require_complete is None:
        require_complete = (config or load_config()).package.require_complete
    path = Path(archive_path)

    try:
        archive = zipfile.ZipFile(path)
    except (zipfile.BadZipFile, OSError) as exc:
        raise InvalidPackageError(f"failed to open archive {path}: {exc}") from exc

    with archive:
        members = [info for info in archive.infolist() if not info.is_dir()]
        duplicates = sorted(
            name for name, seen in Counter(info.filename for info in members).items() if seen > 1
        )
        if duplicates:
            raise InvalidPackageError(f"duplicate archive members: {', '.join(duplicates)}")

        names = {info.filename for info in members}
        if MANIFEST_NAME not in names:
            raise ManifestMissingError(f"{MANIFEST_NAME} not found in {path}")
        manifest = _read_manifest(archive)

        for info in members:
            if info.filename == MANIFEST_NAME:
                continue
            entry = manifest.files.get(info.filename)
            if entry is None:
                raise UnexpectedFileError(info.filename)
            actual = _hash_member(archive, info)
            if actual != entry.hash:
                LOGGER.warning(
                    "Package file failed integrity check",
                    extra={"archive": str(path), "member": info.filename},
                )
                raise HashMismatchError(info.filename, entry.hash, actual or "")

        if require_complete:
            missing = sorted(set(manifest.files) - names)
            if missing:
                raise MissingFileError(missing)

    LOGGER.info(
        "Opened package archive",
        extra={"archive": str(path), "files": len(manifest.files)},
    )
    return Package._from_archive(manifest, path)
