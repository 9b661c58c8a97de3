"""Typed configuration dataclasses for :mod:`ptd.config_loader`."""

from __future__ import annotations

from dataclasses import dataclass, field

from ptd.settings import DEFAULT_CREATOR


@dataclass(slots=True)
class PackageSettings:
    """Defaults applied when building and opening packages.

    Attributes:
        creator: Creator identity recorded in new manifests.
        description: Description used when the caller supplies none.
        require_complete: Reject archives missing files the manifest lists.
        hash_workers: Thread count used to hash files during a build.
    """

    creator: str = DEFAULT_CREATOR
    description: str = ""
    require_complete: bool = False
    hash_workers: int = 1


@dataclass(slots=True)
class SigningSettings:
    """Identity and key material used when signing."""

    public_key_id: str | None = None
    signed_by: str | None = None
    key_file: str | None = None


@dataclass(slots=True)
class PackagingConfig:
    """Strongly typed configuration container for ptd tooling."""

    package: PackageSettings = field(default_factory=PackageSettings)
    signing: SigningSettings = field(default_factory=SigningSettings)
