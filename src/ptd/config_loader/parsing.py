"""Parsing and transformation helpers for :mod:`ptd.config_loader`."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import replace

from ptd.config_loader.models import PackagingConfig
from ptd.settings import PTDSettings


def apply_environment_overrides(
    config: PackagingConfig, settings: PTDSettings
) -> PackagingConfig:
    """Apply environment-derived overrides to the configuration.

    Args:
        config: Base configuration instance.
        settings: Environment-derived settings.

    Returns:
        Configuration with environment overrides applied.
    """

    package = replace(
        config.package,
        creator=settings.creator or config.package.creator,
        require_complete=settings.require_complete,
        hash_workers=settings.hash_workers,
    )
    signing = replace(
        config.signing,
        public_key_id=settings.public_key_id or config.signing.public_key_id,
        signed_by=settings.signed_by or config.signing.signed_by,
    )
    return replace(config, package=package, signing=signing)


def apply_structured_overrides(
    config: PackagingConfig, data: Mapping[str, object]
) -> PackagingConfig:
    """Apply overrides sourced from structured configuration data.

    Args:
        config: Base configuration instance.
        data: Mapping parsed from configuration file.

    Returns:
        Configuration updated according to the provided mapping.
    """

    updated = config

    package_section = _expect_mapping(data.get("package"))
    if package_section is not None:
        updated = _apply_package_section(updated, package_section)

    signing_section = _expect_mapping(data.get("signing"))
    if signing_section is not None:
        updated = _apply_signing_section(updated, signing_section)

    return updated


def _apply_package_section(
    config: PackagingConfig, section: Mapping[str, object]
) -> PackagingConfig:
    package = config.package

    creator = _coerce_str(section.get("creator"))
    if creator is not None:
        package = replace(package, creator=creator)

    description = _coerce_str(section.get("description"))
    if description is not None:
        package = replace(package, description=description)

    require_complete = _coerce_bool(section.get("require_complete"))
    if require_complete is not None:
        package = replace(package, require_complete=require_complete)

    hash_workers = _coerce_int(section.get("hash_workers"))
    if hash_workers is not None and hash_workers >= 1:
        package = replace(package, hash_workers=hash_workers)

    return replace(config, package=package)


def _apply_signing_section(
    config: PackagingConfig, section: Mapping[str, object]
) -> PackagingConfig:
    signing = config.signing
    for name in ("public_key_id", "signed_by", "key_file"):
        value = _coerce_str(section.get(name))
        if value is not None:
            signing = replace(signing, **{name: value})
    return replace(config, signing=signing)


def _expect_mapping(value: object) -> Mapping[str, object] | None:
    """Return ``value`` when it is a mapping, otherwise ``None``."""

    if isinstance(value, Mapping):
        return value
    return None


def _coerce_int(value: object) -> int | None:
    """Parse an integer from arbitrary input.

    Args:
        value: Raw value.

    Returns:
        Parsed integer when conversion succeeds, otherwise ``None``.
    """

    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def _coerce_bool(value: object) -> bool | None:
    """Parse a boolean from arbitrary input.

    Args:
        value: Raw value.

    Returns:
        Parsed boolean when conversion succeeds, otherwise ``None``.
    """

    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "1", "yes"}:
            return True
        if lowered in {"false", "0", "no"}:
            return False
    if isinstance(value, (int, float)):
        if value == 0:
            return False
        if value == 1:
            return True
    return None


def _coerce_str(value: object) -> str | None:
    """Parse a string from arbitrary input.

    Args:
        value: Raw value.

    Returns:
        Normalised string when the input is textual, otherwise ``None``.
    """

    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    return None
