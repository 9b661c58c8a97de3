"""Environment-backed settings primitives for :mod:`ptd`."""

from __future__ import annotations

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

__all__ = ["PTDSettings", "get_settings", "DEFAULT_CREATOR"]

DEFAULT_CREATOR = "ptd-python"


class PTDSettings(BaseSettings):
    """Expose environment-derived configuration knobs for ptd.

    All environment lookups go through this class. Every attribute maps to a
    documented environment variable and falls back to an inline default when
    the variable is not present.

    Attributes:
        creator: Creator identity written into new package manifests.
        source: Default ``meta.source`` for newly built envelopes.
        signing_key: Base64-encoded 64-byte Ed25519 private key used by the
            CLI when no key file is given.
        public_key_id: Key identifier recorded in signatures made with
            ``signing_key``.
        signed_by: Signer identity recorded in those signatures.
        require_complete: When true, opening a package also fails if the
            manifest lists files that are absent from the archive.
        hash_workers: Thread count for hashing files while building an
            archive. ``1`` hashes sequentially.
        config_path: Explicit path to a packaging profile file.
    """

    creator: str = Field(default=DEFAULT_CREATOR, alias="PTD_CREATOR")
    source: str = Field(default="", alias="PTD_SOURCE")
    signing_key: str | None = Field(default=None, alias="PTD_SIGNING_KEY")
    public_key_id: str | None = Field(default=None, alias="PTD_PUBLIC_KEY_ID")
    signed_by: str | None = Field(default=None, alias="PTD_SIGNED_BY")
    require_complete: bool = Field(default=False, alias="PTD_REQUIRE_COMPLETE")
    hash_workers: int = Field(default=1, alias="PTD_HASH_WORKERS")
    config_path: str | None = Field(default=None, alias="PTD_CONFIG_PATH")

    model_config = SettingsConfigDict(env_file=None, extra="ignore")

    @field_validator("hash_workers", mode="before")
    @classmethod
    def _parse_worker_count(cls, value: object) -> int:
        """Parse the worker count while tolerating malformed input.

        Args:
            value: Raw environment value.

        Returns:
            Parsed positive integer, or ``1`` when the value is unusable.
        """

        if isinstance(value, bool):
            return 1
        if isinstance(value, int):
            return max(value, 1)
        if isinstance(value, str):
            try:
                return max(int(value.strip()), 1)
            except ValueError:
                return 1
        return 1


def get_settings() -> PTDSettings:
    """Return a :class:`PTDSettings` instance.

    Returns:
        Settings parsed from environment variables.
    """

    return PTDSettings()
