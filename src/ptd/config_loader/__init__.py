"""Public entry points for the :mod:`ptd` configuration loader."""

from __future__ import annotations

from ptd.config_loader.models import PackageSettings, PackagingConfig, SigningSettings
from ptd.config_loader.parsing import (
    apply_environment_overrides,
    apply_structured_overrides,
)
from ptd.config_loader.sources import load_structured_config
from ptd.settings import PTDSettings, get_settings

__all__ = [
    "PackageSettings",
    "PackagingConfig",
    "SigningSettings",
    "load_config",
]


def load_config(
    path: str | None = None, *, settings: PTDSettings | None = None
) -> PackagingConfig:
    """Load configuration from environment and optional file sources.

    Args:
        path: Optional explicit path to a profile file. When omitted the
            loader inspects ``PTD_CONFIG_PATH`` and the default locations.
        settings: Optional pre-instantiated environment settings. When omitted
            :func:`ptd.settings.get_settings` is used.

    Returns:
        Fully populated :class:`PackagingConfig` instance.
    """

    env_settings = settings or get_settings()
    base = apply_environment_overrides(PackagingConfig(), env_settings)
    structured = load_structured_config(path, env_settings)
    if structured is None:
        return base
    return apply_structured_overrides(base, structured)
