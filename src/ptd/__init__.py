"""Portable Tournament Data - signed, tamper-evident tournament data exchange."""

from __future__ import annotations

from importlib import import_module
from typing import Any, TYPE_CHECKING

__all__ = [
    "IDGenerator",
    "parse_id",
    "canonicalize",
    "Envelope",
    "Meta",
    "Signature",
    "new_envelope",
    "Signer",
    "KeyPair",
    "generate_key_pair",
    "verify",
    "verify_with_key_lookup",
    "Manifest",
    "Package",
    "open_package",
    "SchemaValidator",
    "PTDError",
]

if TYPE_CHECKING:
    from .canonical import canonicalize
    from .envelope import Envelope, Meta, Signature, new_envelope
    from .errors import PTDError
    from .ids import IDGenerator, parse_id
    from .package import Manifest, Package, open_package
    from .schema import SchemaValidator
    from .signing import (
        KeyPair,
        Signer,
        generate_key_pair,
        verify,
        verify_with_key_lookup,
    )


def __getattr__(name: str) -> Any:
    """Lazily import submodules so ``import ptd`` stays cheap."""

    module_map = {
        "IDGenerator": "ids",
        "parse_id": "ids",
        "canonicalize": "canonical",
        "Envelope": "envelope",
        "Meta": "envelope",
        "Signature": "envelope",
        "new_envelope": "envelope",
        "Signer": "signing",
        "KeyPair": "signing",
        "generate_key_pair": "signing",
        "verify": "signing",
        "verify_with_key_lookup": "signing",
        "Manifest": "package",
        "Package": "package",
        "open_package": "package",
        "SchemaValidator": "schema",
        "PTDError": "errors",
    }

    if name not in module_map:
        raise AttributeError(name)

    module = import_module(f".{module_map[name]}", __name__)
    return getattr(module, name)
