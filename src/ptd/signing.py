"""
Ed25519 signing and verification of PTD documents.

Any :class:`~ptd.envelope.Signable` (envelopes and package manifests) can be
signed. The signature always covers the document's canonical bytes with the
signature field removed, so signing and verifying are unaffected by whatever
signature is currently attached.

Provides:
- generate_key_pair(): fresh base64-encoded Ed25519 key material
- parse_public_key / parse_private_key: strict base64 key decoding
- Signer: holds a private key and attaches signatures to documents
- verify / verify_with_key_lookup: check an attached signature
"""

from __future__ import annotations

import base64
import binascii
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Union

try:
    from cryptography.exceptions import InvalidSignature
    from cryptography.hazmat.primitives import serialization
    from cryptography.hazmat.primitives.asymmetric.ed25519 import (
        Ed25519PrivateKey,
        Ed25519PublicKey,
    )
except ImportError as exc:  # pragma: no cover - hard dependency
    raise ImportError(
        "Ed25519 signing requires the 'cryptography' package (version 41.0.0 or newer). "
        "Install it with: pip install 'cryptography>=41.0.0'."
    ) from exc

from .envelope import SIGNATURE_ALGORITHM, Signable, Signature
from .errors import (
    SignatureFailedError,
    SignatureInvalidError,
    SignatureKeyMissingError,
    SignatureMissingError,
)

LOGGER = logging.getLogger(__name__)

__all__ = [
    "PUBLIC_KEY_SIZE",
    "PRIVATE_KEY_SIZE",
    "SIGNATURE_SIZE",
    "KeyPair",
    "PublicKeyLike",
    "KeyLookup",
    "Signer",
    "generate_key_pair",
    "parse_public_key",
    "parse_private_key",
    "verify",
    "verify_with_key_lookup",
]

PUBLIC_KEY_SIZE = 32
SEED_SIZE = 32
PRIVATE_KEY_SIZE = 64
SIGNATURE_SIZE = 64

PublicKeyLike = Union[bytes, str, Ed25519PublicKey]
KeyLookup = Callable[[str], Union[PublicKeyLike, None]]


def _b64encode(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def _b64decode(text: str) -> bytes:
    return base64.b64decode(text.encode("ascii"), validate=True)


def _raw_public_bytes(key: Ed25519PublicKey) -> bytes:
    return key.public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw,
    )


def _raw_seed_bytes(key: Ed25519PrivateKey) -> bytes:
    return key.private_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PrivateFormat.Raw,
        encryption_algorithm=serialization.NoEncryption(),
    )


@dataclass(frozen=True, slots=True)
class KeyPair:
    """Base64-encoded Ed25519 key material.

    Attributes:
        public_key: Base64 of the 32-byte raw public key.
        private_key: Base64 of the 64-byte private key (seed || public key).
    """

    public_key: str
    private_key: str

    def to_dict(self) -> dict[str, str]:
        return {"public_key": self.public_key, "private_key": self.private_key}


def generate_key_pair() -> KeyPair:
    """Generate a fresh random Ed25519 key pair."""

    private = Ed25519PrivateKey.generate()
    public_raw = _raw_public_bytes(private.public_key())
    return KeyPair(
        public_key=_b64encode(public_raw),
        private_key=_b64encode(_raw_seed_bytes(private) + public_raw),
    )


def parse_public_key(public_key_b64: str) -> bytes:
    """Decode a base64 public key, requiring exactly 32 bytes."""

    try:
        key_bytes = _b64decode(public_key_b64)
    except (binascii.Error, ValueError) as exc:
        raise ValueError(f"failed to decode public key: {exc}") from exc
    if len(key_bytes) != PUBLIC_KEY_SIZE:
        raise ValueError(
            f"invalid public key size: got {len(key_bytes)}, want {PUBLIC_KEY_SIZE}"
        )
    return key_bytes


def parse_private_key(private_key_b64: str) -> bytes:
    """Decode a base64 private key, requiring exactly 64 bytes."""

    try:
        key_bytes = _b64decode(private_key_b64)
    except (binascii.Error, ValueError) as exc:
        raise ValueError(f"failed to decode private key: {exc}") from exc
    if len(key_bytes) != PRIVATE_KEY_SIZE:
        raise ValueError(
            f"invalid private key size: got {len(key_bytes)}, want {PRIVATE_KEY_SIZE}"
        )
    return key_bytes


def _load_public_key(public_key: PublicKeyLike) -> Ed25519PublicKey:
    if isinstance(public_key, Ed25519PublicKey):
        return public_key
    if isinstance(public_key, str):
        public_key = parse_public_key(public_key)
    if len(public_key) != PUBLIC_KEY_SIZE:
        raise ValueError(
            f"invalid public key size: got {len(public_key)}, want {PUBLIC_KEY_SIZE}"
        )
    return Ed25519PublicKey.from_public_bytes(bytes(public_key))


class Signer:
    """
    Signing abstraction using Ed25519.

    Args:
    ----
        private_key: Raw private key bytes, either the 64-byte
            ``seed || public key`` form or a bare 32-byte seed.
        public_key_id: Identifier recorded in every signature so verifiers
            can look up the matching public key.
        signed_by: Human-readable identity of the signer.

    Attributes:
    ----------
        algorithm: Always ``"ed25519"``.

    The private key never leaves the instance except through
    :attr:`private_key`; it is never written into a signed document.
    """

    algorithm = SIGNATURE_ALGORITHM

    def __init__(
        self, private_key: bytes, public_key_id: str, signed_by: str = ""
    ) -> None:
        """Initialize the Signer with a private key."""
        claimed_public: bytes | None = None
        if len(private_key) == PRIVATE_KEY_SIZE:
            seed, claimed_public = private_key[:SEED_SIZE], private_key[SEED_SIZE:]
        elif len(private_key) == SEED_SIZE:
            seed = private_key
        else:
            raise ValueError(
                f"private_key must be {PRIVATE_KEY_SIZE} bytes (or a {SEED_SIZE}-byte seed)"
            )

        self._priv = Ed25519PrivateKey.from_private_bytes(bytes(seed))
        self._seed = bytes(seed)
        self._public_raw = _raw_public_bytes(self._priv.public_key())
        if claimed_public is not None and claimed_public != self._public_raw:
            raise ValueError("private_key does not match its embedded public key")
        self._public_key_id = public_key_id
        self._signed_by = signed_by

    @classmethod
    def generate(cls, public_key_id: str, signed_by: str = "") -> "Signer":
        """Create a signer around a freshly generated key pair."""

        return cls.from_key_pair(generate_key_pair(), public_key_id, signed_by)

    @classmethod
    def from_key_pair(
        cls, key_pair: KeyPair, public_key_id: str, signed_by: str = ""
    ) -> "Signer":
        """Create a signer from base64 key material."""

        signer = cls(parse_private_key(key_pair.private_key), public_key_id, signed_by)
        if signer.public_key != key_pair.public_key:
            raise ValueError("key pair public key does not match its private key")
        return signer

    @classmethod
    def from_base64(
        cls, private_key_b64: str, public_key_id: str, signed_by: str = ""
    ) -> "Signer":
        """Create a signer from a base64-encoded 64-byte private key."""

        return cls(parse_private_key(private_key_b64), public_key_id, signed_by)

    @property
    def public_key_id(self) -> str:
        return self._public_key_id

    @property
    def signed_by(self) -> str:
        return self._signed_by

    @property
    def public_key_bytes(self) -> bytes:
        return self._public_raw

    @property
    def public_key(self) -> str:
        """Base64-encoded raw public key."""
        return _b64encode(self._public_raw)

    @property
    def private_key(self) -> str:
        """Base64-encoded 64-byte private key."""
        return _b64encode(self._seed + self._public_raw)

    def key_pair(self) -> KeyPair:
        return KeyPair(public_key=self.public_key, private_key=self.private_key)

    def sign(self, document: Signable) -> Signature:
        """
        Sign ``document`` in place and return the attached signature.

        The signature covers ``document.canonical_bytes()``, which excludes any
        previously attached signature; that signature is replaced.
        """
        data = document.canonical_bytes()
        raw = self._priv.sign(data)
        signature = Signature(
            algorithm=SIGNATURE_ALGORITHM,
            public_key_id=self._public_key_id,
            signature=_b64encode(raw),
            signed_at=datetime.now(timezone.utc),
            signed_by=self._signed_by,
        )
        document.set_signature(signature)
        LOGGER.debug(
            "Signed document",
            extra={"public_key_id": self._public_key_id, "payload_bytes": len(data)},
        )
        return signature


def verify(document: Signable, public_key: PublicKeyLike) -> Signature:
    """
    Verify the signature attached to ``document`` with ``public_key``.

    Returns the verified signature.

    Raises:
        SignatureMissingError: No signature is attached.
        SignatureInvalidError: The stored value is not base64 of a 64-byte
            Ed25519 signature, or names another algorithm.
        SignatureFailedError: The signature does not match the document.
        ValueError: ``public_key`` is not a 32-byte Ed25519 public key.
    """
    signature = document.get_signature()
    if signature is None:
        raise SignatureMissingError("signature required but missing")
    if signature.algorithm != SIGNATURE_ALGORITHM:
        raise SignatureInvalidError(
            f"unsupported signature algorithm: {signature.algorithm}"
        )

    key = _load_public_key(public_key)

    try:
        raw = _b64decode(signature.signature)
    except (binascii.Error, ValueError) as exc:
        raise SignatureInvalidError("signature is not valid base64") from exc
    if len(raw) != SIGNATURE_SIZE:
        raise SignatureInvalidError(
            f"invalid signature size: got {len(raw)}, want {SIGNATURE_SIZE}"
        )

    try:
        key.verify(raw, document.canonical_bytes())
    except InvalidSignature as exc:
        LOGGER.warning(
            "Signature verification failed",
            extra={"public_key_id": signature.public_key_id},
        )
        raise SignatureFailedError("signature verification failed") from exc
    return signature


def verify_with_key_lookup(document: Signable, lookup: KeyLookup) -> Signature:
    """
    Verify ``document`` using the public key that ``lookup`` returns for the
    signature's ``public_key_id``.

    ``lookup`` signals an unknown key by returning ``None`` or raising
    :class:`LookupError` (``KeyError`` included); either becomes
    :class:`SignatureKeyMissingError`.
    """
    signature = document.get_signature()
    if signature is None:
        raise SignatureMissingError("signature required but missing")

    try:
        public_key = lookup(signature.public_key_id)
    except LookupError as exc:
        raise SignatureKeyMissingError(
            f"signing key not found: {signature.public_key_id}"
        ) from exc
    if public_key is None:
        raise SignatureKeyMissingError(
            f"signing key not found: {signature.public_key_id}"
        )
    return verify(document, public_key)
