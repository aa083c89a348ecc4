from __future__ import annotations

import enum
import re
from dataclasses import dataclass

from cryptography.hazmat.primitives import hashes
from pkcs11 import Mechanism

from .exceptions import UnsupportedAlgorithm


class Route(enum.Enum):
    PRIMARY = "primary"
    FALLBACK = "fallback"
    UNSUPPORTED = "unsupported"


@dataclass(frozen=True)
class DigestAlgorithmSpec:
    """Digest mapping for both engines; ``mechanism`` is None when the token path is never used."""

    name: str
    digest_size: int
    software_hash: type[hashes.HashAlgorithm]
    mechanism: Mechanism | None = None

    @property
    def primary_supported(self) -> bool:
        return self.mechanism is not None


@dataclass(frozen=True)
class CipherAlgorithmSpec:
    """AES mode mapping for both engines."""

    name: str
    mode: str
    key_bits: int
    mechanism: Mechanism | None = None

    @property
    def primary_supported(self) -> bool:
        return self.mechanism is not None

    @property
    def authenticated(self) -> bool:
        return self.mode == "GCM"


DIGEST_ALGORITHM_SPECS: dict[str, DigestAlgorithmSpec] = {
    "SHA-1": DigestAlgorithmSpec(
        name="SHA-1",
        digest_size=20,
        software_hash=hashes.SHA1,
        mechanism=Mechanism.SHA_1,
    ),
    "SHA-224": DigestAlgorithmSpec(
        name="SHA-224",
        digest_size=28,
        software_hash=hashes.SHA224,
        mechanism=Mechanism.SHA224,
    ),
    "SHA-256": DigestAlgorithmSpec(
        name="SHA-256",
        digest_size=32,
        software_hash=hashes.SHA256,
        mechanism=Mechanism.SHA256,
    ),
    "SHA-384": DigestAlgorithmSpec(
        name="SHA-384",
        digest_size=48,
        software_hash=hashes.SHA384,
        mechanism=Mechanism.SHA384,
    ),
    "SHA-512": DigestAlgorithmSpec(
        name="SHA-512",
        digest_size=64,
        software_hash=hashes.SHA512,
        mechanism=Mechanism.SHA512,
    ),
    # Never routed to the token.
    "MD5": DigestAlgorithmSpec(
        name="MD5",
        digest_size=16,
        software_hash=hashes.MD5,
    ),
}

_CIPHER_MODE_MECHANISMS: dict[str, Mechanism | None] = {
    "CBC": Mechanism.AES_CBC_PAD,
    "GCM": Mechanism.AES_GCM,
    "CTR": None,
}

CIPHER_ALGORITHM_SPECS: dict[str, CipherAlgorithmSpec] = {
    f"AES-{bits}-{mode}": CipherAlgorithmSpec(
        name=f"AES-{bits}-{mode}",
        mode=mode,
        key_bits=bits,
        mechanism=mechanism,
    )
    for bits in (128, 192, 256)
    for mode, mechanism in _CIPHER_MODE_MECHANISMS.items()
}

DEFAULT_AES_KEY_BITS = 256

_DIGEST_NAME_RE = re.compile(r"^(SHA|MD)[-_ ]?(\d+)$")
_CIPHER_NAME_RE = re.compile(r"^AES[-_]?(\d+)?[-_]([A-Z]+)$")


def normalize_digest_name(algorithm: str) -> str:
    """Map ``sha256``, ``SHA-256``, ``sha_256`` to the canonical ``SHA-256``."""
    upper = algorithm.strip().upper()
    match = _DIGEST_NAME_RE.fullmatch(upper)
    if match is None:
        return upper
    family, size = match.groups()
    if family == "MD":
        return f"MD{size}"
    return f"SHA-{size}"


def normalize_cipher_name(algorithm: str) -> str:
    upper = algorithm.strip().upper()
    match = _CIPHER_NAME_RE.fullmatch(upper)
    if match is None:
        return upper
    bits, mode = match.groups()
    return f"AES-{bits or DEFAULT_AES_KEY_BITS}-{mode}"


def _lookup(algorithm: str) -> DigestAlgorithmSpec | CipherAlgorithmSpec | None:
    digest_spec = DIGEST_ALGORITHM_SPECS.get(normalize_digest_name(algorithm))
    if digest_spec is not None:
        return digest_spec
    return CIPHER_ALGORITHM_SPECS.get(normalize_cipher_name(algorithm))


def resolve(algorithm: str, *, primary_available: bool) -> Route:
    spec = _lookup(algorithm)
    if spec is None:
        return Route.UNSUPPORTED
    if primary_available and spec.primary_supported:
        return Route.PRIMARY
    return Route.FALLBACK


def require_digest_algorithm(algorithm: str) -> DigestAlgorithmSpec:
    spec = DIGEST_ALGORITHM_SPECS.get(normalize_digest_name(algorithm))
    if spec is None:
        available = ", ".join(sorted(DIGEST_ALGORITHM_SPECS.keys()))
        raise UnsupportedAlgorithm(
            f"Unsupported digest algorithm '{algorithm}'. Available: {available}"
        )
    return spec


def require_cipher_algorithm(algorithm: str) -> CipherAlgorithmSpec:
    spec = CIPHER_ALGORITHM_SPECS.get(normalize_cipher_name(algorithm))
    if spec is None:
        available = ", ".join(sorted(CIPHER_ALGORITHM_SPECS.keys()))
        raise UnsupportedAlgorithm(
            f"Unsupported cipher algorithm '{algorithm}'. Available: {available}"
        )
    return spec


def list_digest_algorithms() -> tuple[str, ...]:
    return tuple(sorted(DIGEST_ALGORITHM_SPECS.keys()))


def list_cipher_algorithms() -> tuple[str, ...]:
    return tuple(sorted(CIPHER_ALGORITHM_SPECS.keys()))
