"""
Password-based key derivation shared by both engines.

PBKDF2 with HMAC-SHA256 is fixed on both backends so a key derived on the token
and a key derived in software from the same inputs are identical. A ciphertext
produced on one backend therefore decrypts on the other.
"""

from __future__ import annotations

from .algorithms import CipherAlgorithmSpec
from .backends import CryptoBackend, KeyMaterial
from .exceptions import InvalidLength, MissingCredential

DEFAULT_ITERATIONS = 10_000
DEFAULT_SALT_LENGTH = 16


def validate_iterations(iterations: object) -> int:
    if isinstance(iterations, bool) or not isinstance(iterations, int) or iterations < 1:
        raise InvalidLength(
            f"Iteration count must be a positive integer, got: {iterations!r}"
        )
    return iterations


def password_bytes(password: str | bytes | None) -> bytes:
    if password is None or len(password) == 0:
        raise MissingCredential("A password is required.")
    if isinstance(password, str):
        return password.encode("utf-8")
    return bytes(password)


def derive(
    backend: CryptoBackend,
    password: str | bytes,
    salt: bytes,
    iterations: int,
    spec: CipherAlgorithmSpec,
) -> KeyMaterial:
    if not salt:
        raise InvalidLength("Salt must not be empty.")
    return backend.derive_key(
        password_bytes(password),
        salt,
        validate_iterations(iterations),
        spec,
    )
