from __future__ import annotations

import hashlib
import os

import pytest

from hsm_openssl import (
    BackendConfig,
    BackendOperationError,
    HsmOpenSSL,
    KeyMaterial,
    SoftwareBackend,
    StaticCapabilityProbe,
)
from hsm_openssl.algorithms import CipherAlgorithmSpec, DigestAlgorithmSpec


class FakeTokenBackend:
    """Stands in for a PKCS#11 token; derives keys the same way a real token import does."""

    name = "pkcs11"

    def __init__(self) -> None:
        self.calls: list[str] = []
        self._engine = SoftwareBackend()

    def random_bytes(self, length: int) -> bytes:
        self.calls.append("random_bytes")
        return os.urandom(length)

    def digest(self, spec: DigestAlgorithmSpec, data: bytes) -> bytes:
        self.calls.append(f"digest:{spec.name}")
        return hashlib.new(spec.name.replace("-", "").lower(), data).digest()

    def derive_key(
        self,
        password: bytes,
        salt: bytes,
        iterations: int,
        spec: CipherAlgorithmSpec,
    ) -> KeyMaterial:
        self.calls.append(f"derive_key:{spec.name}")
        value = hashlib.pbkdf2_hmac(
            "sha256", password, salt, iterations, dklen=spec.key_bits // 8
        )
        return KeyMaterial(
            backend=self.name,
            algorithm=spec.name,
            key_bits=spec.key_bits,
            handle=value,
        )

    def _software_key(self, key: KeyMaterial) -> KeyMaterial:
        return KeyMaterial(
            backend=self._engine.name,
            algorithm=key.algorithm,
            key_bits=key.key_bits,
            handle=key.handle_for(self.name),
        )

    def encrypt(
        self, key: KeyMaterial, spec: CipherAlgorithmSpec, iv: bytes, plaintext: bytes
    ) -> bytes:
        self.calls.append(f"encrypt:{spec.name}")
        return self._engine.encrypt(self._software_key(key), spec, iv, plaintext)

    def decrypt(
        self, key: KeyMaterial, spec: CipherAlgorithmSpec, iv: bytes, ciphertext: bytes
    ) -> bytes:
        self.calls.append(f"decrypt:{spec.name}")
        return self._engine.decrypt(self._software_key(key), spec, iv, ciphertext)


class FailingBackend:
    """Every call fails the way a token that was unplugged mid-session does."""

    def __init__(self, name: str = "pkcs11") -> None:
        self.name = name
        self.calls: list[str] = []

    def _fail(self, operation: str) -> None:
        self.calls.append(operation)
        raise BackendOperationError(f"{self.name} {operation} failed: device removed")

    def random_bytes(self, length: int) -> bytes:
        self._fail("random_bytes")

    def digest(self, spec: DigestAlgorithmSpec, data: bytes) -> bytes:
        self._fail("digest")

    def derive_key(
        self,
        password: bytes,
        salt: bytes,
        iterations: int,
        spec: CipherAlgorithmSpec,
    ) -> KeyMaterial:
        self._fail("derive_key")

    def encrypt(
        self, key: KeyMaterial, spec: CipherAlgorithmSpec, iv: bytes, plaintext: bytes
    ) -> bytes:
        self._fail("encrypt")

    def decrypt(
        self, key: KeyMaterial, spec: CipherAlgorithmSpec, iv: bytes, ciphertext: bytes
    ) -> bytes:
        self._fail("decrypt")


@pytest.fixture
def token_backend() -> FakeTokenBackend:
    return FakeTokenBackend()


@pytest.fixture
def failing_backend() -> FailingBackend:
    return FailingBackend()


@pytest.fixture
def software_client(token_backend: FakeTokenBackend) -> HsmOpenSSL:
    """Client whose primary backend is absent."""
    return HsmOpenSSL(
        BackendConfig(),
        primary=token_backend,
        probe=StaticCapabilityProbe(False),
    )


@pytest.fixture
def token_client(token_backend: FakeTokenBackend) -> HsmOpenSSL:
    return HsmOpenSSL(
        BackendConfig(),
        primary=token_backend,
        probe=StaticCapabilityProbe(True),
    )


@pytest.fixture
def failing_token_client(failing_backend: FailingBackend) -> HsmOpenSSL:
    return HsmOpenSSL(
        BackendConfig(),
        primary=failing_backend,
        probe=StaticCapabilityProbe(True),
    )
