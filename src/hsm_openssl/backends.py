from __future__ import annotations

from typing import Any, Callable, Protocol

from .algorithms import CipherAlgorithmSpec, DigestAlgorithmSpec
from .exceptions import BackendOperationError


class KeyMaterial:
    """
    Symmetric key bound to the backend that derived it.

    The handle is opaque: a token object for the PKCS#11 backend, an in-memory
    secret for the software backend. There is no export. Use as a context
    manager so the handle is released when the cipher call finishes.
    """

    __slots__ = ("backend", "algorithm", "key_bits", "_handle", "_release")

    def __init__(
        self,
        *,
        backend: str,
        algorithm: str,
        key_bits: int,
        handle: Any,
        release: Callable[[Any], None] | None = None,
    ) -> None:
        self.backend = backend
        self.algorithm = algorithm
        self.key_bits = key_bits
        self._handle = handle
        self._release = release

    def __repr__(self) -> str:
        state = "closed" if self._handle is None else "open"
        return (
            f"KeyMaterial(backend={self.backend!r}, algorithm={self.algorithm!r}, "
            f"key_bits={self.key_bits}, {state})"
        )

    def __enter__(self) -> "KeyMaterial":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    @property
    def closed(self) -> bool:
        return self._handle is None

    def handle_for(self, backend: str) -> Any:
        if backend != self.backend:
            raise BackendOperationError(
                f"Key material derived by '{self.backend}' cannot be used by '{backend}'."
            )
        if self._handle is None:
            raise BackendOperationError("Key material has already been released.")
        return self._handle

    def close(self) -> None:
        handle, self._handle = self._handle, None
        if handle is not None and self._release is not None:
            self._release(handle)


class CryptoBackend(Protocol):
    """Operation set shared by the token engine and the software engine."""

    name: str

    def random_bytes(self, length: int) -> bytes: ...

    def digest(self, spec: DigestAlgorithmSpec, data: bytes) -> bytes: ...

    def derive_key(
        self,
        password: bytes,
        salt: bytes,
        iterations: int,
        spec: CipherAlgorithmSpec,
    ) -> KeyMaterial: ...

    def encrypt(
        self,
        key: KeyMaterial,
        spec: CipherAlgorithmSpec,
        iv: bytes,
        plaintext: bytes,
    ) -> bytes: ...

    def decrypt(
        self,
        key: KeyMaterial,
        spec: CipherAlgorithmSpec,
        iv: bytes,
        ciphertext: bytes,
    ) -> bytes: ...


class CapabilityProbe(Protocol):
    def primary_available(self) -> bool: ...


class StaticCapabilityProbe:
    """Probe with a fixed answer, for callers that already know the runtime."""

    def __init__(self, available: bool) -> None:
        self._available = available

    def primary_available(self) -> bool:
        return self._available
