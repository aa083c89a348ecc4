from __future__ import annotations

import logging
from dataclasses import dataclass

from . import kdf
from .algorithms import CipherAlgorithmSpec, require_cipher_algorithm
from .backends import CryptoBackend
from .codec import OutputEncoding, coerce_bytes, encode, select_output_encoding
from .dispatch import BackendSet, Dispatched
from .exceptions import (
    BackendOperationError,
    DecryptionFailed,
    FormatError,
    InputRequired,
    InvalidLength,
    MissingCredential,
)
from .rand import random_bytes

_logger = logging.getLogger("hsm_openssl.enc")

DEFAULT_CIPHER_ALGORITHM = "AES-256-CBC"
DEFAULT_IV_LENGTH = 16
BLOCK_IV_LENGTH = 16
GCM_IV_MIN_LENGTH = 8
GCM_IV_MAX_LENGTH = 128


@dataclass(frozen=True)
class CipherResult:
    """
    Output of an ``enc`` call.

    ``data``, ``iv`` and ``salt`` are ``bytes`` in raw mode and text otherwise.
    Feeding ``iv`` and ``salt`` back unmodified into a decrypt call with the
    same output flags reproduces the original plaintext.
    """

    data: str | bytes
    iv: str | bytes
    salt: str | bytes
    algorithm: str
    backend: str

    def to_dict(self) -> dict[str, str | bytes]:
        return {"data": self.data, "iv": self.iv, "salt": self.salt}


def validate_iv(spec: CipherAlgorithmSpec, iv: bytes) -> bytes:
    if spec.mode == "GCM":
        if not GCM_IV_MIN_LENGTH <= len(iv) <= GCM_IV_MAX_LENGTH:
            raise InvalidLength(
                f"{spec.name} IV must be between {GCM_IV_MIN_LENGTH} and "
                f"{GCM_IV_MAX_LENGTH} bytes, got {len(iv)}."
            )
    elif len(iv) != BLOCK_IV_LENGTH:
        raise InvalidLength(
            f"{spec.name} IV must be {BLOCK_IV_LENGTH} bytes, got {len(iv)}."
        )
    return iv


def transform(
    backends: BackendSet,
    *,
    spec: CipherAlgorithmSpec,
    data: bytes,
    password: str | bytes,
    salt: bytes,
    iv: bytes,
    iterations: int,
    decrypt: bool,
) -> Dispatched[bytes]:
    """
    Derive the key and run the block cipher on the routed backend.

    The fallback attempt reuses the exact salt, IV and iteration count of the
    primary attempt, so a ciphertext stays decryptable whichever backend ran.
    """

    def _call(backend: CryptoBackend) -> bytes:
        with kdf.derive(backend, password, salt, iterations, spec) as key:
            if decrypt:
                return backend.decrypt(key, spec, iv, data)
            return backend.encrypt(key, spec, iv, data)

    return backends.run(
        operation="dec" if decrypt else "enc",
        algorithm=spec.name,
        route=backends.route(spec.name),
        call=_call,
        failure=DecryptionFailed if decrypt else BackendOperationError,
    )


def cipher(
    backends: BackendSet,
    *,
    algorithm: str = DEFAULT_CIPHER_ALGORITHM,
    input: object = None,
    decrypt: bool = False,
    password: str | bytes | None = None,
    salt: str | bytes | None = None,
    iv: str | bytes | None = None,
    iterations: int = kdf.DEFAULT_ITERATIONS,
    base64: bool = False,
    hex: bool = False,
    raw: bool = False,
    input_encoding: str | None = None,
) -> CipherResult:
    """
    Encrypt or decrypt with a PBKDF2-derived AES key (``openssl enc``).

    The selected output encoding (raw > base64 > hex, base64 by default)
    applies to the ciphertext, IV and salt in both directions. Plaintext is
    UTF-8 text, or bytes in raw mode.
    """
    if input is None or input == "":
        raise InputRequired("Input data is required.")
    if not password:
        raise MissingCredential(
            "Password required for decryption."
            if decrypt
            else "Password required for encryption."
        )
    if decrypt and not iv:
        raise MissingCredential("IV required for decryption.")

    spec = require_cipher_algorithm(algorithm)
    resolved_iterations = kdf.validate_iterations(iterations)
    encoding = select_output_encoding(
        raw=raw, base64=base64, hex=hex, default=OutputEncoding.BASE64
    )

    if decrypt:
        data = coerce_bytes(input, input_encoding or encoding, field="ciphertext")
    else:
        data = coerce_bytes(
            input, input_encoding or OutputEncoding.UTF8, field="plaintext"
        )

    salt_bytes = coerce_bytes(salt, encoding, field="salt") if salt is not None else None
    if salt_bytes is not None and not salt_bytes:
        raise InvalidLength("Salt must not be empty.")
    iv_bytes = None
    if iv is not None:
        iv_bytes = validate_iv(spec, coerce_bytes(iv, encoding, field="iv"))

    if salt_bytes is None:
        if decrypt:
            _logger.warning(
                "Decrypting %s without a salt; a freshly generated salt cannot "
                "reproduce the encryption key.",
                spec.name,
            )
        salt_bytes = random_bytes(backends, kdf.DEFAULT_SALT_LENGTH).value
    if iv_bytes is None:
        iv_bytes = random_bytes(backends, DEFAULT_IV_LENGTH).value

    result = transform(
        backends,
        spec=spec,
        data=data,
        password=password,
        salt=salt_bytes,
        iv=iv_bytes,
        iterations=resolved_iterations,
        decrypt=decrypt,
    )
    _logger.info(
        "%s complete algorithm=%s backend=%s fell_back=%s iterations=%d",
        "Decryption" if decrypt else "Encryption",
        spec.name,
        result.backend,
        result.fell_back,
        resolved_iterations,
    )

    if decrypt and encoding is not OutputEncoding.RAW:
        try:
            output = encode(result.value, OutputEncoding.UTF8)
        except FormatError as exc:
            raise DecryptionFailed(
                f"Decryption failed for {spec.name}: result is not valid UTF-8 text. "
                "Check the password, algorithm and mode."
            ) from exc
    elif decrypt:
        output = result.value
    else:
        output = encode(result.value, encoding)
    return CipherResult(
        data=output,
        iv=encode(iv_bytes, encoding),
        salt=encode(salt_bytes, encoding),
        algorithm=spec.name,
        backend=result.backend,
    )
