from __future__ import annotations

import logging

from .algorithms import require_digest_algorithm
from .backends import CryptoBackend
from .codec import OutputEncoding, coerce_bytes, encode, select_output_encoding
from .dispatch import BackendSet, Dispatched
from .exceptions import BackendOperationError, InputRequired

_logger = logging.getLogger("hsm_openssl.dgst")


def compute_digest(
    backends: BackendSet,
    algorithm: str,
    data: bytes,
) -> Dispatched[bytes]:
    """
    Hash ``data`` on the routed backend.

    MD5 always runs in software. For every other algorithm a token failure is
    logged and the digest is recomputed in software; the call only fails when
    the software engine fails too.
    """
    spec = require_digest_algorithm(algorithm)

    def _call(backend: CryptoBackend) -> bytes:
        value = backend.digest(spec, data)
        if len(value) != spec.digest_size:
            raise BackendOperationError(
                f"{spec.name} digest from {backend.name} has {len(value)} bytes, "
                f"expected {spec.digest_size}."
            )
        return value

    return backends.run(
        operation="dgst",
        algorithm=spec.name,
        route=backends.route(spec.name),
        call=_call,
    )


def dgst(
    backends: BackendSet,
    *,
    algorithm: str = "SHA-256",
    input: object = None,
    base64: bool = False,
    hex: bool = True,
    raw: bool = False,
    input_encoding: str | None = None,
) -> str | bytes:
    if input is None or input == "":
        raise InputRequired("Input data is required for hashing.")
    encoding = select_output_encoding(
        raw=raw, base64=base64, hex=hex, default=OutputEncoding.HEX
    )
    data = coerce_bytes(input, input_encoding or OutputEncoding.UTF8)
    result = compute_digest(backends, algorithm, data)
    _logger.debug(
        "dgst algorithm=%s input_size=%d backend=%s fell_back=%s",
        algorithm,
        len(data),
        result.backend,
        result.fell_back,
    )
    return encode(result.value, encoding)
