from __future__ import annotations

import logging

from .codec import OutputEncoding, encode, select_output_encoding
from .dispatch import BackendSet, Dispatched
from .exceptions import InvalidLength

_logger = logging.getLogger("hsm_openssl.rand")

DEFAULT_RANDOM_LENGTH = 32


def validate_length(length: object) -> int:
    if isinstance(length, bool) or not isinstance(length, int) or length <= 0:
        raise InvalidLength(f"Length must be a positive integer, got: {length!r}")
    return length


def random_bytes(backends: BackendSet, length: int) -> Dispatched[bytes]:
    """Draw ``length`` bytes from the token RNG, or from software after a logged downgrade."""
    resolved = validate_length(length)
    return backends.run(
        operation="rand",
        algorithm="RNG",
        route=backends.route(),
        call=lambda backend: backend.random_bytes(resolved),
    )


def rand(
    backends: BackendSet,
    *,
    length: int = DEFAULT_RANDOM_LENGTH,
    base64: bool = False,
    hex: bool = False,
    raw: bool = False,
) -> str | bytes:
    encoding = select_output_encoding(
        raw=raw, base64=base64, hex=hex, default=OutputEncoding.BASE64
    )
    result = random_bytes(backends, length)
    _logger.debug(
        "rand length=%d encoding=%s backend=%s", length, encoding.value, result.backend
    )
    return encode(result.value, encoding)
