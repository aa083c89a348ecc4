"""
Conversions between external text encodings and canonical bytes.

Every operation normalizes caller input through ``decode``/``coerce_bytes``
before touching a backend, and formats results through ``encode``.
"""

from __future__ import annotations

import base64
import binascii
import enum
import logging
import re
from typing import Union

from .exceptions import FormatError

_logger = logging.getLogger("hsm_openssl.codec")

BytesLike = Union[bytes, bytearray, memoryview]

_HEX_RE = re.compile(r"^[0-9a-fA-F]*$")
_WHITESPACE_RE = re.compile(r"\s+")


class OutputEncoding(enum.Enum):
    RAW = "raw"
    BASE64 = "base64"
    HEX = "hex"
    UTF8 = "utf8"


_ENCODING_ALIASES = {
    "raw": OutputEncoding.RAW,
    "binary": OutputEncoding.RAW,
    "base64": OutputEncoding.BASE64,
    "b64": OutputEncoding.BASE64,
    "hex": OutputEncoding.HEX,
    "utf8": OutputEncoding.UTF8,
    "utf_8": OutputEncoding.UTF8,
    "text": OutputEncoding.UTF8,
}


def parse_encoding(encoding: OutputEncoding | str) -> OutputEncoding:
    if isinstance(encoding, OutputEncoding):
        return encoding
    normalized = str(encoding).strip().lower().replace("-", "_")
    resolved = _ENCODING_ALIASES.get(normalized)
    if resolved is None:
        available = ", ".join(sorted(e.value for e in OutputEncoding))
        raise FormatError(f"Unknown encoding '{encoding}'. Available: {available}")
    return resolved


def select_output_encoding(
    *,
    raw: bool = False,
    base64: bool = False,
    hex: bool = False,
    default: OutputEncoding = OutputEncoding.UTF8,
) -> OutputEncoding:
    """Pick the single effective encoding: raw > base64 > hex > default."""
    if sum(bool(flag) for flag in (raw, base64, hex)) > 1:
        _logger.debug(
            "Multiple output flags set (raw=%s base64=%s hex=%s); applying priority order.",
            raw,
            base64,
            hex,
        )
    if raw:
        return OutputEncoding.RAW
    if base64:
        return OutputEncoding.BASE64
    if hex:
        return OutputEncoding.HEX
    return default


def hex_decode(text: str) -> bytes:
    if len(text) % 2 != 0:
        raise FormatError(f"Hex input must have an even length, got {len(text)}.")
    if not _HEX_RE.fullmatch(text):
        raise FormatError("Hex input contains non-hexadecimal characters.")
    return bytes.fromhex(text)


def base64_decode(text: str) -> bytes:
    try:
        return base64.b64decode(text.encode("ascii"), validate=True)
    except (binascii.Error, UnicodeEncodeError) as exc:
        raise FormatError(f"Invalid base64 input: {exc}") from exc


def decode(text: str | BytesLike, encoding: OutputEncoding | str) -> bytes:
    resolved = parse_encoding(encoding)
    if not isinstance(text, str):
        return bytes(text)
    if resolved is OutputEncoding.HEX:
        return hex_decode(text)
    if resolved is OutputEncoding.BASE64:
        return base64_decode(text)
    if resolved is OutputEncoding.UTF8:
        return text.encode("utf-8")
    raise FormatError("Raw encoding expects bytes input, not text.")


def encode(data: BytesLike, encoding: OutputEncoding | str) -> str | bytes:
    resolved = parse_encoding(encoding)
    payload = bytes(data)
    if resolved is OutputEncoding.RAW:
        return payload
    if resolved is OutputEncoding.BASE64:
        return base64.b64encode(payload).decode("ascii")
    if resolved is OutputEncoding.HEX:
        return payload.hex()
    try:
        return payload.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise FormatError(
            "Result is not valid UTF-8 text; request raw, hex or base64 output."
        ) from exc


def coerce_bytes(
    value: object,
    encoding: OutputEncoding | str = OutputEncoding.UTF8,
    *,
    field: str = "input",
) -> bytes:
    """Normalize caller-supplied ``str`` or bytes-like data to ``bytes``."""
    if isinstance(value, str):
        try:
            return decode(value, encoding)
        except FormatError as exc:
            raise FormatError(f"Cannot decode {field}: {exc.reason}") from exc
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    raise FormatError(
        f"Unsupported {field} type {type(value).__name__}; expected str or bytes."
    )


def strip_pem_armor(pem_text: str) -> str:
    lines = [
        line
        for line in pem_text.strip().splitlines()
        if not line.startswith("-----")
    ]
    return _WHITESPACE_RE.sub("", "".join(lines))


def armor_pem(label: str, payload_b64: str) -> str:
    body = _WHITESPACE_RE.sub("", payload_b64)
    wrapped = "\n".join(body[i : i + 64] for i in range(0, len(body), 64))
    return f"-----BEGIN {label}-----\n{wrapped}\n-----END {label}-----\n"
