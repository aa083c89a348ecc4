from __future__ import annotations

import pytest

from hsm_openssl import FormatError, OutputEncoding
from hsm_openssl.codec import (
    armor_pem,
    coerce_bytes,
    decode,
    encode,
    parse_encoding,
    select_output_encoding,
    strip_pem_armor,
)


def test_output_flag_priority_is_raw_then_base64_then_hex() -> None:
    assert select_output_encoding(raw=True, base64=True, hex=True) is OutputEncoding.RAW
    assert select_output_encoding(base64=True, hex=True) is OutputEncoding.BASE64
    assert select_output_encoding(hex=True) is OutputEncoding.HEX
    assert (
        select_output_encoding(default=OutputEncoding.BASE64) is OutputEncoding.BASE64
    )


def test_encode_formats() -> None:
    payload = b"\x00\xffHi"
    assert encode(payload, OutputEncoding.RAW) == payload
    assert encode(payload, OutputEncoding.HEX) == "00ff4869"
    assert encode(payload, OutputEncoding.BASE64) == "AP9IaQ=="
    assert encode(b"Hi", "utf8") == "Hi"


def test_encode_utf8_rejects_binary_result() -> None:
    with pytest.raises(FormatError):
        encode(b"\xff\xfe", OutputEncoding.UTF8)


@pytest.mark.parametrize("text", ["abc", "zz", "0g"])
def test_hex_decode_rejects_malformed_input(text: str) -> None:
    with pytest.raises(FormatError):
        decode(text, OutputEncoding.HEX)


def test_hex_decode_accepts_mixed_case() -> None:
    assert decode("00FFab", "hex") == b"\x00\xff\xab"


def test_base64_decode_rejects_invalid_alphabet() -> None:
    with pytest.raises(FormatError):
        decode("not*base64", OutputEncoding.BASE64)


def test_raw_encoding_requires_bytes() -> None:
    assert decode(b"\x01\x02", OutputEncoding.RAW) == b"\x01\x02"
    with pytest.raises(FormatError):
        decode("text", OutputEncoding.RAW)


def test_coerce_bytes_names_the_field_and_rejects_other_types() -> None:
    assert coerce_bytes(bytearray(b"ab")) == b"ab"
    assert coerce_bytes("hé") == "hé".encode("utf-8")
    with pytest.raises(FormatError, match="salt"):
        coerce_bytes("xyz", OutputEncoding.HEX, field="salt")
    with pytest.raises(FormatError):
        coerce_bytes(123)


def test_parse_encoding_aliases_and_unknown_name() -> None:
    assert parse_encoding("B64") is OutputEncoding.BASE64
    assert parse_encoding("utf-8") is OutputEncoding.UTF8
    with pytest.raises(FormatError):
        parse_encoding("rot13")


def test_pem_armor_wraps_at_64_columns_and_strips_back() -> None:
    body = "A" * 100
    armored = armor_pem("CERTIFICATE REQUEST", body)
    lines = armored.strip().splitlines()

    assert lines[0] == "-----BEGIN CERTIFICATE REQUEST-----"
    assert lines[-1] == "-----END CERTIFICATE REQUEST-----"
    assert [len(line) for line in lines[1:-1]] == [64, 36]
    assert strip_pem_armor(armored) == body


@pytest.mark.parametrize(
    "encoding", [OutputEncoding.RAW, OutputEncoding.BASE64, OutputEncoding.HEX]
)
def test_decode_inverts_encode(encoding: OutputEncoding) -> None:
    payload = bytes(range(256))
    assert decode(encode(payload, encoding), encoding) == payload
