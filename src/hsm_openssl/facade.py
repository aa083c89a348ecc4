from __future__ import annotations

import asyncio
import functools
import logging
from typing import Iterable, Mapping

from . import dgst as _dgst
from . import enc as _enc
from . import rand as _rand
from . import req as _req
from .backends import CapabilityProbe, CryptoBackend
from .config import BackendConfig
from .dispatch import BackendSet
from .enc import CipherResult
from .pkcs11_backend import Pkcs11Backend, Pkcs11CapabilityProbe
from .req import CsrResult, ParsedRequest
from .software_backend import SoftwareBackend

_logger = logging.getLogger("hsm_openssl.facade")


class HsmOpenSSL:
    """
    OpenSSL-command-shaped interface over a PKCS#11 token and a software engine.

    Every operation prefers the token when it is present and supports the
    requested algorithm, and falls back to the software engine otherwise, or
    once after a runtime failure on the token.

    Example:
        client = HsmOpenSSL()
        digest = await client.dgst(input="Hello World")
        sealed = await client.enc(input="secret", password="pw")
        opened = await client.enc(
            input=sealed.data, decrypt=True, password="pw",
            salt=sealed.salt, iv=sealed.iv,
        )
    """

    def __init__(
        self,
        config: BackendConfig | None = None,
        *,
        primary: CryptoBackend | None = None,
        fallback: CryptoBackend | None = None,
        probe: CapabilityProbe | None = None,
    ) -> None:
        self.config = config if config is not None else BackendConfig.from_env()
        self.backends = BackendSet(
            primary=primary if primary is not None else Pkcs11Backend(self.config),
            fallback=fallback if fallback is not None else SoftwareBackend(),
            probe=probe if probe is not None else Pkcs11CapabilityProbe(self.config),
        )

    def is_primary_backend_available(self) -> bool:
        return self.backends.primary_available()

    async def rand(
        self,
        *,
        length: int = _rand.DEFAULT_RANDOM_LENGTH,
        base64: bool = False,
        hex: bool = False,
        raw: bool = False,
    ) -> str | bytes:
        return await asyncio.to_thread(
            _rand.rand, self.backends, length=length, base64=base64, hex=hex, raw=raw
        )

    async def digest(
        self,
        *,
        algorithm: str = "SHA-256",
        input: object = None,
        base64: bool = False,
        hex: bool = True,
        raw: bool = False,
        input_encoding: str | None = None,
    ) -> str | bytes:
        return await asyncio.to_thread(
            _dgst.dgst,
            self.backends,
            algorithm=algorithm,
            input=input,
            base64=base64,
            hex=hex,
            raw=raw,
            input_encoding=input_encoding,
        )

    async def cipher(
        self,
        *,
        algorithm: str = _enc.DEFAULT_CIPHER_ALGORITHM,
        input: object = None,
        decrypt: bool = False,
        password: str | bytes | None = None,
        salt: str | bytes | None = None,
        iv: str | bytes | None = None,
        iterations: int | None = None,
        base64: bool = False,
        hex: bool = False,
        raw: bool = False,
        input_encoding: str | None = None,
    ) -> CipherResult:
        return await asyncio.to_thread(
            _enc.cipher,
            self.backends,
            algorithm=algorithm,
            input=input,
            decrypt=decrypt,
            password=password,
            salt=salt,
            iv=iv,
            iterations=(
                iterations if iterations is not None else self.config.pbkdf2_iterations
            ),
            base64=base64,
            hex=hex,
            raw=raw,
            input_encoding=input_encoding,
        )

    async def generate_request(
        self,
        *,
        subject: str,
        key_size: int = _req.DEFAULT_KEY_SIZE,
        key_algorithm: str = _req.DEFAULT_KEY_ALGORITHM,
        hash_algorithm: str = _req.DEFAULT_HASH_ALGORITHM,
        extensions: Mapping[str, str | Iterable[str] | bool] | None = None,
        base64: bool = False,
        return_private_key: bool = True,
    ) -> CsrResult:
        _req.require_subject(subject)
        _req.require_key_algorithm(key_algorithm)
        _req.require_hash_algorithm(hash_algorithm)
        # RSA key generation blocks for a noticeable time at larger sizes.
        private_key = await asyncio.to_thread(_req.generate_private_key, key_size)
        return _req.build_request(
            private_key,
            subject=subject,
            hash_algorithm=hash_algorithm,
            extensions=extensions,
            base64=base64,
            return_private_key=return_private_key,
        )

    async def parse_request(
        self, pem: str | bytes, base64: bool = False
    ) -> ParsedRequest:
        return _req.parse_request(pem, base64=base64)

    dgst = digest
    enc = cipher
    req = generate_request


@functools.lru_cache(maxsize=1)
def default_client() -> HsmOpenSSL:
    """Process-wide client configured from the environment."""
    client = HsmOpenSSL()
    _logger.debug(
        "Default client created primary_available=%s",
        client.is_primary_backend_available(),
    )
    return client


async def rand(**kwargs: object) -> str | bytes:
    return await default_client().rand(**kwargs)


async def digest(**kwargs: object) -> str | bytes:
    return await default_client().digest(**kwargs)


async def cipher(**kwargs: object) -> CipherResult:
    return await default_client().cipher(**kwargs)


async def generate_request(**kwargs: object) -> CsrResult:
    return await default_client().generate_request(**kwargs)


async def parse_request(pem: str | bytes, base64: bool = False) -> ParsedRequest:
    return await default_client().parse_request(pem, base64=base64)


def is_primary_backend_available() -> bool:
    return default_client().is_primary_backend_available()


dgst = digest
enc = cipher
req = generate_request
