from __future__ import annotations

import logging
import secrets

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes, padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from .algorithms import CipherAlgorithmSpec, DigestAlgorithmSpec
from .backends import KeyMaterial
from .exceptions import BackendOperationError, format_exception

_logger = logging.getLogger("hsm_openssl.software")

SOFTWARE_BACKEND_NAME = "software"

_AES_BLOCK_BITS = 128


class SoftwareBackend:
    """
    Pure software engine built on the ``cryptography`` package.

    Used whenever the token is absent or fails, and always for MD5 and
    AES-CTR, which the token path does not serve.
    """

    name = SOFTWARE_BACKEND_NAME

    def random_bytes(self, length: int) -> bytes:
        _logger.warning(
            "Generating %d random bytes in software; randomness is not sourced "
            "from the hardware token (lowered assurance).",
            length,
        )
        return secrets.token_bytes(length)

    def digest(self, spec: DigestAlgorithmSpec, data: bytes) -> bytes:
        hasher = hashes.Hash(spec.software_hash())
        hasher.update(data)
        return hasher.finalize()

    def derive_key(
        self,
        password: bytes,
        salt: bytes,
        iterations: int,
        spec: CipherAlgorithmSpec,
    ) -> KeyMaterial:
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=spec.key_bits // 8,
            salt=salt,
            iterations=iterations,
        )
        return KeyMaterial(
            backend=self.name,
            algorithm=spec.name,
            key_bits=spec.key_bits,
            handle=kdf.derive(password),
        )

    def encrypt(
        self,
        key: KeyMaterial,
        spec: CipherAlgorithmSpec,
        iv: bytes,
        plaintext: bytes,
    ) -> bytes:
        secret = key.handle_for(self.name)
        try:
            if spec.mode == "GCM":
                return AESGCM(secret).encrypt(iv, plaintext, None)
            if spec.mode == "CBC":
                padder = padding.PKCS7(_AES_BLOCK_BITS).padder()
                padded = padder.update(plaintext) + padder.finalize()
                encryptor = Cipher(algorithms.AES(secret), modes.CBC(iv)).encryptor()
                return encryptor.update(padded) + encryptor.finalize()
            if spec.mode == "CTR":
                encryptor = Cipher(algorithms.AES(secret), modes.CTR(iv)).encryptor()
                return encryptor.update(plaintext) + encryptor.finalize()
        except ValueError as exc:
            raise BackendOperationError(
                f"{spec.name} encryption failed: {format_exception(exc)}"
            ) from exc
        raise BackendOperationError(f"Unsupported cipher mode: {spec.mode}")

    def decrypt(
        self,
        key: KeyMaterial,
        spec: CipherAlgorithmSpec,
        iv: bytes,
        ciphertext: bytes,
    ) -> bytes:
        secret = key.handle_for(self.name)
        try:
            if spec.mode == "GCM":
                return AESGCM(secret).decrypt(iv, ciphertext, None)
            if spec.mode == "CBC":
                decryptor = Cipher(algorithms.AES(secret), modes.CBC(iv)).decryptor()
                padded = decryptor.update(ciphertext) + decryptor.finalize()
                unpadder = padding.PKCS7(_AES_BLOCK_BITS).unpadder()
                return unpadder.update(padded) + unpadder.finalize()
            if spec.mode == "CTR":
                decryptor = Cipher(algorithms.AES(secret), modes.CTR(iv)).decryptor()
                return decryptor.update(ciphertext) + decryptor.finalize()
        except (InvalidTag, ValueError) as exc:
            raise BackendOperationError(
                f"{spec.name} decryption failed: {format_exception(exc)}"
            ) from exc
        raise BackendOperationError(f"Unsupported cipher mode: {spec.mode}")
