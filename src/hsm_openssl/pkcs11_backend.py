from __future__ import annotations

import functools
import hashlib
import logging
import threading
from contextlib import contextmanager
from typing import Any, Iterator

import pkcs11
from pkcs11 import Attribute, KeyType, Mechanism, ObjectClass, TokenFlag

from .algorithms import CipherAlgorithmSpec, DigestAlgorithmSpec
from .backends import KeyMaterial
from .config import BackendConfig
from .exceptions import BackendOperationError, format_exception

_logger = logging.getLogger("hsm_openssl.pkcs11")

PKCS11_BACKEND_NAME = "pkcs11"

_GCM_TAG_BITS = 128

# Mechanisms a token must advertise before it is treated as a usable primary engine.
REQUIRED_MECHANISMS = frozenset({Mechanism.SHA256, Mechanism.AES_CBC_PAD})


_LIBRARY_LOCK = threading.Lock()


@functools.lru_cache(maxsize=None)
def _load_library_unlocked(module_path: str) -> pkcs11.lib:
    return pkcs11.lib(module_path)


def _load_library(module_path: str) -> pkcs11.lib:
    # A PKCS#11 module is initialized once per process; operations run on worker threads.
    with _LIBRARY_LOCK:
        return _load_library_unlocked(module_path)


def _find_token(config: BackendConfig) -> pkcs11.Token:
    if config.module_path is None:
        raise BackendOperationError("No PKCS#11 module is configured.")
    lib = _load_library(config.module_path)
    if config.slot_no is not None:
        for slot in lib.get_slots(token_present=True):
            if slot.slot_id == config.slot_no:
                return slot.get_token()
        raise BackendOperationError(f"No token present in slot {config.slot_no}.")
    return lib.get_token(token_label=config.token_label)


class Pkcs11CapabilityProbe:
    """
    Answers whether the PKCS#11 token can serve as the primary engine.

    The answer is computed once and cached for the lifetime of the probe.
    Absence is not an error: every failure here is logged at DEBUG only.
    """

    def __init__(self, config: BackendConfig) -> None:
        self._config = config
        self._available: bool | None = None

    def primary_available(self) -> bool:
        if self._available is None:
            self._available = self._probe()
        return self._available

    def _probe(self) -> bool:
        if not self._config.primary_configured:
            _logger.debug("Primary backend not configured or disabled.")
            return False
        try:
            token = _find_token(self._config)
            if not token.flags & TokenFlag.RNG:
                _logger.debug("Token %s has no random number generator.", token.label)
                return False
            mechanisms = set(token.slot.get_mechanisms())
        except Exception as exc:
            _logger.debug("Primary backend unavailable: %s", format_exception(exc))
            return False
        missing = REQUIRED_MECHANISMS - mechanisms
        if missing:
            _logger.debug(
                "Token %s lacks required mechanisms: %s",
                token.label,
                ", ".join(sorted(m.name for m in missing)),
            )
            return False
        _logger.info("Primary PKCS#11 backend available token=%s", token.label)
        return True


class Pkcs11Backend:
    """
    Primitive engine backed by a PKCS#11 token.

    Each operation runs in its own session. Derived keys are imported as
    session objects that are sensitive and non-extractable; releasing the
    ``KeyMaterial`` destroys the object and closes its session.
    """

    name = PKCS11_BACKEND_NAME

    def __init__(self, config: BackendConfig) -> None:
        self._config = config

    @contextmanager
    def _session(self, *, login: bool = False) -> Iterator[pkcs11.Session]:
        session = self._open_session(login=login)
        try:
            yield session
        finally:
            session.close()

    def _open_session(self, *, login: bool) -> pkcs11.Session:
        try:
            token = _find_token(self._config)
            if login:
                return token.open(user_pin=self._config.user_pin())
            return token.open()
        except Exception as exc:
            _logger.exception("Failed to open PKCS#11 session.")
            raise BackendOperationError(
                f"Failed to open PKCS#11 session: {format_exception(exc)}"
            ) from exc

    def random_bytes(self, length: int) -> bytes:
        with self._session() as session:
            try:
                data = session.generate_random(length * 8)
            except Exception as exc:
                _logger.exception("Token random generation failed length=%d", length)
                raise BackendOperationError(
                    f"Random generation failed: {format_exception(exc)}"
                ) from exc
        if len(data) != length:
            raise BackendOperationError(
                f"Token returned {len(data)} random bytes, expected {length}."
            )
        return bytes(data)

    def digest(self, spec: DigestAlgorithmSpec, data: bytes) -> bytes:
        if spec.mechanism is None:
            raise BackendOperationError(f"{spec.name} is not available on the token.")
        with self._session() as session:
            try:
                return bytes(session.digest(data, mechanism=spec.mechanism))
            except Exception as exc:
                _logger.exception("Token digest failed algorithm=%s", spec.name)
                raise BackendOperationError(
                    f"{spec.name} digest failed: {format_exception(exc)}"
                ) from exc

    def derive_key(
        self,
        password: bytes,
        salt: bytes,
        iterations: int,
        spec: CipherAlgorithmSpec,
    ) -> KeyMaterial:
        if spec.mechanism is None:
            raise BackendOperationError(f"{spec.name} is not available on the token.")
        session = self._open_session(login=True)
        try:
            # PBKDF2-HMAC-SHA256 must match the software engine bit for bit.
            value = hashlib.pbkdf2_hmac(
                "sha256", password, salt, iterations, dklen=spec.key_bits // 8
            )
            key = session.create_object(
                {
                    Attribute.CLASS: ObjectClass.SECRET_KEY,
                    Attribute.KEY_TYPE: KeyType.AES,
                    Attribute.VALUE: value,
                    Attribute.LABEL: "hsm-openssl-derived",
                    Attribute.TOKEN: False,
                    Attribute.SENSITIVE: True,
                    Attribute.EXTRACTABLE: False,
                    Attribute.ENCRYPT: True,
                    Attribute.DECRYPT: True,
                }
            )
            del value
        except Exception as exc:
            session.close()
            _logger.exception("Token key import failed algorithm=%s", spec.name)
            raise BackendOperationError(
                f"Key derivation failed for {spec.name}: {format_exception(exc)}"
            ) from exc
        _logger.debug(
            "Derived session key algorithm=%s iterations=%d", spec.name, iterations
        )
        return KeyMaterial(
            backend=self.name,
            algorithm=spec.name,
            key_bits=spec.key_bits,
            handle=(session, key),
            release=_release_session_key,
        )

    @staticmethod
    def _mechanism_param(spec: CipherAlgorithmSpec, iv: bytes) -> Any:
        if spec.mode == "GCM":
            return pkcs11.GCMParams(nonce=iv, aad=None, tag_bits=_GCM_TAG_BITS)
        return iv

    def encrypt(
        self,
        key: KeyMaterial,
        spec: CipherAlgorithmSpec,
        iv: bytes,
        plaintext: bytes,
    ) -> bytes:
        _session, secret = key.handle_for(self.name)
        try:
            ciphertext = secret.encrypt(
                plaintext,
                mechanism=spec.mechanism,
                mechanism_param=self._mechanism_param(spec, iv),
            )
        except Exception as exc:
            _logger.exception("Token encryption failed algorithm=%s", spec.name)
            raise BackendOperationError(
                f"{spec.name} encryption failed: {format_exception(exc)}"
            ) from exc
        _logger.debug(
            "%s encryption complete plaintext_size=%d ciphertext_size=%d",
            spec.name,
            len(plaintext),
            len(ciphertext),
        )
        return bytes(ciphertext)

    def decrypt(
        self,
        key: KeyMaterial,
        spec: CipherAlgorithmSpec,
        iv: bytes,
        ciphertext: bytes,
    ) -> bytes:
        _session, secret = key.handle_for(self.name)
        try:
            plaintext = secret.decrypt(
                ciphertext,
                mechanism=spec.mechanism,
                mechanism_param=self._mechanism_param(spec, iv),
            )
        except Exception as exc:
            # Wrong keys surface here as padding or tag errors; not worth a traceback.
            _logger.warning(
                "Token decryption failed algorithm=%s: %s",
                spec.name,
                format_exception(exc),
            )
            raise BackendOperationError(
                f"{spec.name} decryption failed: {format_exception(exc)}"
            ) from exc
        _logger.debug(
            "%s decryption complete ciphertext_size=%d plaintext_size=%d",
            spec.name,
            len(ciphertext),
            len(plaintext),
        )
        return bytes(plaintext)


def _release_session_key(handle: tuple[pkcs11.Session, pkcs11.SecretKey]) -> None:
    session, key = handle
    try:
        key.destroy()
    except Exception as exc:
        _logger.warning("Failed to destroy session key: %s", format_exception(exc))
    finally:
        session.close()
