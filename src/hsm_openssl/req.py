from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, padding, rsa

from .codec import armor_pem, strip_pem_armor
from .exceptions import (
    HsmOpenSSLError,
    RequestGenerationFailed,
    RequestParsingFailed,
    UnsupportedAlgorithm,
    format_exception,
)
from .x509_ops import (
    build_requested_extensions,
    build_subject_name,
    create_certificate_signing_request,
    describe_extensions,
    describe_public_key,
    describe_subject,
    dump_csr_pem,
    get_requested_extensions,
    load_certificate_signing_request,
    load_public_key_info,
    normalize_hash_name,
    parse_subject,
    supported_signature_hashes,
)

_logger = logging.getLogger("hsm_openssl.req")

DEFAULT_KEY_SIZE = 2048
DEFAULT_KEY_ALGORITHM = "RSA"
DEFAULT_HASH_ALGORITHM = "sha256"
RSA_PUBLIC_EXPONENT = 65537

_HASHES: dict[str, type[hashes.HashAlgorithm]] = {
    "sha1": hashes.SHA1,
    "sha224": hashes.SHA224,
    "sha256": hashes.SHA256,
    "sha384": hashes.SHA384,
    "sha512": hashes.SHA512,
}


@dataclass(frozen=True)
class CsrResult:
    csr: str
    private_key: str | None = None

    def to_dict(self) -> dict[str, str | None]:
        return {"csr": self.csr, "private_key": self.private_key}


@dataclass(frozen=True)
class ParsedRequest:
    """Structured view of a verified certification request."""

    subject: list[tuple[str, str]]
    public_key: dict[str, Any]
    extensions: list[dict[str, Any]] = field(default_factory=list)


def require_subject(subject: str) -> str:
    if not subject or not subject.strip():
        raise RequestGenerationFailed("Subject is required.")
    return subject


def require_key_algorithm(key_algorithm: str) -> str:
    normalized = key_algorithm.strip().upper()
    if normalized != "RSA":
        raise UnsupportedAlgorithm(
            f"Unsupported key algorithm for certificate requests: {key_algorithm}. "
            "Only RSA is supported."
        )
    return normalized


def require_hash_algorithm(hash_algorithm: str) -> str:
    normalized = normalize_hash_name(hash_algorithm)
    if normalized not in _HASHES:
        raise UnsupportedAlgorithm(
            f"Unsupported CSR signing hash '{hash_algorithm}'. "
            f"Use one of: {', '.join(supported_signature_hashes())}."
        )
    return normalized


def generate_private_key(key_size: int) -> rsa.RSAPrivateKey:
    if isinstance(key_size, bool) or not isinstance(key_size, int):
        raise RequestGenerationFailed(f"Key size must be an integer, got: {key_size!r}")
    try:
        return rsa.generate_private_key(
            public_exponent=RSA_PUBLIC_EXPONENT, key_size=key_size
        )
    except ValueError as exc:
        raise RequestGenerationFailed(
            f"RSA key generation failed: {format_exception(exc)}"
        ) from exc


def build_request(
    private_key: rsa.RSAPrivateKey,
    *,
    subject: str,
    hash_algorithm: str = DEFAULT_HASH_ALGORITHM,
    extensions: Mapping[str, str | Iterable[str] | bool] | None = None,
    base64: bool = False,
    return_private_key: bool = True,
) -> CsrResult:
    """
    Sign a PKCS#10 request for ``subject`` with an existing RSA key.

    ``subject`` is an OpenSSL slash-delimited name such as
    ``/CN=example.com/O=Example/C=US``; attribute order is kept as given.
    """
    hash_name = require_hash_algorithm(hash_algorithm)
    hash_cls = _HASHES[hash_name]
    try:
        name = build_subject_name(parse_subject(subject))
        requested = build_requested_extensions(extensions)
        public_key_info = load_public_key_info(
            private_key.public_key().public_bytes(
                encoding=serialization.Encoding.DER,
                format=serialization.PublicFormat.SubjectPublicKeyInfo,
            )
        )
        request = create_certificate_signing_request(
            subject=name,
            subject_public_key_info=public_key_info,
            sign_tbs=lambda tbs: private_key.sign(tbs, padding.PKCS1v15(), hash_cls()),
            hash_algorithm=hash_name,
            extensions=requested,
        )
        csr_pem = dump_csr_pem(request).decode("ascii")
    except (ValueError, TypeError) as exc:
        _logger.exception("Certificate request generation failed")
        raise RequestGenerationFailed(
            f"Certificate request generation failed: {format_exception(exc)}"
        ) from exc

    private_pem: str | None = None
    if return_private_key:
        private_pem = private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        ).decode("ascii")

    if base64:
        csr_pem = strip_pem_armor(csr_pem)
        if private_pem is not None:
            private_pem = strip_pem_armor(private_pem)

    _logger.info(
        "Generated certificate request subject=%s hash=%s extensions=%d",
        subject,
        hash_name,
        len(requested) if requested is not None else 0,
    )
    return CsrResult(csr=csr_pem, private_key=private_pem)


def generate_request(
    *,
    subject: str,
    key_size: int = DEFAULT_KEY_SIZE,
    key_algorithm: str = DEFAULT_KEY_ALGORITHM,
    hash_algorithm: str = DEFAULT_HASH_ALGORITHM,
    extensions: Mapping[str, str | Iterable[str] | bool] | None = None,
    base64: bool = False,
    return_private_key: bool = True,
) -> CsrResult:
    require_subject(subject)
    require_key_algorithm(key_algorithm)
    require_hash_algorithm(hash_algorithm)
    private_key = generate_private_key(key_size)
    return build_request(
        private_key,
        subject=subject,
        hash_algorithm=hash_algorithm,
        extensions=extensions,
        base64=base64,
        return_private_key=return_private_key,
    )


def verify_request_signature(request: Any) -> None:
    info = request["certification_request_info"]
    signature_algorithm = request["signature_algorithm"]
    hash_cls = _HASHES.get(signature_algorithm.hash_algo)
    if hash_cls is None:
        raise ValueError(
            f"Unsupported request signature hash: {signature_algorithm.hash_algo}"
        )
    public_key = serialization.load_der_public_key(info["subject_pk_info"].dump())
    signature = request["signature"].native
    signed_data = info.dump()
    signature_scheme = signature_algorithm.signature_algo

    if signature_scheme == "rsassa_pkcs1v15" and isinstance(public_key, rsa.RSAPublicKey):
        public_key.verify(signature, signed_data, padding.PKCS1v15(), hash_cls())
    elif signature_scheme == "ecdsa" and isinstance(
        public_key, ec.EllipticCurvePublicKey
    ):
        public_key.verify(signature, signed_data, ec.ECDSA(hash_cls()))
    else:
        raise ValueError(
            f"Unsupported request signature scheme: {signature_scheme}"
        )


def parse_request(pem_data: str | bytes, base64: bool = False) -> ParsedRequest:
    """Load a PEM request, or bare base64 when ``base64`` is set, and verify it."""
    if isinstance(pem_data, bytes):
        try:
            pem_data = pem_data.decode("ascii")
        except UnicodeDecodeError as exc:
            raise RequestParsingFailed(
                f"Certificate request is not PEM text: {format_exception(exc)}"
            ) from exc
    if not pem_data or not pem_data.strip():
        raise RequestParsingFailed("Certificate request is required.")
    if base64:
        pem_data = armor_pem("CERTIFICATE REQUEST", strip_pem_armor(pem_data))

    try:
        request = load_certificate_signing_request(pem_data)
        info = request["certification_request_info"]
        verify_request_signature(request)
        parsed = ParsedRequest(
            subject=describe_subject(info["subject"]),
            public_key=describe_public_key(info["subject_pk_info"]),
            extensions=describe_extensions(get_requested_extensions(request)),
        )
    except HsmOpenSSLError:
        raise
    except InvalidSignature as exc:
        raise RequestParsingFailed(
            "Certificate request signature verification failed."
        ) from exc
    except Exception as exc:
        _logger.warning("Certificate request parsing failed: %s", format_exception(exc))
        raise RequestParsingFailed(
            f"Invalid certificate request: {format_exception(exc)}"
        ) from exc

    _logger.debug("Parsed certificate request subject=%s", parsed.subject)
    return parsed
