"""OpenSSL-style rand, dgst, enc and req over a PKCS#11 token with a software fallback."""

from .algorithms import (
    CIPHER_ALGORITHM_SPECS,
    DIGEST_ALGORITHM_SPECS,
    CipherAlgorithmSpec,
    DigestAlgorithmSpec,
    Route,
    list_cipher_algorithms,
    list_digest_algorithms,
)
from .backends import KeyMaterial, StaticCapabilityProbe
from .codec import OutputEncoding
from .config import BackendConfig
from .enc import CipherResult
from .exceptions import (
    BackendOperationError,
    ConfigurationError,
    DecryptionFailed,
    FormatError,
    HsmOpenSSLError,
    InputRequired,
    InvalidLength,
    MissingCredential,
    RequestGenerationFailed,
    RequestParsingFailed,
    UnsupportedAlgorithm,
)
from .facade import (
    HsmOpenSSL,
    cipher,
    default_client,
    dgst,
    digest,
    enc,
    generate_request,
    is_primary_backend_available,
    parse_request,
    rand,
    req,
)
from .logging_utils import configure_logging
from .pkcs11_backend import Pkcs11Backend, Pkcs11CapabilityProbe
from .req import CsrResult, ParsedRequest
from .software_backend import SoftwareBackend

__all__ = [
    "CIPHER_ALGORITHM_SPECS",
    "DIGEST_ALGORITHM_SPECS",
    "BackendConfig",
    "BackendOperationError",
    "CipherAlgorithmSpec",
    "CipherResult",
    "ConfigurationError",
    "CsrResult",
    "DecryptionFailed",
    "DigestAlgorithmSpec",
    "FormatError",
    "HsmOpenSSL",
    "HsmOpenSSLError",
    "InputRequired",
    "InvalidLength",
    "KeyMaterial",
    "MissingCredential",
    "OutputEncoding",
    "ParsedRequest",
    "Pkcs11Backend",
    "Pkcs11CapabilityProbe",
    "RequestGenerationFailed",
    "RequestParsingFailed",
    "Route",
    "SoftwareBackend",
    "StaticCapabilityProbe",
    "UnsupportedAlgorithm",
    "cipher",
    "configure_logging",
    "default_client",
    "dgst",
    "digest",
    "enc",
    "generate_request",
    "is_primary_backend_available",
    "list_cipher_algorithms",
    "list_digest_algorithms",
    "parse_request",
    "rand",
    "req",
]
