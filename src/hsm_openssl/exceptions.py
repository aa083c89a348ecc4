from __future__ import annotations


def format_exception(exc: BaseException) -> str:
    details = str(exc).strip()
    if not details and getattr(exc, "args", None):
        details = ", ".join(str(a) for a in exc.args if a)
    if details:
        return f"{type(exc).__name__}: {details}"
    return type(exc).__name__


class HsmOpenSSLError(RuntimeError):
    """Base error. Every subclass carries a stable ``kind`` and a ``reason``."""

    kind = "error"

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class ConfigurationError(HsmOpenSSLError):
    """Configuration is invalid or incomplete."""

    kind = "configuration_error"


class FormatError(HsmOpenSSLError):
    """Input could not be decoded, or output could not be encoded."""

    kind = "format_error"


class InvalidLength(HsmOpenSSLError):
    kind = "invalid_length"


class InputRequired(HsmOpenSSLError):
    kind = "input_required"


class MissingCredential(HsmOpenSSLError):
    kind = "missing_credential"


class UnsupportedAlgorithm(HsmOpenSSLError):
    kind = "unsupported_algorithm"


class BackendOperationError(HsmOpenSSLError):
    """
    A backend call failed at runtime.

    When both backends were tried, ``primary_error`` and ``fallback_error``
    hold the two underlying failures.
    """

    kind = "backend_failed"

    def __init__(
        self,
        reason: str,
        *,
        primary_error: BaseException | None = None,
        fallback_error: BaseException | None = None,
    ) -> None:
        super().__init__(reason)
        self.primary_error = primary_error
        self.fallback_error = fallback_error


class DecryptionFailed(BackendOperationError):
    kind = "decryption_failed"


class RequestGenerationFailed(HsmOpenSSLError):
    kind = "request_generation_failed"


class RequestParsingFailed(HsmOpenSSLError):
    kind = "request_parsing_failed"
