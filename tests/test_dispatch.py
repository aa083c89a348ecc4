from __future__ import annotations

import logging

import pytest

from hsm_openssl import (
    BackendOperationError,
    DecryptionFailed,
    InvalidLength,
    Route,
    SoftwareBackend,
    UnsupportedAlgorithm,
)
from hsm_openssl.dispatch import run_with_fallback

from conftest import FailingBackend, FakeTokenBackend


def test_primary_route_uses_primary_only() -> None:
    primary = FakeTokenBackend()
    result = run_with_fallback(
        operation="rand",
        algorithm="RNG",
        route=Route.PRIMARY,
        primary=primary,
        fallback=FailingBackend("software"),
        call=lambda backend: backend.random_bytes(4),
    )

    assert result.backend == "pkcs11"
    assert not result.fell_back
    assert len(result.value) == 4


def test_primary_failure_retries_once_on_fallback(
    caplog: pytest.LogCaptureFixture,
) -> None:
    primary = FailingBackend()
    caplog.set_level(logging.WARNING, logger="hsm_openssl")

    result = run_with_fallback(
        operation="rand",
        algorithm="RNG",
        route=Route.PRIMARY,
        primary=primary,
        fallback=SoftwareBackend(),
        call=lambda backend: backend.random_bytes(8),
    )

    assert result.backend == "software"
    assert result.fell_back
    assert primary.calls == ["random_bytes"]
    assert any(
        "retrying once on software" in record.getMessage() for record in caplog.records
    )


def test_both_backends_failing_raises_with_both_reasons() -> None:
    primary = FailingBackend("pkcs11")
    fallback = FailingBackend("software")

    with pytest.raises(DecryptionFailed) as exc_info:
        run_with_fallback(
            operation="dec",
            algorithm="AES-256-CBC",
            route=Route.PRIMARY,
            primary=primary,
            fallback=fallback,
            call=lambda backend: backend.random_bytes(1),
            failure=DecryptionFailed,
        )

    error = exc_info.value
    assert isinstance(error.primary_error, BackendOperationError)
    assert isinstance(error.fallback_error, BackendOperationError)
    assert "pkcs11" in error.reason and "software" in error.reason
    assert primary.calls == ["random_bytes"]
    assert fallback.calls == ["random_bytes"]


def test_fallback_route_wraps_failure_type() -> None:
    with pytest.raises(DecryptionFailed) as exc_info:
        run_with_fallback(
            operation="dec",
            algorithm="AES-256-CTR",
            route=Route.FALLBACK,
            primary=FakeTokenBackend(),
            fallback=FailingBackend("software"),
            call=lambda backend: backend.random_bytes(1),
            failure=DecryptionFailed,
        )
    assert exc_info.value.primary_error is None


def test_validation_errors_are_not_retried() -> None:
    fallback = FailingBackend("software")

    def _call(backend: object) -> bytes:
        raise InvalidLength("bad length")

    with pytest.raises(InvalidLength):
        run_with_fallback(
            operation="rand",
            algorithm="RNG",
            route=Route.PRIMARY,
            primary=FakeTokenBackend(),
            fallback=fallback,
            call=_call,
        )
    assert fallback.calls == []


def test_unsupported_route_reaches_neither_backend() -> None:
    primary = FailingBackend("pkcs11")
    fallback = FailingBackend("software")

    with pytest.raises(UnsupportedAlgorithm, match="SHA3-256"):
        run_with_fallback(
            operation="dgst",
            algorithm="SHA3-256",
            route=Route.UNSUPPORTED,
            primary=primary,
            fallback=fallback,
            call=lambda backend: backend.random_bytes(1),
        )
    assert primary.calls == []
    assert fallback.calls == []
