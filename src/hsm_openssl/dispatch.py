from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Generic, TypeVar

from .algorithms import Route, resolve
from .backends import CapabilityProbe, CryptoBackend
from .exceptions import BackendOperationError, UnsupportedAlgorithm

_logger = logging.getLogger("hsm_openssl.dispatch")

T = TypeVar("T")


@dataclass(frozen=True)
class Dispatched(Generic[T]):
    """Result of a dispatched call plus the backend that produced it."""

    value: T
    backend: str
    fell_back: bool = False


def run_with_fallback(
    *,
    operation: str,
    algorithm: str,
    route: Route,
    primary: CryptoBackend,
    fallback: CryptoBackend,
    call: Callable[[CryptoBackend], T],
    failure: type[BackendOperationError] = BackendOperationError,
) -> Dispatched[T]:
    """
    Run ``call`` on the routed backend with at most one retry on the fallback.

    Only ``BackendOperationError`` triggers the retry; validation errors raised
    before the backend was reached propagate unchanged. A runtime failure of
    the primary backend is logged at WARNING; routing to the fallback because
    the primary is absent or lacks the algorithm is logged at DEBUG only.
    When the fallback fails as well, ``failure`` is raised carrying both causes.
    """
    if route is Route.UNSUPPORTED:
        raise UnsupportedAlgorithm(f"Unsupported algorithm for {operation}: {algorithm}")
    if route is Route.FALLBACK:
        _logger.debug(
            "%s algorithm=%s routed to %s backend", operation, algorithm, fallback.name
        )
        try:
            return Dispatched(value=call(fallback), backend=fallback.name)
        except BackendOperationError as exc:
            if isinstance(exc, failure):
                raise
            raise failure(
                f"{operation} failed for {algorithm}. {fallback.name}: {exc.reason}",
                fallback_error=exc,
            ) from exc

    try:
        return Dispatched(value=call(primary), backend=primary.name)
    except BackendOperationError as primary_exc:
        _logger.warning(
            "%s algorithm=%s failed on %s backend (%s); retrying once on %s backend",
            operation,
            algorithm,
            primary.name,
            primary_exc.reason,
            fallback.name,
        )
        try:
            value = call(fallback)
        except BackendOperationError as fallback_exc:
            _logger.error(
                "%s algorithm=%s failed on both backends", operation, algorithm
            )
            raise failure(
                f"{operation} failed for {algorithm}. "
                f"{primary.name}: {primary_exc.reason}; "
                f"{fallback.name}: {fallback_exc.reason}",
                primary_error=primary_exc,
                fallback_error=fallback_exc,
            ) from fallback_exc
        return Dispatched(value=value, backend=fallback.name, fell_back=True)


@dataclass(frozen=True)
class BackendSet:
    """The two engines plus the probe that decides whether the first is usable."""

    primary: CryptoBackend
    fallback: CryptoBackend
    probe: CapabilityProbe

    def primary_available(self) -> bool:
        return self.probe.primary_available()

    def route(self, algorithm: str | None = None) -> Route:
        """Route an algorithm name, or a non-algorithm operation when ``algorithm`` is None."""
        if algorithm is None:
            return Route.PRIMARY if self.primary_available() else Route.FALLBACK
        return resolve(algorithm, primary_available=self.primary_available())

    def run(
        self,
        *,
        operation: str,
        algorithm: str,
        route: Route,
        call: Callable[[CryptoBackend], T],
        failure: type[BackendOperationError] = BackendOperationError,
    ) -> Dispatched[T]:
        return run_with_fallback(
            operation=operation,
            algorithm=algorithm,
            route=route,
            primary=self.primary,
            fallback=self.fallback,
            call=call,
            failure=failure,
        )
