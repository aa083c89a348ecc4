from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from .exceptions import ConfigurationError

DEFAULT_PBKDF2_ITERATIONS = 10_000

_TRUTHY = {"1", "true", "yes", "on"}


def _parse_int(value: str, name: str, *, minimum: int) -> int:
    try:
        parsed = int(value)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be an integer, got: {value}") from exc
    if parsed < minimum:
        raise ConfigurationError(f"{name} must be >= {minimum}, got: {value}")
    return parsed


@dataclass(frozen=True)
class BackendConfig:
    """
    Runtime configuration for backend selection.

    ``module_path`` of ``None`` means no PKCS#11 module is configured, so the
    primary backend is absent and every operation runs on the software engine.
    """

    module_path: str | None = None
    token_label: str | None = None
    slot_no: int | None = None
    user_pin_env: str = "HSM_USER_PIN"
    disable_primary: bool = False
    pbkdf2_iterations: int = DEFAULT_PBKDF2_ITERATIONS

    @classmethod
    def from_env(cls) -> "BackendConfig":
        module_path = os.environ.get("HSM_PKCS11_MODULE") or None
        token_label = os.environ.get("HSM_TOKEN_LABEL") or None
        slot_raw = os.environ.get("HSM_SLOT")
        user_pin_env = os.environ.get("HSM_USER_PIN_ENV", "HSM_USER_PIN")
        disable_primary = (
            os.environ.get("HSM_OPENSSL_DISABLE_PRIMARY", "").strip().lower() in _TRUTHY
        )
        iterations = _parse_int(
            os.environ.get(
                "HSM_OPENSSL_PBKDF2_ITERATIONS", str(DEFAULT_PBKDF2_ITERATIONS)
            ),
            "HSM_OPENSSL_PBKDF2_ITERATIONS",
            minimum=1,
        )

        slot_no: int | None = None
        if slot_raw:
            slot_no = _parse_int(slot_raw, "HSM_SLOT", minimum=0)

        if module_path is not None:
            if not Path(module_path).exists():
                raise ConfigurationError(
                    f"PKCS#11 module path does not exist: {module_path}"
                )
            if not token_label and slot_no is None:
                raise ConfigurationError(
                    "Set either HSM_TOKEN_LABEL or HSM_SLOT to locate the token."
                )

        return cls(
            module_path=module_path,
            token_label=token_label,
            slot_no=slot_no,
            user_pin_env=user_pin_env,
            disable_primary=disable_primary,
            pbkdf2_iterations=iterations,
        )

    @property
    def primary_configured(self) -> bool:
        return self.module_path is not None and not self.disable_primary

    def user_pin(self) -> str:
        pin = os.environ.get(self.user_pin_env)
        if not pin:
            raise ConfigurationError(f"{self.user_pin_env} is required.")
        return pin
