from __future__ import annotations

from pathlib import Path

import pytest

from hsm_openssl import BackendConfig, ConfigurationError, Pkcs11CapabilityProbe

_ENV_VARS = (
    "HSM_PKCS11_MODULE",
    "HSM_TOKEN_LABEL",
    "HSM_SLOT",
    "HSM_USER_PIN_ENV",
    "HSM_USER_PIN",
    "HSM_OPENSSL_DISABLE_PRIMARY",
    "HSM_OPENSSL_PBKDF2_ITERATIONS",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def module_file(tmp_path: Path) -> Path:
    path = tmp_path / "libfake-pkcs11.so"
    path.write_bytes(b"")
    return path


def test_unset_module_means_primary_absent() -> None:
    config = BackendConfig.from_env()

    assert config.module_path is None
    assert not config.primary_configured
    assert config.pbkdf2_iterations == 10_000
    assert not Pkcs11CapabilityProbe(config).primary_available()


def test_missing_module_path_is_an_error(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("HSM_PKCS11_MODULE", "/nonexistent/libsofthsm2.so")
    monkeypatch.setenv("HSM_TOKEN_LABEL", "dev-token")
    with pytest.raises(ConfigurationError, match="does not exist"):
        BackendConfig.from_env()


def test_module_requires_token_selection(
    monkeypatch: pytest.MonkeyPatch, module_file: Path
) -> None:
    monkeypatch.setenv("HSM_PKCS11_MODULE", str(module_file))
    with pytest.raises(ConfigurationError, match="HSM_TOKEN_LABEL or HSM_SLOT"):
        BackendConfig.from_env()

    monkeypatch.setenv("HSM_SLOT", "3")
    config = BackendConfig.from_env()
    assert config.slot_no == 3
    assert config.primary_configured


@pytest.mark.parametrize(
    ("name", "value"),
    [("HSM_SLOT", "first"), ("HSM_SLOT", "-1"), ("HSM_OPENSSL_PBKDF2_ITERATIONS", "0")],
)
def test_invalid_integers(monkeypatch: pytest.MonkeyPatch, name: str, value: str) -> None:
    monkeypatch.setenv(name, value)
    with pytest.raises(ConfigurationError, match=name):
        BackendConfig.from_env()


def test_disable_primary_and_iterations(
    monkeypatch: pytest.MonkeyPatch, module_file: Path
) -> None:
    monkeypatch.setenv("HSM_PKCS11_MODULE", str(module_file))
    monkeypatch.setenv("HSM_TOKEN_LABEL", "dev-token")
    monkeypatch.setenv("HSM_OPENSSL_DISABLE_PRIMARY", "yes")
    monkeypatch.setenv("HSM_OPENSSL_PBKDF2_ITERATIONS", "25000")

    config = BackendConfig.from_env()

    assert config.token_label == "dev-token"
    assert config.disable_primary
    assert not config.primary_configured
    assert config.pbkdf2_iterations == 25_000


def test_user_pin_is_read_from_named_variable(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("HSM_USER_PIN_ENV", "APP_TOKEN_PIN")
    config = BackendConfig.from_env()
    with pytest.raises(ConfigurationError, match="APP_TOKEN_PIN"):
        config.user_pin()

    monkeypatch.setenv("APP_TOKEN_PIN", "123456")
    assert config.user_pin() == "123456"
