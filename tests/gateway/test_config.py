import pytest
from pydantic import ValidationError

from core.config import Settings


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in ("PORT", "GATEWAY__CALL_TIMEOUT", "GRPC__PORT", "GRPC__REFLECTION"):
        monkeypatch.delenv(name, raising=False)


def _settings() -> Settings:
    return Settings(_env_file=None)


def test_port_defaults_to_8080():
    assert _settings().PORT == 8080


def test_port_from_environment(monkeypatch):
    monkeypatch.setenv("PORT", "9100")
    assert _settings().PORT == 9100


def test_empty_port_falls_back_to_default(monkeypatch):
    monkeypatch.setenv("PORT", "")
    assert _settings().PORT == 8080


@pytest.mark.parametrize("value", ["0", "70000", "http"])
def test_invalid_port_is_rejected(monkeypatch, value):
    monkeypatch.setenv("PORT", value)
    with pytest.raises(ValidationError):
        _settings()


def test_gateway_and_backend_defaults():
    cfg = _settings()

    assert cfg.gateway.backend_target == "localhost:9090"
    assert cfg.gateway.call_timeout == 1.0
    assert cfg.gateway.shutdown_grace == 60
    assert cfg.grpc.port == 9090
    assert cfg.grpc.reflection is False


def test_nested_settings_from_environment(monkeypatch):
    monkeypatch.setenv("GATEWAY__CALL_TIMEOUT", "2.5")
    monkeypatch.setenv("GRPC__PORT", "50051")
    monkeypatch.setenv("GRPC__REFLECTION", "true")

    cfg = _settings()

    assert cfg.gateway.call_timeout == 2.5
    assert cfg.grpc.port == 50051
    assert cfg.grpc.reflection is True


def test_only_consumed_top_level_settings_are_declared():
    assert set(Settings.model_fields) == {
        "PROJECT_NAME",
        "VERSION",
        "DEBUG",
        "LOG_LEVEL",
        "PORT",
        "grpc",
        "gateway",
        "LOG_REQUEST_BODY_ENABLE_BY_DEFAULT",
        "LOG_REQUEST_BODY_MAX_BYTES",
    }
