import pytest

from api_helpers import configure_env, load_module


def test_settings_defaults(monkeypatch):
    configure_env(monkeypatch)
    config = load_module("config")
    settings = config.Settings()
    assert settings.railway_api_token == "test-token"
    assert settings.railway_api_url == "https://backboard.railway.app/graphql/v2"
    assert settings.port == 8080
    assert settings.request_timeout_seconds is None
    assert settings.registry_credentials_configured is False
    assert settings.lambda_enabled is False
    assert settings.log_level == "INFO"


def test_settings_read_environment(monkeypatch):
    configure_env(
        monkeypatch,
        RAILWAY_DOCKER_REGISTRY_USER="bot",
        RAILWAY_DOCKER_REGISTRY_TOKEN="registry-secret",
        RAILWAY_API_URL="https://railway.internal/graphql",
        RAILWAY_REQUEST_TIMEOUT_SECONDS="12.5",
        PORT="9090",
        IMAGE_UPDATER_LOG_LEVEL="debug",
    )
    config = load_module("config")
    settings = config.Settings()
    client_config = settings.railway_client_config()
    assert client_config.token == "test-token"
    assert client_config.api_url == "https://railway.internal/graphql"
    assert client_config.registry_username == "bot"
    assert client_config.registry_password == "registry-secret"
    assert client_config.registry_credentials_configured is True
    assert client_config.request_timeout_seconds == 12.5
    assert settings.port == 9090
    assert settings.log_level == "DEBUG"


@pytest.mark.parametrize("port", ["", "abc", "0", "70000"])
def test_settings_invalid_port_falls_back(monkeypatch, port):
    configure_env(monkeypatch, PORT=port)
    config = load_module("config")
    assert config.Settings().port == 8080


@pytest.mark.parametrize("timeout", ["abc", "0", "-3", "inf"])
def test_settings_invalid_timeout_is_ignored(monkeypatch, timeout):
    configure_env(monkeypatch, RAILWAY_REQUEST_TIMEOUT_SECONDS=timeout)
    config = load_module("config")
    assert config.Settings().request_timeout_seconds is None


def test_client_config_is_immutable(monkeypatch):
    configure_env(monkeypatch)
    config = load_module("config")
    client_config = config.Settings().railway_client_config()
    with pytest.raises(AttributeError):
        client_config.token = "other"


def test_settings_read_ssm_when_env_missing(monkeypatch):
    configure_env(monkeypatch)
    config = load_module("config")
    monkeypatch.delenv("RAILWAY_API_TOKEN")
    monkeypatch.setenv("IMAGE_UPDATER_SSM_PREFIX", "/image-updater")
    values = {
        "/image-updater/railway/api_token": "ssm-token",
        "/image-updater/railway/registry_user": "ssm-bot",
    }
    monkeypatch.setattr(config.Settings, "_read_ssm", lambda self, name: values.get(name))
    settings = config.Settings()
    assert settings.railway_api_token == "ssm-token"
    assert settings.registry_username == "ssm-bot"
    assert settings.registry_password == ""


def test_environment_wins_over_ssm(monkeypatch):
    configure_env(monkeypatch)
    config = load_module("config")
    monkeypatch.setenv("IMAGE_UPDATER_SSM_PREFIX", "/image-updater")
    monkeypatch.setattr(config.Settings, "_read_ssm", lambda self, name: "ssm-value")
    assert config.Settings().railway_api_token == "test-token"


def test_secret_arns_are_resolved(monkeypatch):
    arn = "arn:aws:secretsmanager:us-east-1:123456789012:secret:railway-token"
    configure_env(monkeypatch)
    config = load_module("config")
    monkeypatch.setenv("RAILWAY_API_TOKEN", arn)
    monkeypatch.setattr(
        config.Settings,
        "_resolve_secret",
        lambda self, value: "resolved-token" if value == arn else value,
    )
    assert config.Settings().railway_api_token == "resolved-token"


def test_missing_token_refuses_to_start(monkeypatch):
    configure_env(monkeypatch, RAILWAY_API_TOKEN=None)
    with pytest.raises(RuntimeError, match="RAILWAY_API_TOKEN environment variable is required"):
        load_module("main")
