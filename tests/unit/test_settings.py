import pytest
from cryptography.fernet import Fernet

from fathom.settings import Settings


@pytest.mark.unit
def test_settings_production_requires_database_url(monkeypatch) -> None:
    monkeypatch.setenv("FLASK_ENV", "production")
    monkeypatch.setenv("SECRET_KEY", "prod-secret")
    # Block `.env` from injecting DATABASE_URL.
    monkeypatch.setenv("DATABASE_URL", "")

    with pytest.raises(ValueError, match="DATABASE_URL environment variable must be set in production"):
        Settings.load()


@pytest.mark.unit
def test_settings_production_requires_password_encryption_key(monkeypatch) -> None:
    monkeypatch.setenv("FLASK_ENV", "production")
    monkeypatch.setenv("SECRET_KEY", "prod-secret")
    monkeypatch.setenv("DATABASE_URL", "postgresql://fathom@db/fathom")

    with pytest.raises(ValueError, match="生产环境必须设置 PASSWORD_ENCRYPTION_KEY"):
        Settings.load()


@pytest.mark.unit
def test_settings_production_disables_api_docs(monkeypatch) -> None:
    monkeypatch.setenv("FLASK_ENV", "production")
    monkeypatch.setenv("SECRET_KEY", "prod-secret")
    monkeypatch.setenv("DATABASE_URL", "postgresql://fathom@db/fathom")
    monkeypatch.setenv("PASSWORD_ENCRYPTION_KEY", Fernet.generate_key().decode())

    settings = Settings.load()

    assert settings.is_production is True
    assert settings.debug is False
    assert settings.api_v1_docs_enabled is False


@pytest.mark.unit
def test_settings_rejects_invalid_password_encryption_key(monkeypatch) -> None:
    monkeypatch.setenv("PASSWORD_ENCRYPTION_KEY", "not-a-fernet-key")

    with pytest.raises(ValueError, match="PASSWORD_ENCRYPTION_KEY 格式非法"):
        Settings.load()


@pytest.mark.unit
def test_settings_rejects_non_positive_retention(monkeypatch) -> None:
    monkeypatch.setenv("METRICS_RETENTION_DAYS", "0")

    with pytest.raises(ValueError, match="METRICS_RETENTION_DAYS 必须为正整数"):
        Settings.load()


@pytest.mark.unit
def test_settings_scheduler_can_be_disabled(monkeypatch) -> None:
    monkeypatch.setenv("ENABLE_SCHEDULER", "false")

    assert Settings.load().to_flask_config()["ENABLE_SCHEDULER"] is False


@pytest.mark.unit
def test_settings_exposes_metrics_and_remote_config(monkeypatch) -> None:
    monkeypatch.setenv("METRICS_COLLECTION_INTERVAL", "7")
    monkeypatch.setenv("METRICS_RETENTION_DAYS", "14")
    monkeypatch.setenv("REMOTE_COMMAND_TIMEOUT", "45")

    config = Settings.load().to_flask_config()

    assert config["TESTING"] is True
    assert config["METRICS_COLLECTION_INTERVAL"] == 7
    assert config["METRICS_RETENTION_DAYS"] == 14
    assert config["REMOTE_COMMAND_TIMEOUT"] == 45
    assert config["PASSWORD_ENCRYPTION_KEY"]
