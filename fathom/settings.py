"""Fathom - 统一配置读取与校验.

目标:
- 将环境变量读取、默认值、校验集中到单一入口,避免散落在各模块中重复解析.
- `create_app(settings=...)` 只消费 Settings,不再直接读取环境变量.

说明:
- Settings 使用 `pydantic-settings` 的 `BaseSettings` 从环境变量与本地 `.env`(可选)读取配置.
- 生产环境默认更严格: 缺失关键密钥/连接串会直接抛出 ValueError.
"""

from __future__ import annotations

import logging
import secrets
from pathlib import Path

from cryptography.fernet import Fernet
from dotenv import load_dotenv
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parent.parent
DOTENV_PATH = PROJECT_ROOT / ".env"

DEFAULT_ENVIRONMENT = "development"
DEFAULT_APP_NAME = "Fathom"
APP_VERSION = "0.3.0"

DEFAULT_DB_CONNECTION_TIMEOUT_SECONDS = 30
DEFAULT_DB_MAX_CONNECTIONS = 20
DEFAULT_SQLALCHEMY_POOL_RECYCLE_SECONDS = 300
DEFAULT_SQLALCHEMY_MAX_OVERFLOW = 10

DEFAULT_MAX_CONTENT_LENGTH_BYTES = 1024 * 1024

DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_LOG_FILE = "userdata/logs/app.log"
DEFAULT_LOG_MAX_SIZE_BYTES = 10 * 1024 * 1024
DEFAULT_LOG_BACKUP_COUNT = 5

DEFAULT_SESSION_LIFETIME_SECONDS = 3600

DEFAULT_API_V1_DOCS_ENABLED = True
DEFAULT_ENABLE_SCHEDULER = True

DEFAULT_SSH_BINARY = "ssh"
DEFAULT_SSH_CONNECT_TIMEOUT_SECONDS = 10
DEFAULT_REMOTE_COMMAND_TIMEOUT_SECONDS = 60
DEFAULT_SSH_KEY_DIR = "userdata/ssh"

DEFAULT_METRICS_COLLECTION_ENABLED = True
DEFAULT_METRICS_COLLECTION_INTERVAL_MINUTES = 5
DEFAULT_METRICS_RETENTION_DAYS = 30

_VALID_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


def _is_valid_fernet_key(value: str) -> bool:
    try:
        Fernet(value.encode())
    except ValueError:
        return False
    return True


def _resolve_sqlite_fallback_path() -> Path:
    return PROJECT_ROOT / "userdata" / "fathom_dev.db"


def _resolve_sqlite_fallback_url() -> str:
    return f"sqlite:///{_resolve_sqlite_fallback_path().absolute()}"


class Settings(BaseSettings):
    """应用运行时设置集合."""

    model_config = SettingsConfigDict(
        env_ignore_empty=True,
        extra="ignore",
        frozen=True,
        str_strip_whitespace=True,
        enable_decoding=False,
    )

    environment: str = Field(default=DEFAULT_ENVIRONMENT, validation_alias="FLASK_ENV")
    debug: bool = Field(default=False, validation_alias="FLASK_DEBUG")
    enable_debug_log: bool = Field(default=False, validation_alias="ENABLE_DEBUG_LOG")

    app_name: str = Field(default=DEFAULT_APP_NAME, validation_alias="APP_NAME")
    app_version: str = APP_VERSION

    secret_key: str = Field(default="", validation_alias="SECRET_KEY")
    password_encryption_key: str = Field(default="", validation_alias="PASSWORD_ENCRYPTION_KEY")

    database_url: str = Field(default="", validation_alias="DATABASE_URL")
    db_connection_timeout_seconds: int = Field(
        default=DEFAULT_DB_CONNECTION_TIMEOUT_SECONDS,
        validation_alias="DB_CONNECTION_TIMEOUT",
    )
    db_max_connections: int = Field(default=DEFAULT_DB_MAX_CONNECTIONS, validation_alias="DB_MAX_CONNECTIONS")

    max_content_length_bytes: int = Field(
        default=DEFAULT_MAX_CONTENT_LENGTH_BYTES, validation_alias="MAX_CONTENT_LENGTH"
    )

    log_level: str = Field(default=DEFAULT_LOG_LEVEL, validation_alias="LOG_LEVEL")
    log_file: str = Field(default=DEFAULT_LOG_FILE, validation_alias="LOG_FILE")
    log_max_size_bytes: int = Field(default=DEFAULT_LOG_MAX_SIZE_BYTES, validation_alias="LOG_MAX_SIZE")
    log_backup_count: int = Field(default=DEFAULT_LOG_BACKUP_COUNT, validation_alias="LOG_BACKUP_COUNT")

    session_lifetime_seconds: int = Field(
        default=DEFAULT_SESSION_LIFETIME_SECONDS,
        validation_alias="PERMANENT_SESSION_LIFETIME",
    )

    api_v1_docs_enabled: bool = Field(default=DEFAULT_API_V1_DOCS_ENABLED, validation_alias="API_V1_DOCS_ENABLED")
    enable_scheduler: bool = Field(default=DEFAULT_ENABLE_SCHEDULER, validation_alias="ENABLE_SCHEDULER")

    # 远程执行
    ssh_binary: str = Field(default=DEFAULT_SSH_BINARY, validation_alias="REMOTE_SSH_BINARY")
    ssh_connect_timeout_seconds: int = Field(
        default=DEFAULT_SSH_CONNECT_TIMEOUT_SECONDS,
        validation_alias="REMOTE_SSH_CONNECT_TIMEOUT",
    )
    remote_command_timeout_seconds: int = Field(
        default=DEFAULT_REMOTE_COMMAND_TIMEOUT_SECONDS,
        validation_alias="REMOTE_COMMAND_TIMEOUT",
    )
    ssh_private_key_dir: str = Field(default=DEFAULT_SSH_KEY_DIR, validation_alias="REMOTE_SSH_KEY_DIR")

    # 指标采集
    metrics_collection_enabled: bool = Field(
        default=DEFAULT_METRICS_COLLECTION_ENABLED,
        validation_alias="METRICS_COLLECTION_ENABLED",
    )
    metrics_collection_interval_minutes: int = Field(
        default=DEFAULT_METRICS_COLLECTION_INTERVAL_MINUTES,
        validation_alias="METRICS_COLLECTION_INTERVAL",
    )
    metrics_retention_days: int = Field(
        default=DEFAULT_METRICS_RETENTION_DAYS,
        validation_alias="METRICS_RETENTION_DAYS",
    )

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        return value.upper()

    @property
    def is_production(self) -> bool:
        """当前是否为生产环境."""
        return self.environment.strip().lower() == "production"

    @property
    def is_testing(self) -> bool:
        """当前是否为测试环境."""
        return self.environment.strip().lower() in {"testing", "test"}

    @property
    def sqlalchemy_engine_options(self) -> dict[str, object]:
        """生成 SQLAlchemy Engine 配置选项."""
        if self.database_url.startswith("sqlite"):
            return {"pool_pre_ping": True, "connect_args": {"check_same_thread": False}}
        return {
            "pool_pre_ping": True,
            "pool_recycle": DEFAULT_SQLALCHEMY_POOL_RECYCLE_SECONDS,
            "pool_timeout": self.db_connection_timeout_seconds,
            "max_overflow": DEFAULT_SQLALCHEMY_MAX_OVERFLOW,
            "pool_size": self.db_max_connections,
        }

    def to_flask_config(self) -> dict[str, object]:
        """转换为 Flask app.config 可写入的配置字典."""
        return {
            "ENV": self.environment,
            "DEBUG": self.debug,
            "TESTING": self.is_testing,
            "ENABLE_DEBUG_LOG": self.enable_debug_log,
            "APP_NAME": self.app_name,
            "APP_VERSION": self.app_version,
            "SECRET_KEY": self.secret_key,
            "PASSWORD_ENCRYPTION_KEY": self.password_encryption_key,
            "SQLALCHEMY_DATABASE_URI": self.database_url,
            "SQLALCHEMY_TRACK_MODIFICATIONS": False,
            "SQLALCHEMY_ENGINE_OPTIONS": dict(self.sqlalchemy_engine_options),
            "MAX_CONTENT_LENGTH": self.max_content_length_bytes,
            "LOG_LEVEL": self.log_level,
            "LOG_FILE": self.log_file,
            "LOG_MAX_SIZE": self.log_max_size_bytes,
            "LOG_BACKUP_COUNT": self.log_backup_count,
            "PERMANENT_SESSION_LIFETIME": self.session_lifetime_seconds,
            "API_V1_DOCS_ENABLED": self.api_v1_docs_enabled,
            "ENABLE_SCHEDULER": self.enable_scheduler,
            "REMOTE_SSH_BINARY": self.ssh_binary,
            "REMOTE_SSH_CONNECT_TIMEOUT": self.ssh_connect_timeout_seconds,
            "REMOTE_COMMAND_TIMEOUT": self.remote_command_timeout_seconds,
            "REMOTE_SSH_KEY_DIR": self.ssh_private_key_dir,
            "METRICS_COLLECTION_ENABLED": self.metrics_collection_enabled,
            "METRICS_COLLECTION_INTERVAL": self.metrics_collection_interval_minutes,
            "METRICS_RETENTION_DAYS": self.metrics_retention_days,
        }

    @classmethod
    def load(cls) -> Settings:
        """从环境变量加载 Settings 并执行必要校验."""
        load_dotenv(dotenv_path=DOTENV_PATH if DOTENV_PATH.exists() else None, override=False)
        return cls()

    @model_validator(mode="after")
    def _apply_defaults_and_validate(self) -> Settings:
        environment_normalized = self.environment.strip().lower()

        debug = self._resolve_debug(environment_normalized)
        self._ensure_secret_keys(debug)
        self._ensure_password_encryption_key(debug, environment_normalized)
        self._ensure_database_url(environment_normalized)
        self._apply_api_docs_default(environment_normalized)

        self._validate()
        return self

    def _resolve_debug(self, environment_normalized: str) -> bool:
        if "debug" in self.model_fields_set:
            return bool(self.debug)
        debug = environment_normalized != "production"
        object.__setattr__(self, "debug", debug)
        return debug

    def _ensure_secret_keys(self, debug: bool) -> None:
        if self.secret_key:
            return
        if not debug:
            raise ValueError("SECRET_KEY environment variable must be set in production")
        object.__setattr__(self, "secret_key", secrets.token_urlsafe(32))
        logger.warning("开发环境使用随机生成的SECRET_KEY,生产环境请设置环境变量")

    def _ensure_password_encryption_key(self, debug: bool, environment_normalized: str) -> None:
        if self.password_encryption_key:
            return
        if environment_normalized == "production":
            return

        object.__setattr__(self, "password_encryption_key", Fernet.generate_key().decode())
        if debug:
            logger.warning("未设置 PASSWORD_ENCRYPTION_KEY,将使用临时密钥(重启后无法解密已存储的数据库凭据)")

    def _ensure_database_url(self, environment_normalized: str) -> None:
        if self.database_url:
            return
        if environment_normalized == "production":
            raise ValueError("DATABASE_URL environment variable must be set in production")

        object.__setattr__(self, "database_url", _resolve_sqlite_fallback_url())
        if environment_normalized not in {"testing", "test"}:
            logger.warning(
                "未设置 DATABASE_URL, 非 production 环境将回退 SQLite (sqlite_db_file=%s)",
                _resolve_sqlite_fallback_path().name,
            )

    def _apply_api_docs_default(self, environment_normalized: str) -> None:
        if environment_normalized != "production":
            return
        if "api_v1_docs_enabled" in self.model_fields_set:
            return
        object.__setattr__(self, "api_v1_docs_enabled", False)

    def _validate(self) -> None:
        """执行跨字段校验,统一抛出可读的 ValueError."""
        password_encryption_key = self.password_encryption_key.strip()
        password_encryption_key_present = bool(password_encryption_key)
        checks: list[tuple[str, bool]] = [
            ("DB_CONNECTION_TIMEOUT 必须为正整数", self.db_connection_timeout_seconds <= 0),
            ("DB_MAX_CONNECTIONS 必须为正整数", self.db_max_connections <= 0),
            ("PERMANENT_SESSION_LIFETIME 必须为正整数(秒)", self.session_lifetime_seconds <= 0),
            ("LOG_LEVEL 仅支持 DEBUG/INFO/WARNING/ERROR/CRITICAL", self.log_level not in _VALID_LOG_LEVELS),
            ("LOG_BACKUP_COUNT 必须为非负整数", self.log_backup_count < 0),
            ("REMOTE_SSH_CONNECT_TIMEOUT 必须为正整数(秒)", self.ssh_connect_timeout_seconds <= 0),
            ("REMOTE_COMMAND_TIMEOUT 必须为正整数(秒)", self.remote_command_timeout_seconds <= 0),
            ("METRICS_COLLECTION_INTERVAL 必须为正整数(分钟)", self.metrics_collection_interval_minutes <= 0),
            ("METRICS_RETENTION_DAYS 必须为正整数(天)", self.metrics_retention_days <= 0),
            (
                "生产环境必须设置 PASSWORD_ENCRYPTION_KEY(用于凭据加/解密)",
                self.is_production and not password_encryption_key_present,
            ),
            (
                "PASSWORD_ENCRYPTION_KEY 格式非法,请先使用 Fernet.generate_key() 生成并设置",
                password_encryption_key_present and not _is_valid_fernet_key(password_encryption_key),
            ),
        ]
        errors = [message for message, condition in checks if condition]
        if errors:
            joined = "; ".join(errors)
            raise ValueError(f"配置校验失败: {joined}")


__all__ = ["APP_VERSION", "DEFAULT_APP_NAME", "PROJECT_ROOT", "Settings"]
