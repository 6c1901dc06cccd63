"""Fathom - 受管数据库模型.

每个引擎一张表,共享 `StandaloneDatabaseMixin` 中的通用列.
uuid 同时作为 Docker 容器名,跨表全局唯一.
"""

from __future__ import annotations

import uuid as uuid_lib
from typing import ClassVar

from sqlalchemy.orm import declared_attr

from fathom import db
from fathom.constants import DatabaseEngine
from fathom.utils.password_crypto_utils import get_password_manager
from fathom.utils.time_utils import time_utils


class EncryptedField:
    """描述符:底层列保存密文,属性读写明文.

    Args:
        column_attr: 保存密文的列属性名.

    """

    def __init__(self, column_attr: str) -> None:
        self.column_attr = column_attr

    def __get__(self, instance: object, owner: type | None = None) -> str | None:
        if instance is None:
            return self  # type: ignore[return-value]
        encrypted = getattr(instance, self.column_attr)
        if not encrypted:
            return None
        return get_password_manager().decrypt_password(encrypted)

    def __set__(self, instance: object, value: str | None) -> None:
        setattr(instance, self.column_attr, get_password_manager().encrypt_password(value) if value else None)


def _encrypted_column(name: str) -> db.Column:
    return db.Column(name, db.Text, nullable=True)


class StandaloneDatabaseMixin:
    """受管数据库公共列.

    Attributes:
        id: 主键.
        uuid: 全局唯一标识,亦为容器名.
        name: 展示名称.
        team_id: 所属团队.
        server_id: 所在主机.
        status: 容器状态,例如 running、exited.
        health: 容器健康状态,例如 healthy、unhealthy.
        created_at: 创建时间.
        updated_at: 更新时间.

    """

    engine_type: ClassVar[str]

    id = db.Column(db.Integer, primary_key=True)
    uuid = db.Column(db.String(64), unique=True, nullable=False, index=True, default=lambda: uuid_lib.uuid4().hex)
    name = db.Column(db.String(255), nullable=False)
    status = db.Column(db.String(32), nullable=False, default="running")
    health = db.Column(db.String(32), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=time_utils.now)
    updated_at = db.Column(db.DateTime(timezone=True), default=time_utils.now, onupdate=time_utils.now)

    @declared_attr
    def team_id(cls):  # noqa: N805
        return db.Column(db.Integer, db.ForeignKey("teams.id"), nullable=False, index=True)

    @declared_attr
    def server_id(cls):  # noqa: N805
        return db.Column(db.Integer, db.ForeignKey("servers.id"), nullable=False, index=True)

    @declared_attr
    def server(cls):  # noqa: N805
        return db.relationship("Server", lazy="joined")

    @property
    def password_field(self) -> str:
        """重置密码时需要改写的凭据字段名."""
        return DatabaseEngine.PASSWORD_FIELDS[self.engine_type]

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.uuid}>"


class StandalonePostgresql(StandaloneDatabaseMixin, db.Model):
    """PostgreSQL 实例."""

    __tablename__ = "standalone_postgresqls"
    engine_type = DatabaseEngine.POSTGRESQL

    postgres_user = db.Column(db.String(63), nullable=False, default="postgres")
    postgres_password_encrypted = _encrypted_column("postgres_password")
    postgres_db = db.Column(db.String(63), nullable=False, default="postgres")

    postgres_password = EncryptedField("postgres_password_encrypted")


class StandaloneMysql(StandaloneDatabaseMixin, db.Model):
    """MySQL 实例."""

    __tablename__ = "standalone_mysqls"
    engine_type = DatabaseEngine.MYSQL

    mysql_root_password_encrypted = _encrypted_column("mysql_root_password")
    mysql_user = db.Column(db.String(64), nullable=True)
    mysql_password_encrypted = _encrypted_column("mysql_password")
    mysql_database = db.Column(db.String(64), nullable=True)

    mysql_root_password = EncryptedField("mysql_root_password_encrypted")
    mysql_password = EncryptedField("mysql_password_encrypted")


class StandaloneMariadb(StandaloneDatabaseMixin, db.Model):
    """MariaDB 实例."""

    __tablename__ = "standalone_mariadbs"
    engine_type = DatabaseEngine.MARIADB

    mariadb_root_password_encrypted = _encrypted_column("mariadb_root_password")
    mariadb_user = db.Column(db.String(64), nullable=True)
    mariadb_password_encrypted = _encrypted_column("mariadb_password")
    mariadb_database = db.Column(db.String(64), nullable=True)

    mariadb_root_password = EncryptedField("mariadb_root_password_encrypted")
    mariadb_password = EncryptedField("mariadb_password_encrypted")


class StandaloneMongodb(StandaloneDatabaseMixin, db.Model):
    """MongoDB 实例."""

    __tablename__ = "standalone_mongodbs"
    engine_type = DatabaseEngine.MONGODB

    mongo_initdb_root_username = db.Column(db.String(64), nullable=False, default="root")
    mongo_initdb_root_password_encrypted = _encrypted_column("mongo_initdb_root_password")
    mongo_initdb_database = db.Column(db.String(64), nullable=False, default="admin")

    mongo_initdb_root_password = EncryptedField("mongo_initdb_root_password_encrypted")


class StandaloneRedis(StandaloneDatabaseMixin, db.Model):
    """Redis 实例."""

    __tablename__ = "standalone_redis"
    engine_type = DatabaseEngine.REDIS

    redis_password_encrypted = _encrypted_column("redis_password")
    redis_password = EncryptedField("redis_password_encrypted")


class StandaloneKeydb(StandaloneDatabaseMixin, db.Model):
    """KeyDB 实例."""

    __tablename__ = "standalone_keydbs"
    engine_type = DatabaseEngine.KEYDB

    keydb_password_encrypted = _encrypted_column("keydb_password")
    keydb_password = EncryptedField("keydb_password_encrypted")


class StandaloneDragonfly(StandaloneDatabaseMixin, db.Model):
    """Dragonfly 实例."""

    __tablename__ = "standalone_dragonflies"
    engine_type = DatabaseEngine.DRAGONFLY

    dragonfly_password_encrypted = _encrypted_column("dragonfly_password")
    dragonfly_password = EncryptedField("dragonfly_password_encrypted")


class StandaloneClickhouse(StandaloneDatabaseMixin, db.Model):
    """ClickHouse 实例."""

    __tablename__ = "standalone_clickhouses"
    engine_type = DatabaseEngine.CLICKHOUSE

    clickhouse_admin_user = db.Column(db.String(64), nullable=False, default="default")
    clickhouse_admin_password_encrypted = _encrypted_column("clickhouse_admin_password")
    clickhouse_admin_password = EncryptedField("clickhouse_admin_password_encrypted")


ENGINE_MODELS: dict[str, type[StandaloneDatabaseMixin]] = {
    DatabaseEngine.POSTGRESQL: StandalonePostgresql,
    DatabaseEngine.MYSQL: StandaloneMysql,
    DatabaseEngine.MARIADB: StandaloneMariadb,
    DatabaseEngine.MONGODB: StandaloneMongodb,
    DatabaseEngine.REDIS: StandaloneRedis,
    DatabaseEngine.KEYDB: StandaloneKeydb,
    DatabaseEngine.DRAGONFLY: StandaloneDragonfly,
    DatabaseEngine.CLICKHOUSE: StandaloneClickhouse,
}

__all__ = [
    "ENGINE_MODELS",
    "StandaloneClickhouse",
    "StandaloneDatabaseMixin",
    "StandaloneDragonfly",
    "StandaloneKeydb",
    "StandaloneMariadb",
    "StandaloneMongodb",
    "StandaloneMysql",
    "StandalonePostgresql",
    "StandaloneRedis",
]
