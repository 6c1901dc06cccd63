"""数据库引擎类型常量.

定义受管的容器化数据库引擎,以及引擎到引擎族、凭据字段的映射.
"""

from __future__ import annotations

from typing import ClassVar


class EngineFamily:
    """引擎族常量.

    同一引擎族共享一套管理实现,例如 MySQL 与 MariaDB.
    """

    POSTGRES = "postgres"
    MYSQL = "mysql"
    REDIS = "redis"
    MONGO = "mongo"
    CLICKHOUSE = "clickhouse"


class DatabaseEngine:
    """数据库引擎类型常量.

    Attributes:
        PROBE_ORDER: 解析 uuid 时依次探测各引擎表的固定顺序,首个命中即返回.
        FAMILIES: 引擎到引擎族的映射.
        PASSWORD_FIELDS: 重置密码时需要改写的凭据字段.

    """

    POSTGRESQL = "postgresql"
    MYSQL = "mysql"
    MARIADB = "mariadb"
    MONGODB = "mongodb"
    REDIS = "redis"
    KEYDB = "keydb"
    DRAGONFLY = "dragonfly"
    CLICKHOUSE = "clickhouse"

    PROBE_ORDER: ClassVar[tuple[str, ...]] = (
        POSTGRESQL,
        MYSQL,
        MARIADB,
        MONGODB,
        REDIS,
        KEYDB,
        DRAGONFLY,
        CLICKHOUSE,
    )

    FAMILIES: ClassVar[dict[str, str]] = {
        POSTGRESQL: EngineFamily.POSTGRES,
        MYSQL: EngineFamily.MYSQL,
        MARIADB: EngineFamily.MYSQL,
        MONGODB: EngineFamily.MONGO,
        REDIS: EngineFamily.REDIS,
        KEYDB: EngineFamily.REDIS,
        DRAGONFLY: EngineFamily.REDIS,
        CLICKHOUSE: EngineFamily.CLICKHOUSE,
    }

    # 支持自由 SQL 查询的引擎
    QUERYABLE: ClassVar[tuple[str, ...]] = (POSTGRESQL, MYSQL, MARIADB, CLICKHOUSE)
    REDIS_FAMILY: ClassVar[tuple[str, ...]] = (REDIS, KEYDB, DRAGONFLY)

    PASSWORD_FIELDS: ClassVar[dict[str, str]] = {
        POSTGRESQL: "postgres_password",
        MYSQL: "mysql_password",
        MARIADB: "mariadb_password",
        MONGODB: "mongo_initdb_root_password",
        REDIS: "redis_password",
        KEYDB: "keydb_password",
        DRAGONFLY: "dragonfly_password",
        CLICKHOUSE: "clickhouse_admin_password",
    }

    @classmethod
    def family_of(cls, engine: str) -> str | None:
        """返回引擎所属的引擎族,未知引擎返回 None."""
        return cls.FAMILIES.get(engine)
