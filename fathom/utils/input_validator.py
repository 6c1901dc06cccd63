"""
输入校验与清洗工具
所有引擎命令都以字符串形式拼接后交由远程 shell 执行,调用方输入必须先经过这里
"""

from __future__ import annotations

import re
from typing import ClassVar

from fathom.errors import ValidationError


class InputValidator:
    """输入校验器。

    纯函数集合,无状态。`is_*` 系列对任意输入都返回布尔值,从不抛出;
    `sanitize_*` 返回清洗后的字符串;`validate_*` 系列在非法时抛出 ValidationError。

    Attributes:
        MAX_IDENTIFIER_LENGTH: 表名/集合名最大长度。
        MAX_USERNAME_LENGTH: 数据库用户名最大长度。
        MIN_PASSWORD_LENGTH: 创建数据库用户时的最短密码长度。
        ALLOWED_EXTENSIONS: 允许启用/停用的 PostgreSQL 扩展白名单。
        MAINTENANCE_OPERATIONS: 允许的维护操作。
    """

    MAX_IDENTIFIER_LENGTH = 128
    MAX_USERNAME_LENGTH = 63
    MIN_PASSWORD_LENGTH = 8

    ALLOWED_EXTENSIONS: ClassVar[frozenset[str]] = frozenset(
        {
            "btree_gin",
            "btree_gist",
            "citext",
            "cube",
            "dblink",
            "earthdistance",
            "fuzzystrmatch",
            "hstore",
            "intarray",
            "isn",
            "lo",
            "ltree",
            "pg_buffercache",
            "pg_prewarm",
            "pg_stat_statements",
            "pg_trgm",
            "pgcrypto",
            "pgrowlocks",
            "pgstattuple",
            "plpgsql",
            "postgis",
            "postgis_topology",
            "postgres_fdw",
            "tablefunc",
            "timescaledb",
            "tsm_system_rows",
            "unaccent",
            "uuid-ossp",
            "vector",
        },
    )
    MAINTENANCE_OPERATIONS: ClassVar[frozenset[str]] = frozenset({"vacuum", "analyze"})
    ORDER_DIRECTIONS: ClassVar[frozenset[str]] = frozenset({"asc", "desc"})

    _TABLE_NAME_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_.]*$")
    _COLUMN_NAME_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
    _FIELD_NAME_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_.]*$")
    _USERNAME_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
    _REDIS_PATTERN = re.compile(r"^[A-Za-z0-9_:*?\[\]\-.]+$")
    _OBJECT_ID_PATTERN = re.compile(r"^[0-9a-fA-F]{24}$")
    _SEARCH_STRIP_SEQUENCES: ClassVar[tuple[str, ...]] = ("--", "/*", "*/", "'", '"', ";", "$", "\\", "\x00")
    _MONGO_SEARCH_PATTERN = re.compile(r"[^\w\s\-]")

    @classmethod
    def _matches(cls, pattern: re.Pattern[str], value: object, max_length: int) -> bool:
        if not isinstance(value, str) or not value:
            return False
        if len(value) > max_length:
            return False
        return pattern.fullmatch(value) is not None

    @classmethod
    def is_valid_table_name(cls, name: object) -> bool:
        """校验表名(亦用于 Mongo 集合名)。

        Args:
            name: 待校验的表名。

        Returns:
            满足 `^[A-Za-z_][A-Za-z0-9_.]*$` 且不超过长度上限时返回 True。
        """
        return cls._matches(cls._TABLE_NAME_PATTERN, name, cls.MAX_IDENTIFIER_LENGTH)

    @classmethod
    def is_valid_collection_name(cls, name: object) -> bool:
        """校验 Mongo 集合名,规则与表名一致。"""
        return cls.is_valid_table_name(name)

    @classmethod
    def is_valid_column_name(cls, name: object) -> bool:
        """校验列名,不允许点号。"""
        return cls._matches(cls._COLUMN_NAME_PATTERN, name, cls.MAX_IDENTIFIER_LENGTH)

    @classmethod
    def is_valid_field_name(cls, name: object) -> bool:
        """校验 Mongo 字段路径,允许点号,拒绝 `$` 开头的操作符。"""
        return cls._matches(cls._FIELD_NAME_PATTERN, name, cls.MAX_IDENTIFIER_LENGTH)

    @classmethod
    def is_valid_username(cls, username: object) -> bool:
        """校验数据库用户名。"""
        return cls._matches(cls._USERNAME_PATTERN, username, cls.MAX_USERNAME_LENGTH)

    @classmethod
    def is_valid_password(cls, password: object) -> bool:
        """校验新建数据库用户的密码长度。"""
        return isinstance(password, str) and len(password) >= cls.MIN_PASSWORD_LENGTH

    @classmethod
    def is_valid_extension_name(cls, name: object) -> bool:
        """仅允许白名单中的 PostgreSQL 扩展。"""
        return isinstance(name, str) and name in cls.ALLOWED_EXTENSIONS

    @classmethod
    def is_valid_redis_pattern(cls, pattern: object) -> bool:
        """校验 Redis 键模式。

        仅允许字母数字与 `_:*?[]-.`,空格、引号、分号、反引号与 `$(` 一律拒绝。
        """
        return cls._matches(cls._REDIS_PATTERN, pattern, 256)

    @classmethod
    def is_valid_redis_key(cls, key: object) -> bool:
        """校验 Redis 键名,字符集与模式相同。"""
        return cls.is_valid_redis_pattern(key)

    @classmethod
    def is_valid_object_id(cls, value: object) -> bool:
        """判断是否为 24 位十六进制 ObjectId。"""
        return isinstance(value, str) and cls._OBJECT_ID_PATTERN.fullmatch(value) is not None

    @classmethod
    def validate_maintenance_operation(cls, operation: object) -> str:
        """校验维护操作并返回大写形式。

        Args:
            operation: 维护操作名,大小写不敏感。

        Returns:
            `VACUUM` 或 `ANALYZE`。

        Raises:
            ValidationError: 操作不在 {vacuum, analyze} 内。
        """
        normalized = operation.strip().lower() if isinstance(operation, str) else ""
        if normalized not in cls.MAINTENANCE_OPERATIONS:
            raise ValidationError("Invalid maintenance operation")
        return normalized.upper()

    @classmethod
    def validate_order_direction(cls, direction: object) -> str:
        """校验排序方向,返回大写的 ASC/DESC。"""
        normalized = direction.strip().lower() if isinstance(direction, str) else ""
        if normalized not in cls.ORDER_DIRECTIONS:
            raise ValidationError("Invalid order direction")
        return normalized.upper()

    @classmethod
    def safe_order_direction(cls, direction: object) -> str:
        """非法排序方向回退为 ASC。"""
        try:
            return cls.validate_order_direction(direction)
        except ValidationError:
            return "ASC"

    @classmethod
    def sanitize_search(cls, text: object) -> str:
        """移除可能改变生成语句结构的字符(引号、分号、注释符等)。

        Args:
            text: 原始搜索文本。

        Returns:
            清洗后并去除首尾空白的文本,非字符串输入返回空串。
        """
        if not isinstance(text, str):
            return ""
        cleaned = text
        for sequence in cls._SEARCH_STRIP_SEQUENCES:
            cleaned = cleaned.replace(sequence, "")
        return cleaned.strip()

    @classmethod
    def sanitize_mongo_search(cls, text: object) -> str:
        """仅保留字母数字、空白、下划线与连字符,避免正则注入。"""
        if not isinstance(text, str):
            return ""
        return cls._MONGO_SEARCH_PATTERN.sub("", text).strip()


__all__ = ["InputValidator"]
