"""统一时间处理工具模块.

所有持久化与对外输出的时间一律使用 UTC.
"""

from __future__ import annotations

from datetime import UTC, datetime


class TimeFormats:
    """时间格式常量."""

    DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"
    DATE_FORMAT = "%Y-%m-%d"
    ISO_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


class TimeUtils:
    """统一时间处理工具类."""

    @staticmethod
    def now() -> datetime:
        """获取当前 UTC 时间.

        Returns:
            带 UTC 时区信息的当前时间.

        """
        return datetime.now(UTC)

    @staticmethod
    def to_utc(dt: datetime | None) -> datetime | None:
        """将时间统一为 UTC,naive 时间视为 UTC."""
        if dt is None:
            return None
        if dt.tzinfo is None:
            return dt.replace(tzinfo=UTC)
        return dt.astimezone(UTC)

    @staticmethod
    def format_utc_time(dt: datetime | None, format_str: str = TimeFormats.DATETIME_FORMAT) -> str:
        """格式化为 UTC 时间字符串,空值返回空串."""
        normalized = TimeUtils.to_utc(dt)
        if normalized is None:
            return ""
        return normalized.strftime(format_str)

    @staticmethod
    def from_timestamp(timestamp: int | float) -> datetime:
        """将 Unix 时间戳转换为 UTC 时间."""
        return datetime.fromtimestamp(timestamp, tz=UTC)


time_utils = TimeUtils()

__all__ = ["TimeFormats", "TimeUtils", "time_utils"]
