"""容量与时长的展示格式化工具."""

from __future__ import annotations

import re

_BYTE_UNITS: tuple[str, ...] = ("B", "KB", "MB", "GB", "TB")
_SIZE_PATTERN = re.compile(r"^([\d.]+)\s*(B|KB|KiB|MB|MiB|GB|GiB|TB|TiB)$", re.IGNORECASE)
_SIZE_MULTIPLIERS: dict[str, int] = {
    "b": 1,
    "kb": 1000,
    "kib": 1024,
    "mb": 1000**2,
    "mib": 1024**2,
    "gb": 1000**3,
    "gib": 1024**3,
    "tb": 1000**4,
    "tib": 1024**4,
}

SECONDS_PER_MINUTE = 60
SECONDS_PER_HOUR = 3600


def format_bytes(size: float | int) -> str:
    """将字节数格式化为可读字符串.

    按 1024 进位,保留两位小数并去掉多余的零,例如 `1536 -> "1.5 KB"`.

    Args:
        size: 字节数.

    Returns:
        形如 "512 B"、"1.5 KB" 的字符串.

    """
    value = float(size)
    index = 0
    while value >= 1024 and index < len(_BYTE_UNITS) - 1:
        value /= 1024
        index += 1
    return f"{round(value, 2):g} {_BYTE_UNITS[index]}"


def format_seconds(seconds: int) -> str:
    """将秒数格式化为 `45s`、`5m 30s`、`2h 15m` 等形式."""
    seconds = int(seconds)
    if seconds < SECONDS_PER_MINUTE:
        return f"{seconds}s"
    if seconds < SECONDS_PER_HOUR:
        minutes, remainder = divmod(seconds, SECONDS_PER_MINUTE)
        return f"{minutes}m {remainder}s" if remainder else f"{minutes}m"
    hours, remainder = divmod(seconds, SECONDS_PER_HOUR)
    minutes = remainder // SECONDS_PER_MINUTE
    return f"{hours}h {minutes}m" if minutes else f"{hours}h"


def convert_to_bytes(value: str) -> int:
    """解析 `docker stats` 输出中的容量字符串.

    同时支持十进制(KB=1000)与二进制(KiB=1024)单位,无法识别时返回 0.
    """
    match = _SIZE_PATTERN.match(value.strip())
    if match is None:
        return 0
    try:
        number = float(match.group(1))
    except ValueError:
        return 0
    return int(number * _SIZE_MULTIPLIERS[match.group(2).lower()])


__all__ = ["convert_to_bytes", "format_bytes", "format_seconds"]
