"""容器日志解析."""

from __future__ import annotations

import re
from collections.abc import Iterator
from typing import TypedDict

from fathom.utils.time_utils import TimeFormats, time_utils

_LEVEL_LINE = re.compile(
    r"^(\d{4}-\d{2}-\d{2}[T\s]\d{2}:\d{2}:\d{2}).*?(LOG|WARNING|ERROR|FATAL|PANIC|INFO|DEBUG|NOTICE):?\s*(.*)$",
    re.IGNORECASE,
)
_BRACKET_LINE = re.compile(
    r"^(\d{4}-\d{2}-\d{2}[T\s]\d{2}:\d{2}:\d{2}).*?\[(Note|Warning|Error|System)\]\s*(.*)$",
    re.IGNORECASE,
)

# Postgres 的 LOG 与 MySQL 的 Note/System 都是普通信息
_LEVEL_ALIASES = {"LOG": "INFO", "NOTE": "INFO", "SYSTEM": "INFO"}


class LogEntry(TypedDict):
    timestamp: str
    level: str
    message: str


def _normalize_level(token: str) -> str:
    level = token.upper()
    return _LEVEL_ALIASES.get(level, level)


def parse_line(line: str) -> LogEntry:
    """解析单行日志;无法识别的行按 INFO 原样保留."""
    for pattern in (_LEVEL_LINE, _BRACKET_LINE):
        match = pattern.match(line)
        if match:
            return {
                "timestamp": match.group(1),
                "level": _normalize_level(match.group(2)),
                "message": match.group(3),
            }
    return {
        "timestamp": time_utils.format_utc_time(time_utils.now(), TimeFormats.DATETIME_FORMAT),
        "level": "INFO",
        "message": line,
    }


def parse_logs(raw: str) -> Iterator[LogEntry]:
    """逐行解析原始日志文本,跳过空行.

    Args:
        raw: `docker logs` 的输出.

    Yields:
        按原始顺序排列的日志条目.

    """
    for line in raw.split("\n"):
        line = line.strip()
        if line:
            yield parse_line(line)


__all__ = ["LogEntry", "parse_line", "parse_logs"]
