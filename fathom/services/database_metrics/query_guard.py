"""自由查询的前置检查:长度上限与危险语句拦截."""

from __future__ import annotations

import re

from fathom.errors import ValidationError

MAX_QUERY_LENGTH = 10000

BLOCKED_QUERY_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"^\s*(DROP\s+DATABASE|DROP\s+USER|DROP\s+ROLE|TRUNCATE\s+ALL)", re.IGNORECASE),
    re.compile(r";[\s\S]*\b(DROP|TRUNCATE)\b", re.IGNORECASE),
)

BLOCKED_QUERY_MESSAGE = "This query contains potentially dangerous operations and has been blocked"


def is_blocked_query(query: str) -> bool:
    return any(pattern.search(query) for pattern in BLOCKED_QUERY_PATTERNS)


def validate_query(query: object) -> str:
    """校验并返回去除首尾空白的查询文本.

    Args:
        query: 请求中的原始查询.

    Returns:
        可直接下发的查询文本.

    Raises:
        ValidationError: 查询为空、超长或命中危险语句.

    """
    if not isinstance(query, str) or not query.strip():
        raise ValidationError("Query is required")
    normalized = query.strip()
    if len(normalized) > MAX_QUERY_LENGTH:
        raise ValidationError(f"Query must not exceed {MAX_QUERY_LENGTH} characters")
    if is_blocked_query(normalized):
        raise ValidationError(BLOCKED_QUERY_MESSAGE)
    return normalized


__all__ = ["BLOCKED_QUERY_MESSAGE", "MAX_QUERY_LENGTH", "is_blocked_query", "validate_query"]
