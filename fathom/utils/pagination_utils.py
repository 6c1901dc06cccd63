"""分页参数解析工具.

用于统一解析表数据接口的分页参数.
"""

from __future__ import annotations

import math
from collections.abc import Mapping

DEFAULT_PER_PAGE = 50
MIN_PER_PAGE = 10
MAX_PER_PAGE = 100


def _safe_int(value: object, *, default: int) -> int:
    if value is None:
        return default
    try:
        return int(str(value))
    except (TypeError, ValueError):
        return default


def resolve_page(
    args: Mapping[str, object],
    *,
    default: int = 1,
    minimum: int = 1,
) -> int:
    """解析分页页码.

    Args:
        args: 请求参数映射.
        default: 缺省页码.
        minimum: 最小页码.

    Returns:
        解析后的页码(已做下限保护).

    """
    page = _safe_int(args.get("page"), default=default)
    return max(page, minimum)


def resolve_page_size(
    args: Mapping[str, object],
    *,
    default: int = DEFAULT_PER_PAGE,
    minimum: int = MIN_PER_PAGE,
    maximum: int = MAX_PER_PAGE,
) -> int:
    """解析每页数量,读取 `perPage`,并裁剪到 [minimum, maximum].

    Args:
        args: 请求参数映射.
        default: 缺省每页数量.
        minimum: 最小值.
        maximum: 最大值.

    Returns:
        解析后的每页数量.

    """
    page_size = _safe_int(args.get("perPage"), default=default)
    page_size = max(page_size, minimum)
    return min(page_size, maximum)


def clamp_int(value: object, *, default: int, minimum: int, maximum: int) -> int:
    """解析整数并裁剪到给定区间,用于 lines/limit 等参数."""
    parsed = _safe_int(value, default=default)
    return min(max(parsed, minimum), maximum)


def build_pagination(total: int, page: int, per_page: int) -> dict[str, int]:
    """生成分页元数据.

    Example:
        >>> build_pagination(120, 3, 50)
        {'current_page': 3, 'per_page': 50, 'total': 120, 'last_page': 3}

    """
    last_page = max(1, math.ceil(total / per_page)) if per_page > 0 else 1
    return {
        "current_page": page,
        "per_page": per_page,
        "total": total,
        "last_page": last_page,
    }


__all__ = [
    "DEFAULT_PER_PAGE",
    "MAX_PER_PAGE",
    "MIN_PER_PAGE",
    "build_pagination",
    "clamp_int",
    "resolve_page",
    "resolve_page_size",
]
