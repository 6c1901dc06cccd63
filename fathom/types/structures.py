"""通用结构化数据类型别名.

统一 JSON/Mapping 风格的类型,在视图、服务与引擎实现之间共享.
"""

from __future__ import annotations

from collections.abc import Mapping, MutableMapping, Sequence
from typing import TYPE_CHECKING, TypeAlias, TypedDict

if TYPE_CHECKING:
    from fathom.errors import AppError

ScalarValue: TypeAlias = str | int | float | bool | None
ContextValue: TypeAlias = ScalarValue | Sequence["ContextValue"] | Mapping[str, "ContextValue"]
ContextMapping: TypeAlias = Mapping[str, ContextValue]
ContextDict: TypeAlias = dict[str, ContextValue]
JsonValue: TypeAlias = ScalarValue | Sequence["JsonValue"] | Mapping[str, "JsonValue"]
JsonDict: TypeAlias = dict[str, JsonValue]
StructlogEventDict: TypeAlias = MutableMapping[str, JsonValue]
LoggerExtra: TypeAlias = Mapping[str, JsonValue]


class RouteSafetyOptions(TypedDict, total=False):
    """safe_route_call 的扩展配置."""

    context: ContextDict | None
    extra: LoggerExtra | None
    expected_exceptions: tuple[type[BaseException], ...]
    fallback_exception: type[AppError]
    log_event: str | None
    include_actor: bool


__all__ = [
    "ContextDict",
    "ContextMapping",
    "ContextValue",
    "JsonDict",
    "JsonValue",
    "LoggerExtra",
    "RouteSafetyOptions",
    "ScalarValue",
    "StructlogEventDict",
]
