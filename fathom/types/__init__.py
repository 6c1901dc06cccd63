"""Fathom 类型定义入口."""

from .structures import (
    ContextDict,
    ContextMapping,
    ContextValue,
    JsonDict,
    JsonValue,
    LoggerExtra,
    RouteSafetyOptions,
    ScalarValue,
    StructlogEventDict,
)

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
