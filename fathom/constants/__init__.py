"""常量模块。

集中管理系统常量，包括引擎类型、用户角色、错误消息、HTTP 相关常量等。

主要常量：
- DatabaseEngine: 数据库引擎类型常量
- UserRole: 用户角色常量
- ErrorMessages: 错误消息常量
- HttpStatus: HTTP 状态码常量
"""

# 导入HTTP状态码常量（使用Python标准库）
from http import HTTPStatus as HttpStatus

from .database_engines import DatabaseEngine, EngineFamily
from .http_headers import HttpHeaders
from .system_constants import (
    ErrorCategory,
    ErrorMessages,
    ErrorSeverity,
    SuccessMessages,
)
from .user_roles import UserRole

__all__ = [
    "DatabaseEngine",
    "EngineFamily",
    "ErrorCategory",
    "ErrorMessages",
    "ErrorSeverity",
    "HttpHeaders",
    "HttpStatus",
    "SuccessMessages",
    "UserRole",
]
