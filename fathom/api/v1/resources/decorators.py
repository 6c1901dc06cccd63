"""API v1 decorators.

API v1 的错误语义始终为 JSON,统一通过 AppError 体系让全局错误处理器输出标准错误封套.
"""

from __future__ import annotations

from collections.abc import Callable
from functools import wraps
from typing import ParamSpec, TypeVar

from flask import request
from flask_login import current_user

from fathom.constants.system_constants import ErrorMessages
from fathom.errors import AuthenticationError

P = ParamSpec("P")
R = TypeVar("R")


def api_login_required(func: Callable[P, R]) -> Callable[P, R]:
    """要求调用者已登录(API v1 专用)."""

    @wraps(func)
    def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
        if not current_user.is_authenticated:
            raise AuthenticationError(
                ErrorMessages.AUTHENTICATION_REQUIRED,
                message_key="AUTHENTICATION_REQUIRED",
                extra={
                    "request_path": request.path,
                    "request_method": request.method,
                    "permission_type": "login",
                },
            )
        return func(*args, **kwargs)

    return wrapper
