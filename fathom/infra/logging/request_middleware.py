"""请求级别的上下文注入与 wide event 发射.

- request_id/user_id 通过 contextvars 在整个请求生命周期可用,用于日志关联与错误封套.
- 每个请求完成时发射一条 `http_request_completed` 事件,字段稳定、可聚合.
"""

from __future__ import annotations

import re
import time
from contextlib import suppress
from typing import TYPE_CHECKING
from uuid import uuid4

from flask import Flask, g, request
from flask_login import current_user

from fathom.constants import HttpHeaders
from fathom.utils.logging.context_vars import request_id_var, user_id_var
from fathom.utils.structlog_config import get_logger

if TYPE_CHECKING:
    from contextvars import Token

    from werkzeug.wrappers.response import Response

_REQUEST_ID_MAX_LEN = 128
_REQUEST_ID_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.:-]{0,127}$")


def _generate_request_id() -> str:
    return f"req_{uuid4().hex}"


def _sanitize_request_id(raw_value: str | None) -> str | None:
    if not raw_value:
        return None
    value = raw_value.strip()
    if not value or len(value) > _REQUEST_ID_MAX_LEN:
        return None
    if not _REQUEST_ID_PATTERN.match(value):
        return None
    return value


def register_request_logging(app: Flask) -> None:
    """注册请求级别的上下文注入与 wide event."""

    @app.before_request
    def _bind_request_context() -> None:
        incoming_request_id = _sanitize_request_id(request.headers.get(HttpHeaders.X_REQUEST_ID))
        request_id = incoming_request_id or _generate_request_id()

        request_id_token: Token[str | None] = request_id_var.set(request_id)
        user_id_token: Token[int | None] = user_id_var.set(_resolve_user_id())

        # teardown 时必须 reset,否则同线程后续请求会读到旧值
        g._request_id_token = request_id_token
        g._user_id_token = user_id_token

        g.request_id = request_id
        g.endpoint = request.endpoint
        url_rule = getattr(request, "url_rule", None)
        g.route = getattr(url_rule, "rule", None) if url_rule else None
        g._request_start_perf = time.perf_counter()

    @app.after_request
    def _emit_request_wide_event(response: Response) -> Response:
        request_id = request_id_var.get() or getattr(g, "request_id", None) or _generate_request_id()
        response.headers.setdefault(HttpHeaders.X_REQUEST_ID, request_id)

        duration_ms = None
        started_at = getattr(g, "_request_start_perf", None)
        if isinstance(started_at, (float, int)):
            duration_ms = round((time.perf_counter() - float(started_at)) * 1000)

        status_code = int(getattr(response, "status_code", 0) or 0)
        outcome = "success" if status_code and status_code < 400 else "error"

        get_logger("http").info(
            "http_request_completed",
            module="http",
            action=f"{request.method} {request.path}",
            method=request.method,
            path=request.path,
            status_code=status_code,
            outcome=outcome,
            duration_ms=duration_ms,
            route=getattr(g, "route", None),
            endpoint=getattr(g, "endpoint", None),
            user_id=user_id_var.get(),
        )
        return response

    @app.teardown_request
    def _reset_request_context(_exc: BaseException | None) -> None:
        request_id_token = getattr(g, "_request_id_token", None)
        user_id_token = getattr(g, "_user_id_token", None)
        with suppress(LookupError, RuntimeError, ValueError):
            if request_id_token is not None:
                request_id_var.reset(request_id_token)
                g._request_id_token = None
        with suppress(LookupError, RuntimeError, ValueError):
            if user_id_token is not None:
                user_id_var.reset(user_id_token)
                g._user_id_token = None


def _resolve_user_id() -> int | None:
    with suppress(RuntimeError, AttributeError):
        if current_user and getattr(current_user, "is_authenticated", False):
            user_id = getattr(current_user, "id", None)
            return int(user_id) if isinstance(user_id, (int, str)) and str(user_id).isdigit() else None
    return None


__all__ = ["register_request_logging"]
