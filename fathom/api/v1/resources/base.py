"""Base Resource helpers."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import TYPE_CHECKING, Any, cast

from flask import Response, jsonify
from flask_restx import Resource

from fathom.infra.route_safety import safe_route_call
from fathom.utils.response_utils import jsonify_unified_success

if TYPE_CHECKING:
    from fathom.services.database_metrics.gateway import GatewayResult
    from fathom.types import ContextDict


class BaseResource(Resource):
    """统一封套与 safe_route_call 适配."""

    def success(
        self,
        data: object | None = None,
        message: object | None = None,
        *,
        status: int = 200,
        meta: Mapping[str, object] | None = None,
    ) -> tuple[Response, int]:
        return jsonify_unified_success(data=data, message=message, status=status, meta=meta)

    def gateway(
        self,
        func: Callable[[], GatewayResult],
        *,
        action: str,
        context: ContextDict | None = None,
    ) -> tuple[Response, int]:
        """执行网关操作并原样输出其 `(封套, 状态码)`.

        网关自身已将业务失败转换为封套,这里只剩权限异常等需要交给全局错误处理器的情况.
        """
        payload, status = safe_route_call(
            func,
            module="databases",
            action=action,
            public_error="数据库管理操作失败",
            context=cast("dict[str, Any] | None", context),
        )
        return jsonify(payload), status
