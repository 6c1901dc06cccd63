"""HTTP头常量.

定义常用的HTTP头名称，避免魔法字符串。
"""


class HttpHeaders:
    """HTTP头常量."""

    CONTENT_TYPE = "Content-Type"
    AUTHORIZATION = "Authorization"
    USER_AGENT = "User-Agent"

    # 代理相关
    X_FORWARDED_FOR = "X-Forwarded-For"
    X_FORWARDED_PROTO = "X-Forwarded-Proto"
    X_FORWARDED_SSL = "X-Forwarded-Ssl"
    X_REAL_IP = "X-Real-IP"

    # 请求追踪
    X_REQUEST_ID = "X-Request-ID"
