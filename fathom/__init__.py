"""Fathom - Flask 应用初始化.

通过远程 shell 管理容器化数据库(PostgreSQL、MySQL、MariaDB、MongoDB、
Redis、KeyDB、Dragonfly、ClickHouse)的管理网关.
"""

import logging
from functools import lru_cache
from importlib import import_module
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import TYPE_CHECKING

from flask import Flask, jsonify, request
from flask.typing import ResponseReturnValue
from flask_sqlalchemy import SQLAlchemy

from fathom.settings import Settings
from fathom.types.extensions import FathomFlask, FathomLoginManager
from fathom.utils.structlog_config import (
    ErrorContext,
    configure_structlog,
    enhanced_error_handler,
    get_system_logger,
)

if TYPE_CHECKING:
    from fathom.models.user import User

# 初始化扩展
db = SQLAlchemy()
login_manager: FathomLoginManager = FathomLoginManager()


@lru_cache(maxsize=1)
def get_user_model() -> type["User"]:
    """延迟加载 User 模型,避免循环导入."""
    return import_module("fathom.models.user").User


def create_app(
    *,
    init_scheduler_on_start: bool = True,
    settings: Settings | None = None,
) -> FathomFlask:
    """创建Flask应用实例.

    Args:
        init_scheduler_on_start: 是否在创建应用时初始化调度器
        settings: 可选的配置对象,用于测试或多环境启动.

    Returns:
        FathomFlask: Flask应用实例

    """
    resolved_settings = settings or Settings.load()
    app = FathomFlask(__name__)

    # 配置应用
    configure_app(app, resolved_settings)

    # 配置会话安全
    configure_security(app, resolved_settings)

    # 初始化扩展
    initialize_extensions(app, resolved_settings)

    # 注册 API 与请求日志
    configure_blueprints(app, resolved_settings)

    # 配置日志
    configure_logging(app)

    # 配置统一日志系统
    configure_structlog(app)

    log_level_name = str(app.config.get("LOG_LEVEL", "INFO"))
    logging.getLogger().setLevel(getattr(logging, log_level_name, logging.INFO))

    app.enhanced_error_handler = enhanced_error_handler

    # 注册全局错误处理器
    @app.errorhandler(Exception)
    def handle_global_exception(error: Exception) -> ResponseReturnValue:
        """全局错误处理."""
        from fathom.utils.response_utils import unified_error_response  # noqa: PLC0415

        payload, status_code = unified_error_response(error, context=ErrorContext(error, request))
        return jsonify(payload), status_code

    if init_scheduler_on_start:
        try:
            from fathom.scheduler import init_scheduler  # noqa: PLC0415

            init_scheduler(app)
        except Exception:
            # 调度器初始化失败不影响应用启动
            get_system_logger().exception("调度器初始化失败,应用将继续启动")

    return app


def configure_app(app: Flask, settings: Settings) -> None:
    """写入 Settings 提供的配置.

    Args:
        app: Flask 应用实例.
        settings: 统一配置对象,包含环境变量解析、默认值与校验结果.

    """
    app.config.from_mapping(settings.to_flask_config())
    app.config.setdefault("APPLICATION_ROOT", "/")


def configure_security(app: Flask, settings: Settings) -> None:
    """配置会话安全参数与 Cookie 选项."""
    app.config["PERMANENT_SESSION_LIFETIME"] = settings.session_lifetime_seconds
    app.config["SESSION_COOKIE_SECURE"] = settings.is_production
    app.config["SESSION_COOKIE_HTTPONLY"] = True
    app.config["SESSION_COOKIE_SAMESITE"] = "Lax"
    app.config["SESSION_COOKIE_NAME"] = "fathom_session"


def initialize_extensions(app: Flask, settings: Settings) -> None:
    """初始化数据库与登录等 Flask 扩展.

    Args:
        app: Flask 应用实例.
        settings: 统一配置对象,用于扩展初始化参数注入.

    """
    db.init_app(app)

    login_manager.init_app(app)
    login_manager.login_view = None
    login_manager.login_message = "请先登录"
    login_manager.session_protection = "basic"
    login_manager.remember_cookie_duration = settings.session_lifetime_seconds
    login_manager.remember_cookie_secure = not app.debug
    login_manager.remember_cookie_httponly = True

    @login_manager.user_loader
    def load_user(user_id: str) -> "User | None":
        user_model = get_user_model()
        return db.session.get(user_model, int(user_id))


def configure_blueprints(app: Flask, settings: Settings) -> None:
    """注册 `/api/v1` 蓝图与请求日志中间件."""
    from fathom.api import register_api_blueprints  # noqa: PLC0415
    from fathom.infra.logging import register_request_logging  # noqa: PLC0415

    register_api_blueprints(app, settings)
    register_request_logging(app)


def configure_logging(app: Flask) -> None:
    """配置日志系统与文件处理器.

    Args:
        app: Flask 应用实例.

    """
    if not app.debug and not app.testing:
        log_path = Path(app.config["LOG_FILE"])
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = RotatingFileHandler(
            log_path,
            maxBytes=app.config["LOG_MAX_SIZE"],
            backupCount=app.config["LOG_BACKUP_COUNT"],
        )
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]"),
        )
        file_handler.setLevel(getattr(logging, app.config["LOG_LEVEL"]))
        app.logger.addHandler(file_handler)

        app.logger.setLevel(getattr(logging, app.config["LOG_LEVEL"]))
        app.logger.info("Fathom 应用启动")


from fathom.models import (  # noqa: F401, E402
    database_metric,
    server,
    standalone_databases,
    team,
    user,
)
