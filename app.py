"""Fathom - 本地开发环境启动文件."""

from __future__ import annotations

import os
import secrets
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Final

# 添加项目根目录到 Python 路径
PROJECT_ROOT: Final[Path] = Path(__file__).parent
sys.path.insert(0, str(PROJECT_ROOT))

from fathom import create_app, db  # noqa: E402
from fathom.constants import UserRole  # noqa: E402
from fathom.models.team import Team  # noqa: E402
from fathom.models.user import User  # noqa: E402
from fathom.utils.structlog_config import get_system_logger  # noqa: E402

if TYPE_CHECKING:
    from flask import Flask

os.environ.setdefault("FLASK_APP", "fathom")
os.environ.setdefault("FLASK_ENV", "development")

DEFAULT_HOST: Final[str] = "127.0.0.1"
DEFAULT_PORT: Final[str] = "5001"
DEFAULT_DEBUG: Final[str] = "true"
DEFAULT_TEAM_NAME: Final[str] = "default"


def _ensure_admin_account(flask_app: Flask) -> None:
    """建表并确保 admin 账号存在, 避免初次启动无法登录.

    Args:
        flask_app: 当前的 Flask 应用实例, 用于推入 application context.

    """
    with flask_app.app_context():
        db.create_all()
        if User.query.filter_by(username="admin").first():
            return
        team = Team.query.filter_by(name=DEFAULT_TEAM_NAME).first()
        if team is None:
            team = Team(name=DEFAULT_TEAM_NAME)
            db.session.add(team)
            db.session.flush()
        password = secrets.token_urlsafe(16)
        db.session.add(User(username="admin", password=password, role=UserRole.ADMIN, team_id=team.id))
        db.session.commit()
        get_system_logger().info("已创建默认管理员", username="admin", password=password)


def _load_runtime_config() -> tuple[str, int, bool]:
    """读取开发服务器运行参数."""
    host = os.environ.get("FLASK_HOST") or DEFAULT_HOST
    port = int(os.environ.get("FLASK_PORT", DEFAULT_PORT))
    debug = os.environ.get("FLASK_DEBUG", DEFAULT_DEBUG).lower() == "true"
    return host, port, debug


def main() -> None:
    """启动 Flask 开发服务器."""
    app = create_app(init_scheduler_on_start=True)
    host, port, debug = _load_runtime_config()
    _ensure_admin_account(app)
    logger = get_system_logger()
    logger.info("Fathom 开发环境已启动", host=host, port=port, debug=debug)
    logger.info("API 文档", url=f"http://{host}:{port}/api/v1/docs")

    app.run(host=host, port=port, debug=debug, threaded=True, use_reloader=False)


if __name__ == "__main__":
    main()
