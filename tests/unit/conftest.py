# tests/unit/conftest.py
"""单元测试专用 fixtures.

提供隔离环境变量、内存数据库应用、假传输层与测试数据工厂。
"""

from __future__ import annotations

import pytest

from fathom import create_app, db
from fathom.constants import DatabaseEngine, UserRole
from fathom.models.server import Server
from fathom.models.standalone_databases import ENGINE_MODELS
from fathom.models.team import Team
from fathom.models.user import User
from fathom.settings import Settings

DEFAULT_CREDENTIALS = {
    DatabaseEngine.POSTGRESQL: {"postgres_user": "postgres", "postgres_password": "pg-secret", "postgres_db": "app"},
    DatabaseEngine.MYSQL: {"mysql_root_password": "root-secret", "mysql_database": "shop"},
    DatabaseEngine.MARIADB: {"mariadb_root_password": "root-secret", "mariadb_database": "shop"},
    DatabaseEngine.MONGODB: {"mongo_initdb_root_username": "root", "mongo_initdb_root_password": "mongo-secret"},
    DatabaseEngine.REDIS: {"redis_password": "redis-secret"},
    DatabaseEngine.KEYDB: {"keydb_password": "keydb-secret"},
    DatabaseEngine.DRAGONFLY: {"dragonfly_password": "df-secret"},
    DatabaseEngine.CLICKHOUSE: {"clickhouse_admin_user": "default", "clickhouse_admin_password": "ch-secret"},
}


@pytest.fixture(autouse=True)
def _unit_test_env(monkeypatch):
    """为 unit tests 强制注入隔离环境变量.

    目标:
    - unit tests 不依赖外部 SSH 主机、数据库等基础设施
    - 避免开发者本机环境变量影响测试稳定性
    """
    monkeypatch.setenv("FLASK_ENV", "testing")
    monkeypatch.setenv("ENABLE_SCHEDULER", "false")
    # Block `.env` from injecting an invalid key; let PasswordManager fall back to a temp key.
    monkeypatch.setenv("PASSWORD_ENCRYPTION_KEY", "")


class FakeTransport:
    """记录下发命令并按片段返回预置输出的传输实现.

    `responses` 按注册顺序匹配,命中第一个包含该片段的命令;输出为异常实例时直接抛出。
    """

    def __init__(self, default: str | None = "") -> None:
        self.default = default
        self.responses: list[tuple[str, object]] = []
        self.commands: list[str] = []

    def when(self, fragment: str, output: object) -> FakeTransport:
        self.responses.append((fragment, output))
        return self

    def run(self, command_lines, server, interactive=False):
        del server, interactive
        script = "\n".join(command_lines)
        self.commands.append(script)
        for fragment, output in self.responses:
            if fragment in script:
                if isinstance(output, BaseException):
                    raise output
                return output
        return self.default

    def ran(self, fragment: str) -> bool:
        return any(fragment in command for command in self.commands)


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def app():
    """创建测试应用实例并建表,整个测试期间保持应用上下文."""
    settings = Settings.load()
    app = create_app(init_scheduler_on_start=False, settings=settings)
    app.config["TESTING"] = True
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def team(app):
    team = Team(name="platform")
    db.session.add(team)
    db.session.commit()
    return team


@pytest.fixture
def make_user(app, team):
    def _make_user(username: str = "alice", role: str = UserRole.ADMIN, team_id: int | None = None) -> User:
        user = User(username=username, password="TestPass1", role=role, team_id=team_id or team.id)
        db.session.add(user)
        db.session.commit()
        return user

    return _make_user


@pytest.fixture
def make_server(app, team):
    def _make_server(**overrides) -> Server:
        values = {"name": "db-host-1", "ip": "10.0.0.5", "port": 22, "user": "root", "team_id": team.id}
        values.update(overrides)
        server = Server(**values)
        db.session.add(server)
        db.session.commit()
        return server

    return _make_server


@pytest.fixture
def make_database(app, team, make_server):
    def _make_database(engine: str = DatabaseEngine.POSTGRESQL, *, server: Server | None = None, **overrides):
        server = server or make_server()
        values = {"name": f"{engine}-main", "team_id": team.id, "server_id": server.id}
        values.update(DEFAULT_CREDENTIALS[engine])
        values.update(overrides)
        handle = ENGINE_MODELS[engine](**values)
        db.session.add(handle)
        db.session.commit()
        return handle

    return _make_database


@pytest.fixture
def login_client(app):
    """返回已登录指定用户的测试客户端工厂."""

    def _login_client(user: User):
        client = app.test_client()
        with client.session_transaction() as session:
            session["_user_id"] = str(user.id)
            session["_fresh"] = True
        return client

    return _login_client
