"""Fathom - 远程主机模型."""

from __future__ import annotations

import uuid as uuid_lib

from fathom import db
from fathom.utils.time_utils import time_utils

LOCAL_HOSTS = frozenset({"localhost", "127.0.0.1", "host.docker.internal"})


class Server(db.Model):
    """远程主机模型.

    所有引擎命令都通过 SSH 在该主机上执行,仅当主机可达且可用时才允许下发命令.

    Attributes:
        id: 主键.
        uuid: 全局唯一标识.
        name: 主机名称.
        ip: SSH 地址.
        port: SSH 端口.
        user: SSH 登录用户.
        team_id: 所属团队.
        is_reachable: 最近一次连通性检查是否可达.
        is_usable: 是否允许下发命令.
        is_local: 是否为控制面所在主机,为真时命令在本地 bash 执行.
        private_key_name: SSH 私钥文件名,位于 REMOTE_SSH_KEY_DIR 下.

    """

    __tablename__ = "servers"

    id = db.Column(db.Integer, primary_key=True)
    uuid = db.Column(db.String(64), unique=True, nullable=False, index=True, default=lambda: uuid_lib.uuid4().hex)
    name = db.Column(db.String(255), nullable=False)
    ip = db.Column(db.String(255), nullable=False)
    port = db.Column(db.Integer, nullable=False, default=22)
    user = db.Column(db.String(64), nullable=False, default="root")
    team_id = db.Column(db.Integer, db.ForeignKey("teams.id"), nullable=False, index=True)
    is_reachable = db.Column(db.Boolean, nullable=False, default=True)
    is_usable = db.Column(db.Boolean, nullable=False, default=True)
    is_local = db.Column(db.Boolean, nullable=False, default=False)
    private_key_name = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=time_utils.now)
    updated_at = db.Column(db.DateTime(timezone=True), default=time_utils.now, onupdate=time_utils.now)

    def is_functional(self) -> bool:
        """主机可达且可用时返回 True."""
        return bool(self.is_reachable and self.is_usable)

    def runs_locally(self) -> bool:
        """是否直接在控制面本机执行命令."""
        return bool(self.is_local and self.ip in LOCAL_HOSTS)

    def snapshot(self) -> Server:
        """复制连接字段到一个未加入会话的实例,供后台线程使用."""
        return Server(
            id=self.id,
            uuid=self.uuid,
            name=self.name,
            ip=self.ip,
            port=self.port,
            user=self.user,
            team_id=self.team_id,
            is_reachable=self.is_reachable,
            is_usable=self.is_usable,
            is_local=self.is_local,
            private_key_name=self.private_key_name,
        )

    def __repr__(self) -> str:
        return f"<Server {self.name} {self.ip}:{self.port}>"
