"""Fathom - 团队模型."""

from __future__ import annotations

from fathom import db
from fathom.utils.time_utils import time_utils


class Team(db.Model):
    """团队模型.

    受管数据库与服务器均归属于唯一团队,解析 uuid 时按团队隔离.

    Attributes:
        id: 团队主键.
        name: 团队名称.
        created_at: 创建时间.

    """

    __tablename__ = "teams"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=time_utils.now)

    def __repr__(self) -> str:
        return f"<Team {self.name}>"
