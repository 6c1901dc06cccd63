"""Fathom - 用户模型."""

from __future__ import annotations

from flask_login import UserMixin
from werkzeug.security import check_password_hash, generate_password_hash

from fathom import db
from fathom.constants import UserRole
from fathom.utils.time_utils import time_utils

MIN_USER_PASSWORD_LENGTH = 8


class User(UserMixin, db.Model):
    """用户模型.

    管理登录用户的认证信息与所在团队内的角色.
    继承 Flask-Login 的 UserMixin 提供会话管理功能.

    Attributes:
        id: 用户 ID,主键.
        username: 用户名,唯一索引.
        password_hash: 密码哈希.
        role: 团队内角色,可选值:admin、owner、member、viewer.
        team_id: 所属团队.
        created_at: 创建时间.
        last_login: 最后登录时间.
        is_active: 是否启用.

    """

    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(255), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    role = db.Column(db.String(50), nullable=False, default=UserRole.MEMBER)
    team_id = db.Column(db.Integer, db.ForeignKey("teams.id"), nullable=False, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=time_utils.now)
    last_login = db.Column(db.DateTime(timezone=True), nullable=True)
    is_active: bool = db.Column(db.Boolean, default=True, nullable=False)  # pyright: ignore[reportIncompatibleMethodOverride]

    team = db.relationship("Team", lazy="joined")

    def __init__(
        self,
        username: str | None = None,
        password: str | None = None,
        role: str = UserRole.MEMBER,
        team_id: int | None = None,
    ) -> None:
        """初始化用户.

        Args:
            username: 用户名
            password: 密码
            role: 角色
            team_id: 所属团队 ID

        """
        if username is not None:
            self.username = username
        if password is not None:
            self.set_password(password)
        self.role = role or UserRole.MEMBER
        if team_id is not None:
            self.team_id = team_id

    def set_password(self, password: str) -> None:
        """设置密码(哈希存储).

        Raises:
            ValueError: 密码长度不足时抛出.

        """
        if len(password) < MIN_USER_PASSWORD_LENGTH:
            error_msg = f"密码长度至少{MIN_USER_PASSWORD_LENGTH}位"
            raise ValueError(error_msg)
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        """验证密码."""
        return check_password_hash(self.password_hash, password)

    def has_ability(self, ability: str) -> bool:
        """判断当前角色是否具备指定能力."""
        return ability in UserRole.abilities_of(self.role)

    def __repr__(self) -> str:
        return f"<User {self.username}>"
