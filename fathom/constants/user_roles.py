"""
用户角色常量

定义用户角色与数据库管理能力的映射，避免魔法字符串。
"""

from __future__ import annotations

from typing import ClassVar


class UserRole:
    """用户角色常量

    能力分三级: view 只读, update 修改配置与数据, manage 破坏性或凭据相关操作。
    """

    ADMIN = "admin"             # 管理员
    OWNER = "owner"             # 团队所有者
    MEMBER = "member"           # 团队成员
    VIEWER = "viewer"           # 查看者（只读）

    ABILITY_VIEW = "view"
    ABILITY_UPDATE = "update"
    ABILITY_MANAGE = "manage"

    ABILITIES: ClassVar[dict[str, frozenset[str]]] = {
        ADMIN: frozenset({ABILITY_VIEW, ABILITY_UPDATE, ABILITY_MANAGE}),
        OWNER: frozenset({ABILITY_VIEW, ABILITY_UPDATE, ABILITY_MANAGE}),
        MEMBER: frozenset({ABILITY_VIEW, ABILITY_UPDATE}),
        VIEWER: frozenset({ABILITY_VIEW}),
    }

    @classmethod
    def abilities_of(cls, role: str | None) -> frozenset[str]:
        """返回角色具备的能力集合,未知角色返回空集."""
        if not role:
            return frozenset()
        return cls.ABILITIES.get(role, frozenset())
