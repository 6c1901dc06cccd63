"""受管数据库的能力校验."""

from __future__ import annotations

from typing import TYPE_CHECKING

from flask_login import current_user

from fathom.constants import UserRole
from fathom.errors import AuthorizationError
from fathom.infra.route_safety import log_with_context

if TYPE_CHECKING:
    from fathom.models.standalone_databases import StandaloneDatabaseMixin
    from fathom.models.user import User


class DatabaseAuthorizationService:
    """按能力(view/update/manage)校验当前用户对数据库的操作权限.

    Args:
        user: 可选的显式主体,缺省使用 Flask-Login 当前用户.

    """

    def __init__(self, user: User | None = None) -> None:
        self._user = user

    @property
    def user(self) -> User | None:
        if self._user is not None:
            return self._user
        if getattr(current_user, "is_authenticated", False):
            return current_user  # type: ignore[return-value]
        return None

    def can(self, ability: str, handle: StandaloneDatabaseMixin) -> bool:
        user = self.user
        if user is None or user.team_id != handle.team_id:
            return False
        if ability == UserRole.ABILITY_VIEW:
            return True
        return user.has_ability(ability)

    def authorize(self, ability: str, handle: StandaloneDatabaseMixin) -> None:
        """校验能力,不满足时抛出 AuthorizationError.

        Raises:
            AuthorizationError: 当前用户不属于数据库所在团队,或角色缺少该能力.

        """
        if self.can(ability, handle):
            return
        log_with_context(
            "warning",
            "数据库操作权限不足",
            module="authorization",
            action="authorize",
            context={"ability": ability, "database_uuid": handle.uuid},
        )
        raise AuthorizationError(message_key="PERMISSION_DENIED", extra={"ability": ability})


__all__ = ["DatabaseAuthorizationService"]
