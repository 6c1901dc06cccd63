"""用户 Repository."""

from __future__ import annotations

from typing import cast

from fathom.models.user import User


class UsersRepository:
    """用户查询 Repository."""

    @staticmethod
    def get_by_username(username: str) -> User | None:
        normalized = (username or "").strip()
        if not normalized:
            return None
        return cast("User | None", User.query.filter_by(username=normalized).first())


__all__ = ["UsersRepository"]
