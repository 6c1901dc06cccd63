"""远程主机 Repository."""

from __future__ import annotations

from fathom.models.server import Server


class ServersRepository:
    """远程主机查询 Repository."""

    @staticmethod
    def list_functional() -> list[Server]:
        return Server.query.filter_by(is_reachable=True, is_usable=True).order_by(Server.id).all()


__all__ = ["ServersRepository"]
