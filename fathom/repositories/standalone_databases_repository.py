"""受管数据库 Repository.

职责:
- 每个引擎表一个团队隔离的 `TeamScopedRepository`
- 为定时采集提供跨团队的全量遍历
- 不做序列化、不 commit
"""

from __future__ import annotations

from collections.abc import Iterator
from typing import cast

from fathom.constants import DatabaseEngine
from fathom.models.standalone_databases import ENGINE_MODELS, StandaloneDatabaseMixin


class TeamScopedRepository:
    """按团队过滤的单引擎表查询."""

    def __init__(self, model: type[StandaloneDatabaseMixin]) -> None:
        self.model = model

    @property
    def engine_type(self) -> str:
        return self.model.engine_type

    def find_by_uuid(self, uuid: str, team_id: int | None) -> StandaloneDatabaseMixin | None:
        if not uuid or team_id is None:
            return None
        query = self.model.query.filter_by(uuid=uuid, team_id=team_id)  # type: ignore[attr-defined]
        return cast("StandaloneDatabaseMixin | None", query.first())

    def list_all(self) -> list[StandaloneDatabaseMixin]:
        return list(self.model.query.order_by(self.model.id).all())  # type: ignore[attr-defined]


def build_engine_repositories() -> dict[str, TeamScopedRepository]:
    """按探测顺序构建每个引擎的 Repository."""
    return {engine: TeamScopedRepository(ENGINE_MODELS[engine]) for engine in DatabaseEngine.PROBE_ORDER}


def iter_all_databases() -> Iterator[StandaloneDatabaseMixin]:
    """遍历所有引擎表中的受管数据库."""
    for repository in build_engine_repositories().values():
        yield from repository.list_all()


__all__ = ["TeamScopedRepository", "build_engine_repositories", "iter_all_databases"]
