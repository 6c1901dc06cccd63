"""按 uuid 解析受管数据库.

每个引擎一张表,uuid 唯一性跨表并未在数据库层约束.解析时按
`DatabaseEngine.PROBE_ORDER` 依次探测,首个命中即返回:
postgresql, mysql, mariadb, mongodb, redis, keydb, dragonfly, clickhouse.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from fathom.constants import DatabaseEngine, EngineFamily
from fathom.repositories.standalone_databases_repository import TeamScopedRepository, build_engine_repositories
from fathom.services.database_metrics.clickhouse_service import ClickhouseMetricsService
from fathom.services.database_metrics.mongo_service import MongoMetricsService
from fathom.services.database_metrics.mysql_service import MysqlMetricsService
from fathom.services.database_metrics.postgres_service import PostgresMetricsService
from fathom.services.database_metrics.redis_service import RedisMetricsService

if TYPE_CHECKING:
    from fathom.models.standalone_databases import StandaloneDatabaseMixin
    from fathom.services.database_metrics.base import EngineMetricsService
    from fathom.services.remote_execution import RemoteExecutionTransport

SERVICE_CLASSES: dict[str, type[EngineMetricsService]] = {
    EngineFamily.POSTGRES: PostgresMetricsService,
    EngineFamily.MYSQL: MysqlMetricsService,
    EngineFamily.REDIS: RedisMetricsService,
    EngineFamily.MONGO: MongoMetricsService,
    EngineFamily.CLICKHOUSE: ClickhouseMetricsService,
}


@dataclass(slots=True)
class ResolvedDatabase:
    """解析结果:数据库记录、引擎类型及其管理服务."""

    handle: StandaloneDatabaseMixin
    engine_type: str
    service: EngineMetricsService | None

    @property
    def family(self) -> str | None:
        return DatabaseEngine.family_of(self.engine_type)


def build_service(engine_type: str, transport: RemoteExecutionTransport | None = None) -> EngineMetricsService | None:
    """为引擎类型构建管理服务,未知引擎返回 None."""
    family = DatabaseEngine.family_of(engine_type)
    service_class = SERVICE_CLASSES.get(family or "")
    if service_class is None:
        return None
    return service_class(transport)


class DatabaseResolver:
    """团队范围内的 uuid 解析器.

    Args:
        repositories: 按探测顺序排列的引擎 Repository,缺省按固定顺序构建.
        transport: 注入给引擎服务的传输实现,缺省使用进程级默认传输.

    """

    def __init__(
        self,
        repositories: dict[str, TeamScopedRepository] | None = None,
        transport: RemoteExecutionTransport | None = None,
    ) -> None:
        self._repositories = repositories
        self.transport = transport

    @property
    def repositories(self) -> dict[str, TeamScopedRepository]:
        if self._repositories is None:
            self._repositories = build_engine_repositories()
        return self._repositories

    def find_by_uuid(self, uuid: str, team_id: int | None) -> ResolvedDatabase | None:
        """依次探测各引擎表,未命中时返回 None 而不是抛异常."""
        for engine_type, repository in self.repositories.items():
            handle = repository.find_by_uuid(uuid, team_id)
            if handle is not None:
                return ResolvedDatabase(
                    handle=handle,
                    engine_type=engine_type,
                    service=build_service(engine_type, self.transport),
                )
        return None


__all__ = ["SERVICE_CLASSES", "DatabaseResolver", "ResolvedDatabase", "build_service"]
