"""受管数据库指标采集与清理定时任务."""

from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING

from sqlalchemy.exc import SQLAlchemyError

from fathom import create_app, db
from fathom.errors import AppError
from fathom.models.database_metric import DatabaseMetric
from fathom.repositories.database_metrics_repository import DatabaseMetricsRepository
from fathom.repositories.servers_repository import ServersRepository
from fathom.repositories.standalone_databases_repository import iter_all_databases
from fathom.services.database_metrics.container_stats import collect_container_stats
from fathom.services.database_metrics.resolver import build_service
from fathom.services.remote_execution import RemoteExecutionTransport, get_transport
from fathom.utils.structlog_config import get_task_logger
from fathom.utils.time_utils import time_utils

if TYPE_CHECKING:
    from flask import Flask

    from fathom.models.server import Server
    from fathom.models.standalone_databases import StandaloneDatabaseMixin

COLLECTION_EXCEPTIONS: tuple[type[Exception], ...] = (
    AppError,
    SQLAlchemyError,
    RuntimeError,
    LookupError,
    ValueError,
    TypeError,
    OSError,
)


def _resolve_app() -> Flask:
    """优先复用调度器持有的应用,独立运行时新建一个不启动调度器的应用."""
    from fathom.scheduler import scheduler  # noqa: PLC0415

    return scheduler.app or create_app(init_scheduler_on_start=False)


def build_metric_sample(
    handle: StandaloneDatabaseMixin,
    server: Server,
    transport: RemoteExecutionTransport,
) -> DatabaseMetric:
    """采集单个数据库的容器与引擎指标并组装样本(未入库)."""
    stats = collect_container_stats(server, handle.uuid, transport)
    service = build_service(handle.engine_type, transport)
    engine_metrics = service.collect_metrics(server, handle) if service is not None else {}
    return DatabaseMetric(
        database_uuid=handle.uuid,
        database_type=handle.engine_type,
        cpu_percent=stats.get("cpuPercent"),
        memory_bytes=stats.get("memoryUsedBytes"),
        memory_limit_bytes=stats.get("memoryLimitBytes"),
        network_rx_bytes=stats.get("networkRxBytes"),
        network_tx_bytes=stats.get("networkTxBytes"),
        metrics=engine_metrics,
        recorded_at=time_utils.now(),
    )


def collect_metrics_once(transport: RemoteExecutionTransport | None = None) -> dict[str, int]:
    """在当前应用上下文中完成一轮采集.

    Args:
        transport: 远程执行传输,缺省使用进程级默认传输.

    Returns:
        dict: `collected` 成功写入数、`failed` 失败数、`skipped` 主机不可用而跳过的数量.

    """
    task_logger = get_task_logger()
    transport = transport or get_transport()
    repository = DatabaseMetricsRepository()
    functional_server_ids = {server.id for server in ServersRepository.list_functional()}

    summary = {"collected": 0, "failed": 0, "skipped": 0}
    for handle in iter_all_databases():
        server = handle.server
        if server is None or server.id not in functional_server_ids:
            summary["skipped"] += 1
            continue
        try:
            repository.add(build_metric_sample(handle, server, transport))
            db.session.commit()
        except COLLECTION_EXCEPTIONS as exc:
            db.session.rollback()
            summary["failed"] += 1
            task_logger.warning(
                "采集数据库指标失败,跳过",
                module="task",
                task_name="collect_database_metrics",
                database_uuid=handle.uuid,
                engine=handle.engine_type,
                error=str(exc),
            )
            continue
        summary["collected"] += 1
    return summary


def collect_database_metrics() -> dict[str, int]:
    """定时采集所有可用主机上受管数据库的指标."""
    task_logger = get_task_logger()
    app = _resolve_app()
    with app.app_context():
        summary = collect_metrics_once()
        task_logger.info(
            "定时采集数据库指标完成",
            module="task",
            task_name="collect_database_metrics",
            **summary,
        )
        return summary


def purge_expired_metrics(retention_days: int) -> int:
    """删除早于保留期的样本并提交,返回删除行数."""
    cutoff = time_utils.now() - timedelta(days=retention_days)
    try:
        deleted = DatabaseMetricsRepository.delete_older_than(cutoff)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise
    return deleted


def cleanup_database_metrics() -> int:
    """清理超过 METRICS_RETENTION_DAYS 的指标样本.

    Raises:
        SQLAlchemyError: 删除失败时回滚并抛出,由调度器记录任务失败.

    """
    task_logger = get_task_logger()
    app = _resolve_app()
    with app.app_context():
        retention_days = int(app.config.get("METRICS_RETENTION_DAYS", 30))
        try:
            deleted = purge_expired_metrics(retention_days)
        except SQLAlchemyError as exc:
            task_logger.error(
                "清理指标样本失败",
                module="task",
                task_name="cleanup_database_metrics",
                error=str(exc),
                exc_info=True,
            )
            raise
        task_logger.info(
            "清理指标样本完成",
            module="task",
            task_name="cleanup_database_metrics",
            retention_days=retention_days,
            deleted=deleted,
        )
        return deleted


__all__ = [
    "build_metric_sample",
    "cleanup_database_metrics",
    "collect_database_metrics",
    "collect_metrics_once",
    "purge_expired_metrics",
]
