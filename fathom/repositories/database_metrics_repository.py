"""数据库指标样本 Repository.

职责:
- 写入定时采集的样本
- 按时间范围读取样本
- 清理过期样本
- 不 commit
"""

from __future__ import annotations

from datetime import datetime

from fathom import db
from fathom.models.database_metric import DatabaseMetric


class DatabaseMetricsRepository:
    """指标样本读写 Repository."""

    def add(self, metric: DatabaseMetric) -> DatabaseMetric:
        db.session.add(metric)
        db.session.flush()
        return metric

    @staticmethod
    def list_since(database_uuid: str, since: datetime) -> list[DatabaseMetric]:
        return (
            DatabaseMetric.query.filter(
                DatabaseMetric.database_uuid == database_uuid,
                DatabaseMetric.recorded_at >= since,
            )
            .order_by(DatabaseMetric.recorded_at.asc())
            .all()
        )

    @staticmethod
    def delete_older_than(cutoff: datetime) -> int:
        """删除早于 cutoff 的样本,返回删除行数."""
        return DatabaseMetric.query.filter(DatabaseMetric.recorded_at < cutoff).delete(synchronize_session=False)


__all__ = ["DatabaseMetricsRepository"]
