"""Fathom - 数据库指标样本模型."""

from __future__ import annotations

from fathom import db
from fathom.utils.time_utils import time_utils


class DatabaseMetric(db.Model):
    """数据库指标样本.

    由定时任务周期写入,供历史指标查询按时间范围聚合.

    Attributes:
        id: 主键.
        database_uuid: 受管数据库 uuid.
        database_type: 引擎类型.
        cpu_percent: 容器 CPU 使用率.
        memory_bytes: 容器内存使用量.
        memory_limit_bytes: 容器内存上限.
        network_rx_bytes: 累计接收字节.
        network_tx_bytes: 累计发送字节.
        metrics: 引擎特有指标(JSON).
        recorded_at: 采集时间.

    """

    __tablename__ = "database_metrics"
    __table_args__ = (db.Index("ix_database_metrics_uuid_recorded_at", "database_uuid", "recorded_at"),)

    id = db.Column(db.Integer, primary_key=True)
    database_uuid = db.Column(db.String(64), nullable=False)
    database_type = db.Column(db.String(32), nullable=False)
    cpu_percent = db.Column(db.Float, nullable=True)
    memory_bytes = db.Column(db.BigInteger, nullable=True)
    memory_limit_bytes = db.Column(db.BigInteger, nullable=True)
    network_rx_bytes = db.Column(db.BigInteger, nullable=True)
    network_tx_bytes = db.Column(db.BigInteger, nullable=True)
    metrics = db.Column(db.JSON, nullable=True)
    recorded_at = db.Column(db.DateTime(timezone=True), nullable=False, default=time_utils.now, index=True)

    def connections(self) -> int | None:
        """从引擎指标中读取连接数,不存在时返回 None."""
        payload = self.metrics or {}
        for key in ("activeConnections", "connections"):
            value = payload.get(key)
            if isinstance(value, (int, float)):
                return int(value)
        return None

    def __repr__(self) -> str:
        return f"<DatabaseMetric {self.database_uuid} {self.recorded_at}>"
