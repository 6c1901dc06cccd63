"""历史指标聚合.

读取定时任务写入的 `DatabaseMetric` 样本,按时间范围分桶求平均,
输出 CPU、内存与连接数三条序列.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from datetime import datetime, timedelta
from typing import Any

from fathom.models.database_metric import DatabaseMetric
from fathom.repositories.database_metrics_repository import DatabaseMetricsRepository
from fathom.utils.time_utils import TimeFormats, time_utils

DEFAULT_TIME_RANGE = "24h"

# 时间范围 -> (回看时长, 分桶宽度)
TIME_RANGES: dict[str, tuple[timedelta, timedelta]] = {
    "1h": (timedelta(hours=1), timedelta(minutes=1)),
    "6h": (timedelta(hours=6), timedelta(minutes=5)),
    "24h": (timedelta(hours=24), timedelta(minutes=15)),
    "7d": (timedelta(days=7), timedelta(hours=1)),
    "30d": (timedelta(days=30), timedelta(hours=6)),
}


def normalize_time_range(value: object) -> str:
    """非法时间范围回退为 24h."""
    return value if isinstance(value, str) and value in TIME_RANGES else DEFAULT_TIME_RANGE


def _memory_percent(sample: DatabaseMetric) -> float | None:
    if sample.memory_bytes is None:
        return None
    if sample.memory_limit_bytes:
        return sample.memory_bytes / sample.memory_limit_bytes * 100
    return None


def _connections(sample: DatabaseMetric) -> float | None:
    value = sample.connections()
    return float(value) if value is not None else None


def _cpu(sample: DatabaseMetric) -> float | None:
    return sample.cpu_percent


def _bucket_start(moment: datetime, width: timedelta) -> datetime:
    moment = time_utils.to_utc(moment) or moment
    epoch = moment.timestamp()
    seconds = width.total_seconds()
    return time_utils.from_timestamp(epoch - epoch % seconds)


def build_series(
    samples: Iterable[DatabaseMetric],
    extractor: Callable[[DatabaseMetric], float | None],
    bucket_width: timedelta,
) -> dict[str, Any]:
    """将样本按桶聚合为 `{current, average, peak, data}`.

    Args:
        samples: 按时间升序排列的样本.
        extractor: 从样本中取值的函数,返回 None 的样本被忽略.
        bucket_width: 分桶宽度.

    Returns:
        序列字典;没有任何有效值时 current/average/peak 为 None.

    """
    buckets: dict[datetime, list[float]] = {}
    values: list[float] = []
    for sample in samples:
        value = extractor(sample)
        if value is None:
            continue
        values.append(value)
        buckets.setdefault(_bucket_start(sample.recorded_at, bucket_width), []).append(value)

    data = [
        {
            "timestamp": time_utils.format_utc_time(start, TimeFormats.DATETIME_FORMAT),
            "value": round(sum(bucket) / len(bucket), 2),
        }
        for start, bucket in sorted(buckets.items())
    ]
    if not values:
        return {"current": None, "average": None, "peak": None, "data": data}
    return {
        "current": round(values[-1], 2),
        "average": round(sum(values) / len(values), 2),
        "peak": round(max(values), 2),
        "data": data,
    }


class HistoricalMetricsService:
    """历史指标查询服务."""

    def __init__(self, repository: DatabaseMetricsRepository | None = None) -> None:
        self.repository = repository or DatabaseMetricsRepository()

    def get_history(self, database_uuid: str, time_range: object) -> dict[str, Any]:
        normalized = normalize_time_range(time_range)
        lookback, bucket_width = TIME_RANGES[normalized]
        samples = self.repository.list_since(database_uuid, time_utils.now() - lookback)
        return {
            "hasHistoricalData": bool(samples),
            "timeRange": normalized,
            "metrics": {
                "cpu": build_series(samples, _cpu, bucket_width),
                "memory": build_series(samples, _memory_percent, bucket_width),
                "connections": build_series(samples, _connections, bucket_width),
            },
        }


__all__ = ["DEFAULT_TIME_RANGE", "TIME_RANGES", "HistoricalMetricsService", "build_series", "normalize_time_range"]
