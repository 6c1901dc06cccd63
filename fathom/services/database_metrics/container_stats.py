"""`docker stats` 容器资源采样."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from fathom.services.database_metrics.base import quote
from fathom.services.remote_execution import RemoteExecutionTransport, get_transport
from fathom.utils.format_utils import convert_to_bytes

if TYPE_CHECKING:
    from fathom.models.server import Server

STAT_KEYS = ("cpuPercent", "memoryUsedBytes", "memoryLimitBytes", "networkRxBytes", "networkTxBytes")


def _split_pair(value: object) -> tuple[int | None, int | None]:
    """解析 `a / b` 形式的容量对."""
    if not isinstance(value, str) or "/" not in value:
        return None, None
    left, right = (part.strip() for part in value.split("/", 1))
    return convert_to_bytes(left) or None, convert_to_bytes(right) or None


def parse_container_stats(output: str) -> dict[str, Any]:
    """将 `docker stats --format '{{json .}}'` 的输出转为采样字段,缺失项为 None."""
    sample: dict[str, Any] = dict.fromkeys(STAT_KEYS)
    try:
        stats = json.loads(output.strip() or "{}")
    except ValueError:
        return sample
    if not isinstance(stats, dict):
        return sample

    cpu = stats.get("CPUPerc")
    if isinstance(cpu, str) and cpu.strip().rstrip("%"):
        try:
            sample["cpuPercent"] = round(float(cpu.strip().rstrip("%")), 2)
        except ValueError:
            sample["cpuPercent"] = None
    sample["memoryUsedBytes"], sample["memoryLimitBytes"] = _split_pair(stats.get("MemUsage"))
    sample["networkRxBytes"], sample["networkTxBytes"] = _split_pair(stats.get("NetIO"))
    return sample


def collect_container_stats(
    server: Server,
    container: str,
    transport: RemoteExecutionTransport | None = None,
) -> dict[str, Any]:
    """采集单个容器的 CPU、内存与网络用量."""
    command = f"docker stats {quote(container)} --no-stream --format '{{{{json .}}}}' 2>/dev/null || echo '{{}}'"
    output = (transport or get_transport()).run([command], server, False)
    return parse_container_stats(output or "")


__all__ = ["STAT_KEYS", "collect_container_stats", "parse_container_stats"]
