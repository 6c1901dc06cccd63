"""ClickHouse 管理服务."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from fathom.constants import EngineFamily
from fathom.services.database_metrics.base import EngineMetricsService, parse_delimited_result, quote
from fathom.utils.format_utils import format_bytes

if TYPE_CHECKING:
    from fathom.models.server import Server
    from fathom.models.standalone_databases import StandaloneClickhouse

QUERY_PREVIEW_LENGTH = 200
REPLICA_DELAY_THRESHOLD_SECONDS = 60
DEFAULT_COMPRESSION_METHOD = "LZ4"

_SETTING_NAMES: dict[str, str] = {
    "max_threads": "maxThreads",
    "max_memory_usage": "maxMemoryUsage",
    "max_concurrent_queries": "maxConcurrentQueries",
    "max_parts_in_total": "maxPartsInTotal",
    "background_pool_size": "backgroundPoolSize",
}


def _json_rows(output: str) -> list[dict[str, Any]]:
    """解析 JSONEachRow 输出,跳过无法解析的行."""
    rows = []
    for line in output.split("\n"):
        line = line.strip()
        if not line:
            continue
        try:
            row = json.loads(line)
        except ValueError:
            continue
        if isinstance(row, dict):
            rows.append(row)
    return rows


def _to_int(value: object, default: int = 0) -> int:
    try:
        return int(float(str(value)))
    except ValueError:
        return default


class ClickhouseMetricsService(EngineMetricsService):
    """通过 `docker exec <uuid> clickhouse-client` 管理 ClickHouse."""

    engine_family = EngineFamily.CLICKHOUSE
    PROTECTED_USERS = frozenset({"default"})

    def _client(self, handle: StandaloneClickhouse, sql: str, *, fallback: str | None = None) -> str:
        parts = ["docker exec", quote(handle.uuid), "clickhouse-client"]
        if handle.clickhouse_admin_user and handle.clickhouse_admin_user != "default":
            parts.extend(["--user", quote(handle.clickhouse_admin_user)])
        password = handle.clickhouse_admin_password
        if password:
            parts.extend(["--password", quote(password)])
        parts.extend(["-q", quote(sql)])
        command = " ".join(parts)
        if fallback is None:
            return f"{command} 2>&1"
        return f"{command} 2>/dev/null || echo {quote(fallback)}"

    def _count(self, server: Server, handle: StandaloneClickhouse, sql: str, *, action: str) -> int | None:
        output = self.run(server, handle, self._client(handle, sql, fallback="N/A"), action=action)
        return int(output) if output.isdigit() else None

    def collect_metrics(self, server: Server, handle: StandaloneClickhouse) -> dict[str, Any]:
        return {
            "totalTables": self._count(
                server,
                handle,
                "SELECT count() FROM system.tables "
                "WHERE database NOT IN ('system', 'INFORMATION_SCHEMA', 'information_schema')",
                action="collect_metrics",
            ),
            "totalRows": None,
            "databaseSize": "N/A",
            "queriesPerSec": self._count(server, handle, "SELECT count() FROM system.processes", action="collect_metrics"),
        }

    def get_query_log(self, server: Server, handle: StandaloneClickhouse, limit: int = 50) -> list[dict[str, Any]]:
        """最近完成的查询,排除对 system 库的访问."""
        sql = (
            "SELECT query, query_duration_ms/1000 as duration_sec, read_rows, "
            "formatReadableSize(read_bytes) as read_size, event_time, user FROM system.query_log "
            "WHERE type = 'QueryFinish' AND query NOT LIKE '%system.%' "
            f"ORDER BY event_time DESC LIMIT {int(limit)} FORMAT JSONEachRow"
        )
        output = self.run(server, handle, self._client(handle, sql, fallback=""), action="get_query_log")
        return [
            {
                "query": str(row.get("query", ""))[:QUERY_PREVIEW_LENGTH],
                "duration": f"{round(float(row.get('duration_sec') or 0), 3)}s",
                "rows": f"{_to_int(row.get('read_rows')):,}",
                "timestamp": row.get("event_time", ""),
                "user": row.get("user", "default"),
            }
            for row in _json_rows(output)
        ]

    def get_merge_status(self, server: Server, handle: StandaloneClickhouse) -> dict[str, int]:
        def count(sql: str) -> int:
            output = self.run(server, handle, self._client(handle, sql, fallback="0"), action="get_merge_status")
            return _to_int(output)

        return {
            "activeMerges": count("SELECT count() FROM system.merges"),
            "partsCount": count("SELECT count() FROM system.parts WHERE active = 1"),
            "mergeRate": count(
                "SELECT count() FROM system.part_log "
                "WHERE event_type = 'MergeParts' AND event_time > now() - INTERVAL 1 MINUTE",
            ),
        }

    def get_replication_status(self, server: Server, handle: StandaloneClickhouse) -> dict[str, Any]:
        sql = (
            "SELECT database, table, replica_name, replica_path, is_leader, is_readonly, absolute_delay, "
            "last_queue_update FROM system.replicas FORMAT JSONEachRow"
        )
        output = self.run(server, handle, self._client(handle, sql, fallback=""), action="get_replication_status")
        replicas = []
        if output and "DB::Exception" not in output:
            for row in _json_rows(output):
                delay = _to_int(row.get("absolute_delay"))
                status = "Healthy"
                if row.get("is_readonly"):
                    status = "Read-only"
                if delay > REPLICA_DELAY_THRESHOLD_SECONDS:
                    status = "Delayed"
                replicas.append(
                    {
                        "host": row.get("replica_name", "unknown"),
                        "database": row.get("database", ""),
                        "table": row.get("table", ""),
                        "status": status,
                        "delay": f"{delay}s" if delay > 0 else "0ms",
                        "isLeader": bool(row.get("is_leader")),
                    },
                )
        return {"enabled": bool(replicas), "replicas": replicas}

    def get_settings(self, server: Server, handle: StandaloneClickhouse) -> dict[str, Any]:
        settings: dict[str, Any] = dict.fromkeys(_SETTING_NAMES.values())
        settings["compressionMethod"] = DEFAULT_COMPRESSION_METHOD

        names = ", ".join(f"'{name}'" for name in _SETTING_NAMES)
        sql = f"SELECT name, value FROM system.settings WHERE name IN ({names}) FORMAT JSONEachRow"
        output = self.run(server, handle, self._client(handle, sql, fallback=""), action="get_settings")
        for row in _json_rows(output):
            key = _SETTING_NAMES.get(str(row.get("name", "")))
            if key is None:
                continue
            value = _to_int(row.get("value"))
            settings[key] = format_bytes(value) if key == "maxMemoryUsage" else value

        compression = self.run(
            server,
            handle,
            self._client(
                handle,
                "SELECT value FROM system.settings WHERE name = 'network_compression_method'",
                fallback=DEFAULT_COMPRESSION_METHOD,
            ),
            action="get_settings",
        )
        settings["compressionMethod"] = compression or DEFAULT_COMPRESSION_METHOD
        return settings

    def execute_query(self, server: Server, handle: StandaloneClickhouse, query: str) -> dict[str, Any]:
        output = self.transport.run([self._client(handle, query)], server, False)
        if output is None:
            return {"error": "No response from database"}
        if "exception" in output.lower():
            return {"error": output.strip()}
        return parse_delimited_result(output, self.QUERY_DELIMITER)

    def get_tables(self, server: Server, handle: StandaloneClickhouse) -> list[dict[str, Any]]:
        sql = (
            "SELECT name, total_rows, formatReadableSize(total_bytes) FROM system.tables "
            "WHERE database = currentDatabase() AND total_rows IS NOT NULL "
            "ORDER BY total_rows DESC LIMIT 100 FORMAT TabSeparated"
        )
        output = self.run(server, handle, self._client(handle, sql, fallback=""), action="get_tables")
        tables = []
        for line in output.split("\n"):
            parts = line.strip().split("\t")
            if len(parts) >= 3 and parts[0]:
                tables.append({"name": parts[0], "rows": _to_int(parts[1]), "size": parts[2]})
        return tables


__all__ = ["ClickhouseMetricsService"]
