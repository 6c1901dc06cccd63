"""Redis / KeyDB / Dragonfly 管理服务.

三个引擎都兼容 redis-cli 协议,共享同一实现,仅凭据字段不同.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Any

from fathom.constants import DatabaseEngine, EngineFamily
from fathom.services.database_metrics.base import EngineMetricsService, quote
from fathom.utils.format_utils import format_bytes, format_seconds
from fathom.utils.time_utils import TimeFormats, time_utils

if TYPE_CHECKING:
    from fathom.models.server import Server
    from fathom.models.standalone_databases import StandaloneDragonfly, StandaloneKeydb, StandaloneRedis

    RedisHandle = StandaloneRedis | StandaloneKeydb | StandaloneDragonfly

VALUE_PREVIEW_LIMIT = 100
TTL_NONE = -1
TTL_EXPIRED = -2

KEY_TYPES = frozenset({"string", "list", "set", "zset", "hash"})


def _info_value(info: str, name: str) -> str | None:
    match = re.search(rf"{re.escape(name)}:(\S+)", info)
    return match.group(1) if match else None


def _config_value(output: str, name: str) -> str | None:
    """解析 `CONFIG GET` 的两行式输出(名称一行,取值一行)."""
    lines = output.split("\n")
    for index, line in enumerate(lines[:-1]):
        if line.strip() == name:
            return lines[index + 1].strip()
    return None


def _non_empty_lines(output: str) -> list[str]:
    return [line for line in output.strip().split("\n") if line != ""]


class RedisMetricsService(EngineMetricsService):
    """通过 `docker exec <uuid> redis-cli` 管理 Redis 兼容引擎."""

    engine_family = EngineFamily.REDIS

    @staticmethod
    def _password(handle: RedisHandle) -> str:
        field = DatabaseEngine.PASSWORD_FIELDS.get(handle.engine_type, "redis_password")
        return getattr(handle, field, None) or ""

    def _cli(self, handle: RedisHandle, *args: object, stderr: str = "2>/dev/null") -> str:
        parts = ["docker exec", quote(handle.uuid), "redis-cli"]
        password = self._password(handle)
        if password:
            parts.extend(["-a", quote(password)])
        parts.append("--no-auth-warning")
        parts.extend(quote(arg) for arg in args)
        parts.append(stderr)
        return " ".join(parts)

    def _int(self, server: Server, handle: RedisHandle, *args: object, action: str, default: int = 0) -> int:
        output = self.run(server, handle, self._cli(handle, *args), action=action)
        try:
            return int(output)
        except ValueError:
            return default

    def collect_metrics(self, server: Server, handle: RedisHandle) -> dict[str, Any]:
        metrics: dict[str, Any] = {
            "totalKeys": None,
            "memoryUsed": "N/A",
            "opsPerSec": None,
            "hitRate": None,
        }
        info = self.run(server, handle, self._cli(handle, "INFO"), action="collect_metrics")

        memory_used = _info_value(info, "used_memory_human")
        if memory_used:
            metrics["memoryUsed"] = memory_used
        keys = re.search(r"db0:keys=(\d+)", info)
        if keys:
            metrics["totalKeys"] = int(keys.group(1))
        ops = re.search(r"instantaneous_ops_per_sec:(\d+)", info)
        if ops:
            metrics["opsPerSec"] = int(ops.group(1))

        hits = re.search(r"keyspace_hits:(\d+)", info)
        misses = re.search(r"keyspace_misses:(\d+)", info)
        if hits and misses:
            total = int(hits.group(1)) + int(misses.group(1))
            if total > 0:
                metrics["hitRate"] = f"{round(int(hits.group(1)) / total * 100, 1)}%"
        return metrics

    def get_keys(self, server: Server, handle: RedisHandle, pattern: str = "*", limit: int = 100) -> list[dict[str, Any]]:
        """按模式列出键及其类型、TTL、内存占用.

        Args:
            server: 目标主机.
            handle: 数据库记录.
            pattern: 已通过 `is_valid_redis_pattern` 校验的 glob 模式.
            limit: 最多返回的键数量.

        Returns:
            `[{name, type, ttl, size}]`.

        """
        command = f"{self._cli(handle, 'KEYS', pattern)} | head -n {int(limit)}"
        output = self.run(server, handle, command, action="get_keys")

        keys = []
        for raw_name in output.split("\n")[:limit]:
            name = raw_name.strip()
            if not name:
                continue
            key_type = self.run(server, handle, self._cli(handle, "TYPE", name), action="get_keys") or "unknown"
            ttl = self._int(server, handle, "TTL", name, action="get_keys", default=TTL_NONE)
            if ttl == TTL_NONE:
                ttl_display = "none"
            elif ttl == TTL_EXPIRED:
                ttl_display = "expired"
            else:
                ttl_display = format_seconds(ttl)
            memory = self.run(server, handle, self._cli(handle, "MEMORY", "USAGE", name), action="get_keys")
            keys.append(
                {
                    "name": name,
                    "type": key_type,
                    "ttl": ttl_display,
                    "size": format_bytes(int(memory)) if memory.isdigit() else "N/A",
                },
            )
        return keys

    def delete_key(self, server: Server, handle: RedisHandle, key: str) -> dict[str, Any]:
        output = self.run(server, handle, self._cli(handle, "DEL", key, stderr="2>&1"), action="delete_key")
        if output.isdigit() and int(output) > 0:
            return {"success": True, "message": f"Key '{key}' deleted"}
        return {"success": False, "error": f"Key not found or could not be deleted: {output}"}

    def get_key_value(self, server: Server, handle: RedisHandle, key: str) -> dict[str, Any]:
        """按类型读取键值,集合类只取前 100 个元素."""
        key_type = self.run(server, handle, self._cli(handle, "TYPE", key), action="get_key_value") or "none"
        if key_type == "none":
            return {"success": False, "error": "Key not found"}

        ttl = self._int(server, handle, "TTL", key, action="get_key_value", default=TTL_NONE)
        value: Any = None
        length = 0

        def fetch(*args: object) -> str:
            return self.run(server, handle, self._cli(handle, *args), action="get_key_value")

        if key_type == "string":
            value = self.transport.run([self._cli(handle, "GET", key)], server, False) or ""
            value = value.rstrip("\n")
            length = len(value)
        elif key_type == "list":
            length = self._int(server, handle, "LLEN", key, action="get_key_value")
            value = _non_empty_lines(fetch("LRANGE", key, 0, min(length, VALUE_PREVIEW_LIMIT) - 1))
        elif key_type == "set":
            length = self._int(server, handle, "SCARD", key, action="get_key_value")
            # 首行是游标
            value = _non_empty_lines(fetch("SSCAN", key, 0, "COUNT", VALUE_PREVIEW_LIMIT))[1:]
        elif key_type == "zset":
            length = self._int(server, handle, "ZCARD", key, action="get_key_value")
            lines = _non_empty_lines(fetch("ZRANGE", key, 0, VALUE_PREVIEW_LIMIT - 1, "WITHSCORES"))
            value = [{"member": lines[i], "score": lines[i + 1]} for i in range(0, len(lines) - 1, 2)]
        elif key_type == "hash":
            length = self._int(server, handle, "HLEN", key, action="get_key_value")
            lines = _non_empty_lines(fetch("HGETALL", key))
            value = {lines[i]: lines[i + 1] for i in range(0, len(lines) - 1, 2)}
        elif key_type == "stream":
            length = self._int(server, handle, "XLEN", key, action="get_key_value")
            value = {"message": "Stream type viewing not fully supported"}

        return {"success": True, "key": key, "type": key_type, "value": value, "length": length, "ttl": ttl}

    def set_key_value(
        self,
        server: Server,
        handle: RedisHandle,
        key: str,
        key_type: str,
        value: Any,
        ttl: int = TTL_NONE,
    ) -> dict[str, Any]:
        """写入键值;集合类先删除旧键再整体重建.

        Args:
            server: 目标主机.
            handle: 数据库记录.
            key: 键名.
            key_type: string/list/set/zset/hash.
            value: string 为文本;list/set 为列表;zset 为 `[{member, score}]`;hash 为字典.
            ttl: 大于 0 时设置过期秒数.

        Returns:
            写操作信封.

        """
        if key_type not in KEY_TYPES:
            return {"success": False, "error": "Unsupported key type"}

        if key_type == "string":
            command = self._cli(handle, "SET", key, "" if value is None else str(value), stderr="2>&1")
        else:
            # 先拼好写入命令,参数有误时不删除旧键
            command = self._collection_write_command(handle, key, key_type, value) if value else ""
            self.run(server, handle, self._cli(handle, "DEL", key), action="set_key_value")
            if not command:
                label = {"list": "list", "set": "set", "zset": "sorted set", "hash": "hash"}[key_type]
                return {"success": True, "message": f"Empty {label} created"}

        output = self.run(server, handle, command, action="set_key_value")
        if "err" in output.lower():
            return {"success": False, "error": output}

        if ttl > 0:
            self.run(server, handle, self._cli(handle, "EXPIRE", key, int(ttl)), action="set_key_value")
        return {"success": True, "message": f"Key '{key}' updated successfully"}

    def _collection_write_command(self, handle: RedisHandle, key: str, key_type: str, value: Any) -> str:
        if key_type == "list":
            return self._cli(handle, "RPUSH", key, *[str(item) for item in value], stderr="2>&1")
        if key_type == "set":
            return self._cli(handle, "SADD", key, *[str(item) for item in value], stderr="2>&1")
        args: list[str] = []
        if key_type == "zset":
            for item in value:
                args.extend([str(item["score"]), str(item["member"])])
            return self._cli(handle, "ZADD", key, *args, stderr="2>&1")
        for field_name, field_value in value.items():
            args.extend([str(field_name), str(field_value)])
        return self._cli(handle, "HSET", key, *args, stderr="2>&1")

    def get_memory_info(self, server: Server, handle: RedisHandle) -> dict[str, Any]:
        memory: dict[str, Any] = {
            "usedMemory": "N/A",
            "peakMemory": "N/A",
            "fragmentationRatio": "N/A",
            "maxMemory": "N/A",
            "evictionPolicy": "N/A",
        }
        info = self.run(server, handle, self._cli(handle, "INFO", "memory"), action="get_memory_info")
        for key, name in (
            ("usedMemory", "used_memory_human"),
            ("peakMemory", "used_memory_peak_human"),
            ("fragmentationRatio", "mem_fragmentation_ratio"),
        ):
            value = _info_value(info, name)
            if value:
                memory[key] = value

        config = self.run(
            server,
            handle,
            self._cli(handle, "CONFIG", "GET", "maxmemory*"),
            action="get_memory_info",
        )
        max_memory = _config_value(config, "maxmemory")
        if max_memory and max_memory.isdigit():
            memory["maxMemory"] = format_bytes(int(max_memory)) if int(max_memory) > 0 else "No limit"
        policy = _config_value(config, "maxmemory-policy")
        if policy:
            memory["evictionPolicy"] = policy
        return memory

    def get_persistence_settings(self, server: Server, handle: RedisHandle) -> dict[str, Any]:
        """读取 RDB/AOF 持久化配置与最近一次快照状态."""
        persistence: dict[str, Any] = {
            "rdbEnabled": False,
            "rdbSaveRules": [],
            "aofEnabled": False,
            "aofFsync": "everysec",
            "rdbLastSaveTime": None,
            "rdbLastBgsaveStatus": "N/A",
        }

        def config_get(name: str) -> str | None:
            output = self.run(
                server, handle, self._cli(handle, "CONFIG", "GET", name), action="get_persistence_settings"
            )
            return _config_value(output, name)

        save_value = config_get("save")
        if save_value and save_value not in {'""', "''"}:
            persistence["rdbEnabled"] = True
            rules = save_value.split()
            persistence["rdbSaveRules"] = [
                {"seconds": int(rules[i]), "changes": int(rules[i + 1])}
                for i in range(0, len(rules) - 1, 2)
                if rules[i].isdigit() and rules[i + 1].isdigit()
            ]

        appendonly = config_get("appendonly")
        if appendonly:
            persistence["aofEnabled"] = appendonly.lower() == "yes"
        appendfsync = config_get("appendfsync")
        if appendfsync:
            persistence["aofFsync"] = appendfsync

        info = self.run(server, handle, self._cli(handle, "INFO", "persistence"), action="get_persistence_settings")
        last_save = re.search(r"rdb_last_save_time:(\d+)", info)
        if last_save and int(last_save.group(1)) > 0:
            persistence["rdbLastSaveTime"] = time_utils.format_utc_time(
                time_utils.from_timestamp(int(last_save.group(1))),
                TimeFormats.DATETIME_FORMAT,
            )
        bgsave_status = re.search(r"rdb_last_bgsave_status:(\w+)", info)
        if bgsave_status:
            persistence["rdbLastBgsaveStatus"] = bgsave_status.group(1)
        return persistence

    def flush(self, server: Server, handle: RedisHandle, flush_type: str) -> dict[str, Any]:
        """执行 FLUSHALL(flush_type=all)或 FLUSHDB."""
        command = "FLUSHALL" if flush_type == "all" else "FLUSHDB"
        output = self.run(server, handle, self._cli(handle, command, stderr="2>&1"), action="flush")
        if "ok" in output.lower():
            return {
                "success": True,
                "message": "All databases flushed" if flush_type == "all" else "Current database flushed",
            }
        return {"success": False, "error": output or "Flush command failed"}


__all__ = ["KEY_TYPES", "RedisMetricsService"]
