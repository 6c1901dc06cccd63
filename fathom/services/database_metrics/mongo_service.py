"""MongoDB 管理服务.

所有操作都通过 `mongosh --eval` 执行一段 JS 表达式,输出统一为 JSON.
调用方的取值一律经 `json.dumps` 转为 JS 字面量后再拼入脚本.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from fathom.constants import EngineFamily
from fathom.services.database_metrics.base import ColumnInfo, EngineMetricsService, Row, TableDataQuery, quote
from fathom.utils.format_utils import format_bytes
from fathom.utils.input_validator import InputValidator
from fathom.utils.structlog_config import get_logger

if TYPE_CHECKING:
    from fathom.models.server import Server
    from fathom.models.standalone_databases import StandaloneMongodb

logger = get_logger("database_metrics")

PRIMARY_KEY_FIELD = "_id"
DEFAULT_CACHE_SIZE_LABEL = "Default (50% RAM)"

_COLLECTION_STATS_SCRIPT = (
    "JSON.stringify(db.getCollectionInfos().map(c => { const stats = db.getCollection(c.name).stats(); "
    "return { name: c.name, count: stats.count || 0, size: stats.size || 0, avgObjSize: stats.avgObjSize || 0 }; }))"
)

_INDEXES_SCRIPT = (
    "const indexes = []; db.getCollectionNames().forEach(collName => { "
    "db.getCollection(collName).getIndexes().forEach(idx => { indexes.push({ collection: collName, "
    "name: idx.name, fields: Object.keys(idx.key), unique: idx.unique || false }); }); }); "
    "JSON.stringify(indexes);"
)

_REPLICA_SET_SCRIPT = (
    "try { const status = rs.status(); JSON.stringify({ enabled: true, name: status.set, "
    "members: status.members.map(m => ({ host: m.name, state: m.stateStr, health: m.health })) }); } "
    "catch (e) { JSON.stringify({ enabled: false, name: null, members: [] }); }"
)

_STORAGE_SCRIPT = (
    "const status = db.serverStatus(); const params = db.adminCommand({getParameter: '*'}); "
    "JSON.stringify({ storageEngine: status.storageEngine?.name || 'WiredTiger', "
    "cacheSize: status.wiredTiger?.cache ? status.wiredTiger.cache['maximum bytes configured'] : null, "
    "journalEnabled: status.dur?.journalEnabled ?? true, directoryPerDb: params.directoryperdb ?? false });"
)

_USERS_SCRIPT = (
    "JSON.stringify(db.getUsers().users.map(u => ({user: u.user, roles: u.roles.map(r => r.role).join(', ')})))"
)


def js_literal(value: object) -> str:
    """转为 JS 字面量."""
    return json.dumps(value, ensure_ascii=False, default=str)


def infer_mongo_type(value: object) -> str:
    """根据 EJSON(relaxed) 取值推断字段类型名."""
    if isinstance(value, dict):
        if "$oid" in value:
            return "ObjectId"
        if "$date" in value:
            return "Date"
        return "Object"
    if isinstance(value, list):
        return "Array"
    if isinstance(value, bool):
        return "Boolean"
    if isinstance(value, int):
        return "Int"
    if isinstance(value, float):
        return "Double"
    if isinstance(value, str):
        return "String"
    if value is None:
        return "Null"
    return "Mixed"


def _parse_json(output: str, default: Any) -> Any:
    try:
        return json.loads(output)
    except ValueError:
        return default


class MongoMetricsService(EngineMetricsService):
    """通过 `docker exec <uuid> mongosh` 管理 MongoDB."""

    engine_family = EngineFamily.MONGO

    def _mongosh(self, handle: StandaloneMongodb, script: str, *, fallback: str | None = None) -> str:
        parts = [
            "docker exec",
            quote(handle.uuid),
            "mongosh",
            "-u",
            quote(handle.mongo_initdb_root_username or "root"),
            "-p",
            quote(handle.mongo_initdb_root_password or ""),
            "--authenticationDatabase admin",
            quote(handle.mongo_initdb_database or "admin"),
            "--quiet --eval",
            quote(script),
        ]
        command = " ".join(parts)
        if fallback is None:
            return f"{command} 2>&1"
        return f"{command} 2>/dev/null || echo {quote(fallback)}"

    def _eval_json(self, server: Server, handle: StandaloneMongodb, script: str, default: Any, *, action: str) -> Any:
        fallback = json.dumps(default)
        output = self.run(server, handle, self._mongosh(handle, script, fallback=fallback), action=action)
        return _parse_json(output, default)

    @staticmethod
    def _collection(name: str) -> str:
        return f"db.getCollection({js_literal(name)})"

    @staticmethod
    def _value_literal(field_name: str, value: object) -> str:
        if field_name == PRIMARY_KEY_FIELD and InputValidator.is_valid_object_id(value):
            return f"ObjectId({js_literal(value)})"
        return js_literal(value)

    def _document(self, data: Row) -> str:
        parts = [f"{js_literal(name)}: {self._value_literal(name, value)}" for name, value in data.items()]
        return "{" + ", ".join(parts) + "}"

    def collect_metrics(self, server: Server, handle: StandaloneMongodb) -> dict[str, Any]:
        metrics: dict[str, Any] = {
            "collections": None,
            "documents": None,
            "databaseSize": "N/A",
            "indexSize": "N/A",
        }
        stats = self._eval_json(server, handle, "JSON.stringify(db.stats())", {}, action="collect_metrics")
        if isinstance(stats, dict) and stats:
            metrics["collections"] = stats.get("collections")
            metrics["documents"] = stats.get("objects")
            if stats.get("dataSize") is not None:
                metrics["databaseSize"] = format_bytes(stats["dataSize"])
            if stats.get("indexSize") is not None:
                metrics["indexSize"] = format_bytes(stats["indexSize"])
        return metrics

    def get_collections(self, server: Server, handle: StandaloneMongodb) -> list[dict[str, Any]]:
        parsed = self._eval_json(server, handle, _COLLECTION_STATS_SCRIPT, [], action="get_collections")
        if not isinstance(parsed, list):
            return []
        return [
            {
                "name": item.get("name", "unknown"),
                "documentCount": item.get("count", 0),
                "size": format_bytes(item.get("size") or 0),
                "avgDocSize": format_bytes(item.get("avgObjSize") or 0),
            }
            for item in parsed
        ]

    def get_indexes(self, server: Server, handle: StandaloneMongodb) -> list[dict[str, Any]]:
        parsed = self._eval_json(server, handle, _INDEXES_SCRIPT, [], action="get_indexes")
        if not isinstance(parsed, list):
            return []
        return [
            {
                "collection": item.get("collection", "unknown"),
                "name": item.get("name", ""),
                "fields": item.get("fields", []),
                "unique": bool(item.get("unique", False)),
                "size": "N/A",
            }
            for item in parsed
        ]

    def create_index(
        self,
        server: Server,
        handle: StandaloneMongodb,
        collection: str,
        fields: dict[str, int],
        *,
        unique: bool = False,
    ) -> dict[str, Any]:
        """在集合上创建索引.

        Args:
            server: 目标主机.
            handle: 数据库记录.
            collection: 已校验的集合名.
            fields: `{字段: 1 或 -1}`.
            unique: 是否唯一索引.

        Returns:
            写操作信封.

        """
        if not InputValidator.is_valid_collection_name(collection):
            return {"success": False, "error": "Invalid collection name"}
        if not fields:
            return {"success": False, "error": "Invalid field specification"}

        options = ", { unique: true }" if unique else ""
        script = f"{self._collection(collection)}.createIndex({js_literal(fields)}{options})"
        output = self.run(server, handle, self._mongosh(handle, script), action="create_index")
        lowered = output.lower()
        if "error" in lowered or "exception" in lowered:
            return {"success": False, "error": output}
        return {"success": True, "message": f"Index created on {collection}"}

    def get_replica_set_status(self, server: Server, handle: StandaloneMongodb) -> dict[str, Any]:
        default = {"enabled": False, "name": None, "members": []}
        parsed = self._eval_json(server, handle, _REPLICA_SET_SCRIPT, default, action="get_replica_set_status")
        return parsed if isinstance(parsed, dict) else default

    def get_storage_settings(self, server: Server, handle: StandaloneMongodb) -> dict[str, Any]:
        settings: dict[str, Any] = {
            "storageEngine": "WiredTiger",
            "cacheSize": None,
            "journalEnabled": True,
            "directoryPerDb": False,
        }
        parsed = self._eval_json(server, handle, _STORAGE_SCRIPT, {}, action="get_storage_settings")
        if isinstance(parsed, dict) and parsed:
            settings["storageEngine"] = parsed.get("storageEngine") or "WiredTiger"
            cache_size = parsed.get("cacheSize")
            if isinstance(cache_size, int | float) and not isinstance(cache_size, bool):
                settings["cacheSize"] = format_bytes(int(cache_size))
            else:
                settings["cacheSize"] = DEFAULT_CACHE_SIZE_LABEL
            settings["journalEnabled"] = parsed.get("journalEnabled", True)
            settings["directoryPerDb"] = parsed.get("directoryPerDb", False)
        return settings

    def get_users(self, server: Server, handle: StandaloneMongodb) -> list[dict[str, Any]]:
        parsed = self._eval_json(server, handle, _USERS_SCRIPT, [], action="get_users")
        if not isinstance(parsed, list):
            return []
        return [
            {"name": item.get("user", "unknown"), "role": item.get("roles") or "Standard", "connections": 0}
            for item in parsed
        ]

    def get_tables(self, server: Server, handle: StandaloneMongodb) -> list[dict[str, Any]]:
        parsed = self._eval_json(server, handle, _COLLECTION_STATS_SCRIPT, [], action="get_tables")
        if not isinstance(parsed, list):
            return []
        return [
            {"name": item.get("name", "unknown"), "rows": item.get("count", 0), "size": format_bytes(item.get("size") or 0)}
            for item in parsed
        ]

    def get_columns(self, server: Server, handle: StandaloneMongodb, table: str) -> list[ColumnInfo]:
        """以集合中的首个文档推断字段;空集合只返回 `_id`."""
        script = f"EJSON.stringify({self._collection(table)}.findOne() || {{}}, {{relaxed: true}})"
        document = self._eval_json(server, handle, script, {}, action="get_columns")
        if not isinstance(document, dict) or not document:
            return [{"name": PRIMARY_KEY_FIELD, "type": "ObjectId", "nullable": False, "default": None, "is_primary": True}]
        return [
            {
                "name": name,
                "type": infer_mongo_type(value),
                "nullable": name != PRIMARY_KEY_FIELD,
                "default": None,
                "is_primary": name == PRIMARY_KEY_FIELD,
            }
            for name, value in document.items()
        ]

    def _filter_document(self, query: TableDataQuery, column_names: list[str]) -> str:
        clauses = []
        if query.search:
            matches = [
                f"{{{js_literal(name)}: {{$regex: {js_literal(query.search)}, $options: 'i'}}}}"
                for name in column_names
                if InputValidator.is_valid_field_name(name)
            ]
            if matches:
                clauses.append(f"{{$or: [{', '.join(matches)}]}}")
        if query.filters:
            clauses.append(self._document(query.filters))
        if not clauses:
            return "{}"
        if len(clauses) == 1:
            return clauses[0]
        return f"{{$and: [{', '.join(clauses)}]}}"

    @staticmethod
    def _cell(value: object) -> object:
        if isinstance(value, dict) and "$oid" in value:
            return value["$oid"]
        if isinstance(value, dict) and "$date" in value:
            return value["$date"]
        if isinstance(value, dict | list):
            return json.dumps(value, ensure_ascii=False)
        return value

    def get_data(
        self,
        server: Server,
        handle: StandaloneMongodb,
        table: str,
        query: TableDataQuery,
        columns: list[ColumnInfo],
    ) -> dict[str, Any]:
        column_names = [column["name"] for column in columns]
        collection = self._collection(table)
        filter_document = self._filter_document(query, column_names)

        count_output = self.run(
            server,
            handle,
            self._mongosh(handle, f"{collection}.countDocuments({filter_document})", fallback="0"),
            action="get_data",
        )
        total = int(count_output) if count_output.isdigit() else 0

        sort_document = "{}"
        if query.order_by and query.order_by in column_names:
            direction = 1 if InputValidator.safe_order_direction(query.order_dir) == "ASC" else -1
            sort_document = f"{{{js_literal(query.order_by)}: {direction}}}"

        script = (
            f"EJSON.stringify({collection}.find({filter_document}).sort({sort_document})"
            f".skip({int(query.offset)}).limit({int(query.per_page)}).toArray(), {{relaxed: true}})"
        )
        documents = self._eval_json(server, handle, script, [], action="get_data")
        rows: list[Row] = []
        if isinstance(documents, list):
            for document in documents:
                if isinstance(document, dict):
                    rows.append({name: self._cell(document.get(name)) for name in column_names})
        return {"rows": rows, "total": total, "columns": columns}

    def _write(self, server: Server, handle: StandaloneMongodb, script: str, marker: str, *, action: str) -> bool:
        output = self.run(server, handle, self._mongosh(handle, script), action=action)
        return marker in output and "error" not in output.lower()

    def create_row(self, server: Server, handle: StandaloneMongodb, table: str, data: Row) -> bool:
        document = {
            name: value for name, value in data.items() if name == PRIMARY_KEY_FIELD or InputValidator.is_valid_field_name(name)
        }
        if document.get(PRIMARY_KEY_FIELD) in (None, ""):
            document.pop(PRIMARY_KEY_FIELD, None)
        script = f"{self._collection(table)}.insertOne({self._document(document)})"
        return self._write(server, handle, script, "insertedId", action="create_row")

    def update_row(self, server: Server, handle: StandaloneMongodb, table: str, primary_key: Row, data: Row) -> bool:
        updates = {
            name: value
            for name, value in data.items()
            if name != PRIMARY_KEY_FIELD and InputValidator.is_valid_field_name(name)
        }
        if not updates or not primary_key:
            return False
        script = (
            f"{self._collection(table)}.updateOne({self._document(primary_key)}, {{$set: {self._document(updates)}}})"
        )
        return self._write(server, handle, script, "modifiedCount", action="update_row")

    def delete_row(self, server: Server, handle: StandaloneMongodb, table: str, primary_key: Row) -> bool:
        if not primary_key:
            return False
        script = f"{self._collection(table)}.deleteOne({self._document(primary_key)})"
        return self._write(server, handle, script, "deletedCount", action="delete_row")


__all__ = ["MongoMetricsService", "infer_mongo_type", "js_literal"]
