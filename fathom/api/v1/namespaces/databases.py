"""Databases namespace: 受管数据库的监控与管理接口.

响应体为网关封套原样输出,读操作为 `{available, ...}`,写操作为
`{success, message | error}`,状态码由网关决定.
"""

from __future__ import annotations

import json
from typing import Any

from flask import request
from flask_restx import Namespace, fields

from fathom.api.v1.models.envelope import (
    get_error_envelope_model,
    get_read_envelope_model,
    get_write_envelope_model,
)
from fathom.api.v1.resources.base import BaseResource
from fathom.api.v1.resources.decorators import api_login_required
from fathom.services.database_metrics import AdministrationGateway

ns = Namespace("databases", description="受管数据库管理")

ErrorEnvelope = get_error_envelope_model(ns)
ReadEnvelope = get_read_envelope_model(ns)
WriteEnvelope = get_write_envelope_model(ns)

QueryPayload = ns.model(
    "QueryPayload",
    {"query": fields.String(required=True, description="SQL 语句", example="SELECT 1")},
)
RowPayload = ns.model(
    "RowPayload",
    {
        "primaryKey": fields.Raw(required=False, description="主键列与值", example={"id": 1}),
        "data": fields.Raw(required=False, description="列与值", example={"name": "alice"}),
    },
)
UserPayload = ns.model(
    "DatabaseUserPayload",
    {
        "username": fields.String(required=True, example="reporting"),
        "password": fields.String(required=False, example="s3cret-pass"),
    },
)
KillPayload = ns.model("KillConnectionPayload", {"pid": fields.Integer(required=True, example=4242)})
ExtensionPayload = ns.model(
    "ExtensionPayload",
    {
        "name": fields.String(required=True, example="pg_trgm"),
        "enable": fields.Boolean(required=True, example=True),
    },
)
MaintenancePayload = ns.model(
    "MaintenancePayload",
    {"operation": fields.String(required=True, description="vacuum 或 analyze", example="vacuum")},
)
IndexPayload = ns.model(
    "IndexPayload",
    {
        "collection": fields.String(required=True, example="orders"),
        "fields": fields.Raw(required=True, description="字段 -> 1/-1", example={"createdAt": -1}),
        "unique": fields.Boolean(required=False, example=False),
    },
)
KeyValuePayload = ns.model(
    "KeyValuePayload",
    {
        "key": fields.String(required=True, example="session:1"),
        "type": fields.String(required=True, description="string/list/set/zset/hash", example="string"),
        "value": fields.Raw(required=True, example="hello"),
        "ttl": fields.Integer(required=False, description="秒,-1 表示不过期", example=-1),
    },
)
FlushPayload = ns.model("FlushPayload", {"type": fields.String(required=True, description="db 或 all", example="db")})


def _json_body() -> dict[str, Any]:
    payload = request.get_json(silent=True)
    return payload if isinstance(payload, dict) else {}


def _parse_filters(raw: str | None) -> object:
    """`filters` 为 JSON 对象字符串;无法解析时原样交给网关校验."""
    if not raw:
        return {}
    try:
        return json.loads(raw)
    except ValueError:
        return raw


def _table_data_params() -> dict[str, Any]:
    args = request.args
    return {
        "page": args.get("page"),
        "perPage": args.get("perPage"),
        "search": args.get("search", ""),
        "orderBy": args.get("orderBy", ""),
        "orderDir": args.get("orderDir", "asc"),
        "filters": _parse_filters(args.get("filters")),
    }


class DatabaseResource(BaseResource):
    """所有数据库接口要求登录,能力校验由网关完成."""

    method_decorators = [api_login_required]

    @property
    def admin(self) -> AdministrationGateway:
        return AdministrationGateway()


@ns.route("/<string:uuid>/metrics")
class MetricsResource(DatabaseResource):
    @ns.response(200, "OK", ReadEnvelope)
    @ns.response(401, "Unauthorized", ErrorEnvelope)
    @ns.response(403, "Forbidden", ErrorEnvelope)
    @ns.response(404, "Not Found", ReadEnvelope)
    def get(self, uuid: str):
        return self.gateway(lambda: self.admin.collect_metrics(uuid), action="collect_metrics")


@ns.route("/<string:uuid>/metrics/history")
class MetricsHistoryResource(DatabaseResource):
    @ns.doc(params={"timeRange": "1h/6h/24h/7d/30d,缺省 24h"})
    @ns.response(200, "OK", ReadEnvelope)
    def get(self, uuid: str):
        time_range = request.args.get("timeRange")
        return self.gateway(
            lambda: self.admin.get_historical_metrics(uuid, time_range),
            action="get_historical_metrics",
        )


@ns.route("/<string:uuid>/logs")
class LogsResource(DatabaseResource):
    @ns.doc(params={"lines": "返回行数,10-1000"})
    @ns.response(200, "OK", ReadEnvelope)
    def get(self, uuid: str):
        lines = request.args.get("lines")
        return self.gateway(lambda: self.admin.get_logs(uuid, lines), action="get_logs")


@ns.route("/<string:uuid>/query")
class QueryResource(DatabaseResource):
    @ns.expect(QueryPayload, validate=False)
    @ns.response(200, "OK", ReadEnvelope)
    @ns.response(400, "Bad Request", ReadEnvelope)
    def post(self, uuid: str):
        query = _json_body().get("query")
        return self.gateway(lambda: self.admin.execute_query(uuid, query), action="execute_query")


@ns.route("/<string:uuid>/tables")
class TablesResource(DatabaseResource):
    @ns.response(200, "OK", ReadEnvelope)
    def get(self, uuid: str):
        return self.gateway(lambda: self.admin.get_tables(uuid), action="get_tables")


@ns.route("/<string:uuid>/tables/<string:table>/columns")
class ColumnsResource(DatabaseResource):
    @ns.response(200, "OK", ReadEnvelope)
    @ns.response(400, "Bad Request", ReadEnvelope)
    def get(self, uuid: str, table: str):
        return self.gateway(lambda: self.admin.get_columns(uuid, table), action="get_columns")


@ns.route("/<string:uuid>/tables/<string:table>/data")
class TableDataResource(DatabaseResource):
    @ns.doc(
        params={
            "page": "页码,从 1 开始",
            "perPage": "每页条数,10-100",
            "search": "全列模糊搜索",
            "orderBy": "排序列",
            "orderDir": "asc/desc",
            "filters": 'JSON 对象,例如 {"status": "active"}',
        },
    )
    @ns.response(200, "OK", ReadEnvelope)
    @ns.response(400, "Bad Request", ReadEnvelope)
    def get(self, uuid: str, table: str):
        params = _table_data_params()
        return self.gateway(lambda: self.admin.get_table_data(uuid, table, params), action="get_table_data")


@ns.route("/<string:uuid>/tables/<string:table>/rows")
class TableRowsResource(DatabaseResource):
    @ns.expect(RowPayload, validate=False)
    @ns.response(200, "OK", WriteEnvelope)
    @ns.response(400, "Bad Request", WriteEnvelope)
    def post(self, uuid: str, table: str):
        data = _json_body().get("data")
        return self.gateway(lambda: self.admin.create_table_row(uuid, table, data), action="create_table_row")

    @ns.expect(RowPayload, validate=False)
    @ns.response(200, "OK", WriteEnvelope)
    @ns.response(400, "Bad Request", WriteEnvelope)
    def patch(self, uuid: str, table: str):
        payload = _json_body()
        return self.gateway(
            lambda: self.admin.update_table_row(uuid, table, payload.get("primaryKey"), payload.get("data")),
            action="update_table_row",
        )

    @ns.expect(RowPayload, validate=False)
    @ns.response(200, "OK", WriteEnvelope)
    @ns.response(400, "Bad Request", WriteEnvelope)
    def delete(self, uuid: str, table: str):
        primary_key = _json_body().get("primaryKey")
        return self.gateway(
            lambda: self.admin.delete_table_row(uuid, table, primary_key),
            action="delete_table_row",
        )


@ns.route("/<string:uuid>/users")
class UsersResource(DatabaseResource):
    @ns.response(200, "OK", ReadEnvelope)
    def get(self, uuid: str):
        return self.gateway(lambda: self.admin.get_users(uuid), action="get_users")

    @ns.expect(UserPayload, validate=False)
    @ns.response(200, "OK", WriteEnvelope)
    @ns.response(400, "Bad Request", WriteEnvelope)
    def post(self, uuid: str):
        payload = _json_body()
        return self.gateway(
            lambda: self.admin.create_user(uuid, payload.get("username"), payload.get("password")),
            action="create_user",
        )

    @ns.expect(UserPayload, validate=False)
    @ns.response(200, "OK", WriteEnvelope)
    @ns.response(400, "Bad Request", WriteEnvelope)
    def delete(self, uuid: str):
        username = _json_body().get("username")
        return self.gateway(lambda: self.admin.delete_user(uuid, username), action="delete_user")


@ns.route("/<string:uuid>/connections")
class ConnectionsResource(DatabaseResource):
    @ns.response(200, "OK", ReadEnvelope)
    def get(self, uuid: str):
        return self.gateway(lambda: self.admin.get_active_connections(uuid), action="get_active_connections")


@ns.route("/<string:uuid>/connections/kill")
class KillConnectionResource(DatabaseResource):
    @ns.expect(KillPayload, validate=False)
    @ns.response(200, "OK", WriteEnvelope)
    @ns.response(400, "Bad Request", WriteEnvelope)
    def post(self, uuid: str):
        pid = _json_body().get("pid")
        return self.gateway(lambda: self.admin.kill_connection(uuid, pid), action="kill_connection")


@ns.route("/<string:uuid>/settings")
class SettingsResource(DatabaseResource):
    @ns.response(200, "OK", ReadEnvelope)
    def get(self, uuid: str):
        return self.gateway(lambda: self.admin.get_settings(uuid), action="get_settings")


@ns.route("/<string:uuid>/password/regenerate")
class RegeneratePasswordResource(DatabaseResource):
    @ns.response(200, "OK", WriteEnvelope)
    def post(self, uuid: str):
        return self.gateway(lambda: self.admin.regenerate_password(uuid), action="regenerate_password")


# PostgreSQL


@ns.route("/<string:uuid>/extensions")
class ExtensionsResource(DatabaseResource):
    @ns.response(200, "OK", ReadEnvelope)
    def get(self, uuid: str):
        return self.gateway(lambda: self.admin.get_extensions(uuid), action="get_extensions")

    @ns.expect(ExtensionPayload, validate=False)
    @ns.response(200, "OK", WriteEnvelope)
    @ns.response(400, "Bad Request", WriteEnvelope)
    def post(self, uuid: str):
        payload = _json_body()
        return self.gateway(
            lambda: self.admin.toggle_extension(uuid, payload.get("name"), payload.get("enable")),
            action="toggle_extension",
        )


@ns.route("/<string:uuid>/maintenance")
class MaintenanceResource(DatabaseResource):
    @ns.expect(MaintenancePayload, validate=False)
    @ns.response(200, "OK", WriteEnvelope)
    @ns.response(400, "Bad Request", WriteEnvelope)
    def post(self, uuid: str):
        operation = _json_body().get("operation")
        return self.gateway(lambda: self.admin.run_maintenance(uuid, operation), action="run_maintenance")


# MongoDB


@ns.route("/<string:uuid>/collections")
class CollectionsResource(DatabaseResource):
    @ns.response(200, "OK", ReadEnvelope)
    def get(self, uuid: str):
        return self.gateway(lambda: self.admin.get_collections(uuid), action="get_collections")


@ns.route("/<string:uuid>/indexes")
class IndexesResource(DatabaseResource):
    @ns.response(200, "OK", ReadEnvelope)
    def get(self, uuid: str):
        return self.gateway(lambda: self.admin.get_indexes(uuid), action="get_indexes")

    @ns.expect(IndexPayload, validate=False)
    @ns.response(200, "OK", WriteEnvelope)
    @ns.response(400, "Bad Request", WriteEnvelope)
    def post(self, uuid: str):
        payload = _json_body()
        return self.gateway(
            lambda: self.admin.create_index(
                uuid,
                payload.get("collection"),
                payload.get("fields"),
                unique=bool(payload.get("unique", False)),
            ),
            action="create_index",
        )


@ns.route("/<string:uuid>/replica-set")
class ReplicaSetResource(DatabaseResource):
    @ns.response(200, "OK", ReadEnvelope)
    def get(self, uuid: str):
        return self.gateway(lambda: self.admin.get_replica_set_status(uuid), action="get_replica_set_status")


@ns.route("/<string:uuid>/storage")
class StorageResource(DatabaseResource):
    @ns.response(200, "OK", ReadEnvelope)
    def get(self, uuid: str):
        return self.gateway(lambda: self.admin.get_storage_settings(uuid), action="get_storage_settings")


# Redis / KeyDB / Dragonfly


@ns.route("/<string:uuid>/keys")
class KeysResource(DatabaseResource):
    @ns.doc(params={"pattern": "键匹配模式,缺省 *", "limit": "返回数量,1-500"})
    @ns.response(200, "OK", ReadEnvelope)
    @ns.response(400, "Bad Request", ReadEnvelope)
    def get(self, uuid: str):
        pattern = request.args.get("pattern", "*")
        limit = request.args.get("limit")
        return self.gateway(lambda: self.admin.get_keys(uuid, pattern, limit), action="get_keys")


@ns.route("/<string:uuid>/keys/value")
class KeyValueResource(DatabaseResource):
    @ns.doc(params={"key": "键名"})
    @ns.response(200, "OK", ReadEnvelope)
    def get(self, uuid: str):
        key = request.args.get("key")
        return self.gateway(lambda: self.admin.get_key_value(uuid, key), action="get_key_value")

    @ns.expect(KeyValuePayload, validate=False)
    @ns.response(200, "OK", WriteEnvelope)
    @ns.response(400, "Bad Request", WriteEnvelope)
    def put(self, uuid: str):
        payload = _json_body()
        return self.gateway(
            lambda: self.admin.set_key_value(
                uuid,
                payload.get("key"),
                payload.get("type"),
                payload.get("value"),
                payload.get("ttl", -1),
            ),
            action="set_key_value",
        )

    @ns.doc(params={"key": "键名"})
    @ns.response(200, "OK", WriteEnvelope)
    def delete(self, uuid: str):
        key = request.args.get("key") or _json_body().get("key")
        return self.gateway(lambda: self.admin.delete_key(uuid, key), action="delete_key")


@ns.route("/<string:uuid>/memory")
class MemoryResource(DatabaseResource):
    @ns.response(200, "OK", ReadEnvelope)
    def get(self, uuid: str):
        return self.gateway(lambda: self.admin.get_memory_info(uuid), action="get_memory_info")


@ns.route("/<string:uuid>/persistence")
class PersistenceResource(DatabaseResource):
    @ns.response(200, "OK", ReadEnvelope)
    def get(self, uuid: str):
        return self.gateway(lambda: self.admin.get_persistence_settings(uuid), action="get_persistence_settings")


@ns.route("/<string:uuid>/flush")
class FlushResource(DatabaseResource):
    @ns.expect(FlushPayload, validate=False)
    @ns.response(200, "OK", WriteEnvelope)
    @ns.response(400, "Bad Request", WriteEnvelope)
    def post(self, uuid: str):
        flush_type = _json_body().get("type")
        return self.gateway(lambda: self.admin.flush(uuid, flush_type), action="flush")


# ClickHouse


@ns.route("/<string:uuid>/query-log")
class QueryLogResource(DatabaseResource):
    @ns.doc(params={"limit": "返回条数,1-100"})
    @ns.response(200, "OK", ReadEnvelope)
    def get(self, uuid: str):
        limit = request.args.get("limit")
        return self.gateway(lambda: self.admin.get_query_log(uuid, limit), action="get_query_log")


@ns.route("/<string:uuid>/merges")
class MergesResource(DatabaseResource):
    @ns.response(200, "OK", ReadEnvelope)
    def get(self, uuid: str):
        return self.gateway(lambda: self.admin.get_merge_status(uuid), action="get_merge_status")


@ns.route("/<string:uuid>/replication")
class ReplicationResource(DatabaseResource):
    @ns.response(200, "OK", ReadEnvelope)
    def get(self, uuid: str):
        return self.gateway(lambda: self.admin.get_replication_status(uuid), action="get_replication_status")
