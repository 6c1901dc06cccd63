"""受管数据库管理网关.

每个操作的处理顺序固定:
1. 在调用方团队内解析 uuid,未命中返回 404 封套
2. 按操作类别校验能力(读取 view / 配置变更 update / 破坏性与凭据 manage)
3. 校验调用方输入,失败返回 400 封套,不下发任何远程命令
4. 检查主机状态后分派到引擎服务
5. 引擎或传输层的异常在此转换为带前缀的失败封套

读操作封套为 `{available, ...}`,写操作封套为 `{success, message?, error?}`.
每个方法返回 `(payload, status_code)`.
"""

from __future__ import annotations

import secrets
import string
import threading
import time
from collections.abc import Callable, Iterable, Mapping
from typing import TYPE_CHECKING, Any, Literal

from fathom import db
from fathom.constants import DatabaseEngine, EngineFamily, HttpStatus, UserRole
from fathom.errors import UnsupportedEngineError, ValidationError
from fathom.infra.route_safety import log_with_context
from fathom.services.authorization_service import DatabaseAuthorizationService
from fathom.services.database_metrics.base import ColumnInfo, TableDataQuery, quote
from fathom.services.database_metrics.container_stats import collect_container_stats
from fathom.services.database_metrics.historical_metrics_service import HistoricalMetricsService
from fathom.services.database_metrics.log_parser import parse_logs
from fathom.services.database_metrics.query_guard import validate_query
from fathom.services.database_metrics.redis_service import KEY_TYPES
from fathom.services.database_metrics.resolver import DatabaseResolver, ResolvedDatabase
from fathom.services.remote_execution import get_transport
from fathom.utils.input_validator import InputValidator
from fathom.utils.pagination_utils import build_pagination, clamp_int, resolve_page, resolve_page_size
from fathom.utils.time_utils import TimeFormats, time_utils

if TYPE_CHECKING:
    from fathom.models.server import Server
    from fathom.models.user import User
    from fathom.services.remote_execution import RemoteExecutionTransport

GatewayResult = tuple[dict[str, Any], int]
Envelope = Literal["available", "success"]
Operation = Callable[[ResolvedDatabase, "Server"], dict[str, Any]]

DEFAULT_LOG_LINES = 100
MIN_LOG_LINES = 10
MAX_LOG_LINES = 1000
MAX_RETURNED_LOG_ENTRIES = 100
DEFAULT_KEY_LIMIT = 100
MAX_KEY_LIMIT = 500
DEFAULT_QUERY_LOG_LIMIT = 50
MAX_QUERY_LOG_LIMIT = 100
GENERATED_PASSWORD_LENGTH = 32
FLUSH_TYPES = frozenset({"db", "all"})

QUERY_UNSUPPORTED_MESSAGE = (
    "Query execution is only supported for PostgreSQL, MySQL, MariaDB, and ClickHouse databases"
)
CONTAINER_NOT_RUNNING_MESSAGE = "Container is not running. The database may need to be started first."
PASSWORD_REGENERATED_MESSAGE = (
    "Password regenerated and database restarting. Services using this database will need redeployment."
)

ROW_CRUD_FAMILIES = (EngineFamily.POSTGRES, EngineFamily.MYSQL, EngineFamily.MONGO)
USER_FAMILIES = (EngineFamily.POSTGRES, EngineFamily.MYSQL)


def generate_password(length: int = GENERATED_PASSWORD_LENGTH) -> str:
    """生成由字母、数字组成的随机密码."""
    alphabet = string.ascii_letters + string.digits
    return "".join(secrets.choice(alphabet) for _ in range(length))


def _is_scalar(value: object) -> bool:
    return isinstance(value, (str, int, float)) and not isinstance(value, bool)


def _restart_container(transport: RemoteExecutionTransport, server: Server, container: str) -> None:
    try:
        transport.run([f"docker restart {quote(container)} 2>&1"], server, False)
    except Exception as exc:  # noqa: BLE001 - 后台线程只记录失败
        log_with_context(
            "error",
            "数据库容器重启失败",
            module="database_metrics",
            action="regenerate_password",
            context={"database_uuid": container},
            extra={"error_type": exc.__class__.__name__, "error_message": str(exc)},
            include_actor=False,
        )


class AdministrationGateway:
    """受管数据库管理入口.

    Args:
        user: 调用方,缺省使用 Flask-Login 当前用户.
        resolver: uuid 解析器.
        transport: 远程执行传输实现,缺省使用进程级默认实现.
        historical: 历史指标服务.

    """

    def __init__(
        self,
        user: User | None = None,
        *,
        resolver: DatabaseResolver | None = None,
        transport: RemoteExecutionTransport | None = None,
        historical: HistoricalMetricsService | None = None,
    ) -> None:
        self.authorization = DatabaseAuthorizationService(user)
        self.transport = transport
        self.resolver = resolver or DatabaseResolver(transport=transport)
        self.historical = historical or HistoricalMetricsService()

    @property
    def _transport(self) -> RemoteExecutionTransport:
        if self.transport is not None:
            return self.transport
        return get_transport()

    def _team_id(self) -> int | None:
        user = self.authorization.user
        return user.team_id if user is not None else None

    # ------------------------------------------------------------------
    # 分派骨架
    # ------------------------------------------------------------------

    def _execute(
        self,
        uuid: str,
        *,
        envelope: Envelope,
        ability: str,
        action: str,
        error_prefix: str,
        operation: Operation,
        families: Iterable[str] | None = None,
        validate: Callable[[ResolvedDatabase], None] | None = None,
        require_server: bool = True,
    ) -> GatewayResult:
        resolved = self.resolver.find_by_uuid(uuid, self._team_id())
        if resolved is None:
            return {envelope: False, "error": "Database not found"}, HttpStatus.NOT_FOUND

        self.authorization.authorize(ability, resolved.handle)

        try:
            if families is not None and resolved.family not in tuple(families):
                raise UnsupportedEngineError("Unsupported database type")
            if resolved.service is None:
                raise UnsupportedEngineError("Unsupported database type")
            if validate is not None:
                validate(resolved)
        except ValidationError as exc:
            return {envelope: False, "error": exc.message}, HttpStatus.BAD_REQUEST

        server = resolved.handle.server
        if require_server:
            if server is None:
                return {envelope: False, "error": "Server not configured"}, HttpStatus.OK
            if not server.is_functional():
                return {envelope: False, "error": "Server not reachable"}, HttpStatus.OK

        try:
            payload = operation(resolved, server)
        except UnsupportedEngineError:
            return {envelope: False, "error": "Unsupported database type"}, HttpStatus.BAD_REQUEST
        except ValidationError as exc:
            return {envelope: False, "error": exc.message}, HttpStatus.BAD_REQUEST
        except Exception as exc:  # noqa: BLE001 - 传输与引擎异常统一转换为失败封套
            log_with_context(
                "warning",
                "数据库管理操作失败",
                module="database_metrics",
                action=action,
                context={"database_uuid": uuid, "engine": resolved.engine_type},
                extra={"error_type": exc.__class__.__name__, "error_message": str(exc)},
            )
            return {envelope: False, "error": f"{error_prefix}{exc}"}, HttpStatus.OK

        if envelope in payload:
            return payload, HttpStatus.OK
        return {envelope: True, **payload}, HttpStatus.OK

    def _read(self, uuid: str, *, action: str, error_prefix: str, operation: Operation, **options: Any) -> GatewayResult:
        return self._execute(
            uuid,
            envelope="available",
            ability=UserRole.ABILITY_VIEW,
            action=action,
            error_prefix=error_prefix,
            operation=operation,
            **options,
        )

    def _write(
        self,
        uuid: str,
        *,
        ability: str,
        action: str,
        error_prefix: str,
        operation: Operation,
        **options: Any,
    ) -> GatewayResult:
        return self._execute(
            uuid,
            envelope="success",
            ability=ability,
            action=action,
            error_prefix=error_prefix,
            operation=operation,
            **options,
        )

    # ------------------------------------------------------------------
    # 通用读操作
    # ------------------------------------------------------------------

    def collect_metrics(self, uuid: str) -> GatewayResult:
        def operation(resolved: ResolvedDatabase, server: Server) -> dict[str, Any]:
            stats = collect_container_stats(server, resolved.handle.uuid, self._transport)
            engine_metrics = resolved.service.collect_metrics(server, resolved.handle)
            return {"metrics": {**stats, **engine_metrics}}

        return self._read(uuid, action="collect_metrics", error_prefix="Failed to collect metrics: ", operation=operation)

    def get_historical_metrics(self, uuid: str, time_range: object) -> GatewayResult:
        def operation(resolved: ResolvedDatabase, _server: Server | None) -> dict[str, Any]:
            return self.historical.get_history(resolved.handle.uuid, time_range)

        return self._read(
            uuid,
            action="get_historical_metrics",
            error_prefix="Failed to fetch historical metrics: ",
            operation=operation,
            require_server=False,
        )

    def get_logs(self, uuid: str, lines: object = DEFAULT_LOG_LINES) -> GatewayResult:
        line_count = clamp_int(lines, default=DEFAULT_LOG_LINES, minimum=MIN_LOG_LINES, maximum=MAX_LOG_LINES)

        def operation(resolved: ResolvedDatabase, server: Server) -> dict[str, Any]:
            container = quote(resolved.handle.uuid)
            status = (
                self._transport.run([f"docker inspect --format='{{{{.State.Status}}}}' {container} 2>&1"], server, False)
                or ""
            ).strip()
            if "No such" in status or "Error" in status:
                return {
                    "logs": [
                        {
                            "timestamp": time_utils.format_utc_time(time_utils.now(), TimeFormats.DATETIME_FORMAT),
                            "level": "WARNING",
                            "message": CONTAINER_NOT_RUNNING_MESSAGE,
                        },
                    ],
                }
            command = f"docker logs --tail {line_count} {container} 2>&1 | tail -{line_count}"
            raw = self._transport.run([command], server, False) or ""
            entries = list(parse_logs(raw))
            return {"logs": entries[-MAX_RETURNED_LOG_ENTRIES:]}

        return self._read(uuid, action="get_logs", error_prefix="Failed to fetch logs: ", operation=operation)

    def get_tables(self, uuid: str) -> GatewayResult:
        def operation(resolved: ResolvedDatabase, server: Server) -> dict[str, Any]:
            return {"tables": resolved.service.get_tables(server, resolved.handle)}

        return self._read(uuid, action="get_tables", error_prefix="Failed to fetch tables: ", operation=operation)

    def get_columns(self, uuid: str, table: str) -> GatewayResult:
        def operation(resolved: ResolvedDatabase, server: Server) -> dict[str, Any]:
            return {"columns": resolved.service.get_columns(server, resolved.handle, table)}

        return self._read(
            uuid,
            action="get_columns",
            error_prefix="Failed to fetch columns: ",
            operation=operation,
            validate=lambda _resolved: self._validate_table(table),
        )

    def get_table_data(self, uuid: str, table: str, params: Mapping[str, Any]) -> GatewayResult:
        """分页读取表数据.

        Args:
            uuid: 数据库 uuid.
            table: 表名或集合名.
            params: page、perPage、search、orderBy、orderDir、filters(JSON 对象).

        Returns:
            `{available, rows, columns, pagination}` 与状态码.

        """
        page = resolve_page(params)
        per_page = resolve_page_size(params)
        filters = params.get("filters") or {}

        def validate(_resolved: ResolvedDatabase) -> None:
            self._validate_table(table)
            if not isinstance(filters, Mapping):
                raise ValidationError("Filters must be a JSON object")

        def operation(resolved: ResolvedDatabase, server: Server) -> dict[str, Any]:
            columns = resolved.service.get_columns(server, resolved.handle, table)
            column_names = {column["name"] for column in columns}
            unknown = sorted(set(filters) - column_names)
            if unknown:
                raise ValidationError(f"Unknown filter column: {', '.join(unknown)}")

            order_by = str(params.get("orderBy") or "")
            if order_by not in column_names:
                order_by = ""
            search = params.get("search") or ""
            if resolved.family == EngineFamily.MONGO:
                search = InputValidator.sanitize_mongo_search(search)
            else:
                search = InputValidator.sanitize_search(search)

            query = TableDataQuery(
                page=page,
                per_page=per_page,
                search=search,
                order_by=order_by,
                order_dir=InputValidator.safe_order_direction(params.get("orderDir") or "asc").lower(),
                filters=dict(filters),
            )
            result = resolved.service.get_data(server, resolved.handle, table, query, columns)
            return {
                "rows": result["rows"],
                "columns": result["columns"],
                "pagination": build_pagination(result["total"], page, per_page),
            }

        return self._read(
            uuid,
            action="get_table_data",
            error_prefix="Failed to fetch table data: ",
            operation=operation,
            families=ROW_CRUD_FAMILIES,
            validate=validate,
        )

    def get_users(self, uuid: str) -> GatewayResult:
        def operation(resolved: ResolvedDatabase, server: Server) -> dict[str, Any]:
            return {"users": resolved.service.get_users(server, resolved.handle)}

        return self._read(uuid, action="get_users", error_prefix="Failed to fetch users: ", operation=operation)

    def get_active_connections(self, uuid: str) -> GatewayResult:
        def operation(resolved: ResolvedDatabase, server: Server) -> dict[str, Any]:
            return {"connections": resolved.service.get_active_connections(server, resolved.handle)}

        return self._read(
            uuid,
            action="get_active_connections",
            error_prefix="Failed to fetch active connections: ",
            operation=operation,
        )

    def get_settings(self, uuid: str) -> GatewayResult:
        def operation(resolved: ResolvedDatabase, server: Server) -> dict[str, Any]:
            return {"settings": resolved.service.get_settings(server, resolved.handle)}

        return self._read(
            uuid,
            action="get_settings",
            error_prefix="Failed to fetch settings: ",
            operation=operation,
            families=(EngineFamily.MYSQL, EngineFamily.CLICKHOUSE),
        )

    # ------------------------------------------------------------------
    # 通用写操作
    # ------------------------------------------------------------------

    def execute_query(self, uuid: str, query: object) -> GatewayResult:
        resolved_query: dict[str, str] = {}

        def validate(resolved: ResolvedDatabase) -> None:
            if resolved.engine_type not in DatabaseEngine.QUERYABLE:
                raise ValidationError(QUERY_UNSUPPORTED_MESSAGE)
            resolved_query["text"] = validate_query(query)

        def operation(resolved: ResolvedDatabase, server: Server) -> dict[str, Any]:
            started = time.perf_counter()
            result = resolved.service.execute_query(server, resolved.handle, resolved_query["text"])
            execution_time = round(time.perf_counter() - started, 3)
            if "error" in result:
                return {"success": False, "error": result["error"]}
            return {
                "columns": result.get("columns", []),
                "rows": result.get("rows", []),
                "rowCount": result.get("rowCount", 0),
                "executionTime": execution_time,
            }

        return self._write(
            uuid,
            ability=UserRole.ABILITY_MANAGE,
            action="execute_query",
            error_prefix="Query execution failed: ",
            operation=operation,
            validate=validate,
        )

    def create_table_row(self, uuid: str, table: str, data: object) -> GatewayResult:
        def operation(resolved: ResolvedDatabase, server: Server) -> dict[str, Any]:
            row = self._validate_row_data(resolved, self._columns(resolved, server, table), data)
            if not resolved.service.create_row(server, resolved.handle, table, row):
                return {"success": False, "error": "Failed to create row"}
            return {"message": "Row created successfully"}

        return self._write(
            uuid,
            ability=UserRole.ABILITY_UPDATE,
            action="create_table_row",
            error_prefix="Failed to create row: ",
            operation=operation,
            families=ROW_CRUD_FAMILIES,
            validate=lambda _resolved: self._validate_row_payload(table, data),
        )

    def update_table_row(self, uuid: str, table: str, primary_key: object, data: object) -> GatewayResult:
        def operation(resolved: ResolvedDatabase, server: Server) -> dict[str, Any]:
            columns = self._columns(resolved, server, table)
            key = self._validate_primary_key(columns, primary_key)
            row = self._validate_row_data(resolved, columns, data)
            if not resolved.service.update_row(server, resolved.handle, table, key, row):
                return {"success": False, "error": "Failed to update row"}
            return {"message": "Row updated successfully"}

        return self._write(
            uuid,
            ability=UserRole.ABILITY_UPDATE,
            action="update_table_row",
            error_prefix="Failed to update row: ",
            operation=operation,
            families=ROW_CRUD_FAMILIES,
            validate=lambda _resolved: self._validate_row_payload(table, data, primary_key),
        )

    def delete_table_row(self, uuid: str, table: str, primary_key: object) -> GatewayResult:
        def operation(resolved: ResolvedDatabase, server: Server) -> dict[str, Any]:
            key = self._validate_primary_key(self._columns(resolved, server, table), primary_key)
            if not resolved.service.delete_row(server, resolved.handle, table, key):
                return {"success": False, "error": "Failed to delete row"}
            return {"message": "Row deleted successfully"}

        return self._write(
            uuid,
            ability=UserRole.ABILITY_MANAGE,
            action="delete_table_row",
            error_prefix="Failed to delete row: ",
            operation=operation,
            families=ROW_CRUD_FAMILIES,
            validate=lambda _resolved: self._validate_row_payload(table, {}, primary_key),
        )

    def create_user(self, uuid: str, username: object, password: object) -> GatewayResult:
        def validate(_resolved: ResolvedDatabase) -> None:
            if not InputValidator.is_valid_username(username):
                raise ValidationError("Invalid username format")
            if not InputValidator.is_valid_password(password):
                raise ValidationError("Password must be at least 8 characters")

        def operation(resolved: ResolvedDatabase, server: Server) -> dict[str, Any]:
            return resolved.service.create_user(server, resolved.handle, str(username), str(password))

        return self._write(
            uuid,
            ability=UserRole.ABILITY_MANAGE,
            action="create_user",
            error_prefix="Failed to create user: ",
            operation=operation,
            families=USER_FAMILIES,
            validate=validate,
        )

    def delete_user(self, uuid: str, username: object) -> GatewayResult:
        def validate(resolved: ResolvedDatabase) -> None:
            if not InputValidator.is_valid_username(username):
                raise ValidationError("Invalid username format")
            if resolved.service.is_protected_user(str(username)):
                raise ValidationError(f"Cannot delete system user: {username}")

        def operation(resolved: ResolvedDatabase, server: Server) -> dict[str, Any]:
            return resolved.service.delete_user(server, resolved.handle, str(username))

        return self._write(
            uuid,
            ability=UserRole.ABILITY_MANAGE,
            action="delete_user",
            error_prefix="Failed to delete user: ",
            operation=operation,
            families=USER_FAMILIES,
            validate=validate,
        )

    def kill_connection(self, uuid: str, pid: object) -> GatewayResult:
        resolved_pid: dict[str, int] = {}

        def validate(_resolved: ResolvedDatabase) -> None:
            try:
                value = int(str(pid))
            except ValueError as exc:
                raise ValidationError("Invalid connection PID") from exc
            if value <= 0:
                raise ValidationError("Invalid connection PID")
            resolved_pid["pid"] = value

        def operation(resolved: ResolvedDatabase, server: Server) -> dict[str, Any]:
            return resolved.service.kill_connection(server, resolved.handle, resolved_pid["pid"])

        return self._write(
            uuid,
            ability=UserRole.ABILITY_MANAGE,
            action="kill_connection",
            error_prefix="Failed to kill connection: ",
            operation=operation,
            families=USER_FAMILIES,
            validate=validate,
        )

    def regenerate_password(self, uuid: str) -> GatewayResult:
        """写入新密码后异步重启容器,封套只表示重启已发起."""

        def operation(resolved: ResolvedDatabase, server: Server) -> dict[str, Any]:
            handle = resolved.handle
            setattr(handle, handle.password_field, generate_password())
            db.session.commit()

            threading.Thread(
                target=_restart_container,
                args=(self._transport, server.snapshot(), handle.uuid),
                name=f"restart-{handle.uuid}",
                daemon=True,
            ).start()
            log_with_context(
                "info",
                "数据库密码已重置,容器重启已发起",
                module="database_metrics",
                action="regenerate_password",
                context={"database_uuid": handle.uuid, "engine": resolved.engine_type},
            )
            return {"message": PASSWORD_REGENERATED_MESSAGE}

        return self._write(
            uuid,
            ability=UserRole.ABILITY_MANAGE,
            action="regenerate_password",
            error_prefix="Failed to regenerate password: ",
            operation=operation,
        )

    # ------------------------------------------------------------------
    # PostgreSQL
    # ------------------------------------------------------------------

    def get_extensions(self, uuid: str) -> GatewayResult:
        def operation(resolved: ResolvedDatabase, server: Server) -> dict[str, Any]:
            return {"extensions": resolved.service.get_extensions(server, resolved.handle)}

        return self._read(
            uuid,
            action="get_extensions",
            error_prefix="Failed to fetch extensions: ",
            operation=operation,
            families=(EngineFamily.POSTGRES,),
        )

    def toggle_extension(self, uuid: str, name: object, enable: object) -> GatewayResult:
        def validate(_resolved: ResolvedDatabase) -> None:
            if not InputValidator.is_valid_extension_name(name):
                raise ValidationError("Invalid extension name")

        def operation(resolved: ResolvedDatabase, server: Server) -> dict[str, Any]:
            return resolved.service.toggle_extension(server, resolved.handle, str(name), bool(enable))

        return self._write(
            uuid,
            ability=UserRole.ABILITY_UPDATE,
            action="toggle_extension",
            error_prefix="Failed to toggle extension: ",
            operation=operation,
            families=(EngineFamily.POSTGRES,),
            validate=validate,
        )

    def run_maintenance(self, uuid: str, operation_name: object) -> GatewayResult:
        normalized: dict[str, str] = {}

        def validate(_resolved: ResolvedDatabase) -> None:
            normalized["operation"] = InputValidator.validate_maintenance_operation(operation_name)

        def operation(resolved: ResolvedDatabase, server: Server) -> dict[str, Any]:
            return resolved.service.run_maintenance(server, resolved.handle, normalized["operation"])

        return self._write(
            uuid,
            ability=UserRole.ABILITY_UPDATE,
            action="run_maintenance",
            error_prefix="Failed to run maintenance: ",
            operation=operation,
            families=(EngineFamily.POSTGRES,),
            validate=validate,
        )

    # ------------------------------------------------------------------
    # MongoDB
    # ------------------------------------------------------------------

    def _mongo_read(self, uuid: str, action: str, label: str, key: str, method: str) -> GatewayResult:
        def operation(resolved: ResolvedDatabase, server: Server) -> dict[str, Any]:
            return {key: getattr(resolved.service, method)(server, resolved.handle)}

        return self._read(
            uuid,
            action=action,
            error_prefix=f"Failed to fetch {label}: ",
            operation=operation,
            families=(EngineFamily.MONGO,),
        )

    def get_collections(self, uuid: str) -> GatewayResult:
        return self._mongo_read(uuid, "get_collections", "collections", "collections", "get_collections")

    def get_indexes(self, uuid: str) -> GatewayResult:
        return self._mongo_read(uuid, "get_indexes", "indexes", "indexes", "get_indexes")

    def get_replica_set_status(self, uuid: str) -> GatewayResult:
        return self._mongo_read(
            uuid, "get_replica_set_status", "replica set status", "replicaSet", "get_replica_set_status"
        )

    def get_storage_settings(self, uuid: str) -> GatewayResult:
        return self._mongo_read(
            uuid, "get_storage_settings", "MongoDB storage settings", "settings", "get_storage_settings"
        )

    def create_index(self, uuid: str, collection: object, fields: object, *, unique: bool = False) -> GatewayResult:
        def validate(_resolved: ResolvedDatabase) -> None:
            if not InputValidator.is_valid_collection_name(collection):
                raise ValidationError("Invalid collection name")
            if not isinstance(fields, Mapping) or not fields:
                raise ValidationError("Invalid field specification")
            for field_name, direction in fields.items():
                if not InputValidator.is_valid_field_name(field_name) or direction not in (1, -1):
                    raise ValidationError("Invalid field specification")

        def operation(resolved: ResolvedDatabase, server: Server) -> dict[str, Any]:
            return resolved.service.create_index(
                server, resolved.handle, str(collection), dict(fields), unique=bool(unique)
            )

        return self._write(
            uuid,
            ability=UserRole.ABILITY_UPDATE,
            action="create_index",
            error_prefix="Failed to create index: ",
            operation=operation,
            families=(EngineFamily.MONGO,),
            validate=validate,
        )

    # ------------------------------------------------------------------
    # Redis / KeyDB / Dragonfly
    # ------------------------------------------------------------------

    def get_keys(self, uuid: str, pattern: object = "*", limit: object = DEFAULT_KEY_LIMIT) -> GatewayResult:
        key_limit = clamp_int(limit, default=DEFAULT_KEY_LIMIT, minimum=1, maximum=MAX_KEY_LIMIT)
        key_pattern = pattern or "*"

        def validate(_resolved: ResolvedDatabase) -> None:
            if not InputValidator.is_valid_redis_pattern(key_pattern):
                raise ValidationError("Invalid key pattern")

        def operation(resolved: ResolvedDatabase, server: Server) -> dict[str, Any]:
            return {"keys": resolved.service.get_keys(server, resolved.handle, str(key_pattern), key_limit)}

        return self._read(
            uuid,
            action="get_keys",
            error_prefix="Failed to fetch keys: ",
            operation=operation,
            families=(EngineFamily.REDIS,),
            validate=validate,
        )

    def get_key_value(self, uuid: str, key: object) -> GatewayResult:
        def operation(resolved: ResolvedDatabase, server: Server) -> dict[str, Any]:
            result = resolved.service.get_key_value(server, resolved.handle, str(key))
            if not result.pop("success", False):
                return {"available": False, **result}
            return result

        return self._read(
            uuid,
            action="get_key_value",
            error_prefix="Failed to fetch key value: ",
            operation=operation,
            families=(EngineFamily.REDIS,),
            validate=lambda _resolved: self._validate_redis_key(key),
        )

    def set_key_value(
        self,
        uuid: str,
        key: object,
        key_type: object,
        value: object,
        ttl: object = -1,
    ) -> GatewayResult:
        def validate(_resolved: ResolvedDatabase) -> None:
            self._validate_redis_key(key)
            if key_type not in KEY_TYPES:
                raise ValidationError("Unsupported key type")
            self._validate_redis_value(str(key_type), value)

        def operation(resolved: ResolvedDatabase, server: Server) -> dict[str, Any]:
            expire = clamp_int(ttl, default=-1, minimum=-1, maximum=2**31 - 1)
            return resolved.service.set_key_value(server, resolved.handle, str(key), str(key_type), value, expire)

        return self._write(
            uuid,
            ability=UserRole.ABILITY_UPDATE,
            action="set_key_value",
            error_prefix="Failed to set key value: ",
            operation=operation,
            families=(EngineFamily.REDIS,),
            validate=validate,
        )

    def delete_key(self, uuid: str, key: object) -> GatewayResult:
        def operation(resolved: ResolvedDatabase, server: Server) -> dict[str, Any]:
            return resolved.service.delete_key(server, resolved.handle, str(key))

        return self._write(
            uuid,
            ability=UserRole.ABILITY_MANAGE,
            action="delete_key",
            error_prefix="Failed to delete key: ",
            operation=operation,
            families=(EngineFamily.REDIS,),
            validate=lambda _resolved: self._validate_redis_key(key),
        )

    def get_memory_info(self, uuid: str) -> GatewayResult:
        def operation(resolved: ResolvedDatabase, server: Server) -> dict[str, Any]:
            return {"memory": resolved.service.get_memory_info(server, resolved.handle)}

        return self._read(
            uuid,
            action="get_memory_info",
            error_prefix="Failed to fetch memory info: ",
            operation=operation,
            families=(EngineFamily.REDIS,),
        )

    def get_persistence_settings(self, uuid: str) -> GatewayResult:
        def operation(resolved: ResolvedDatabase, server: Server) -> dict[str, Any]:
            return {"persistence": resolved.service.get_persistence_settings(server, resolved.handle)}

        return self._read(
            uuid,
            action="get_persistence_settings",
            error_prefix="Failed to fetch Redis persistence settings: ",
            operation=operation,
            families=(EngineFamily.REDIS,),
        )

    def flush(self, uuid: str, flush_type: object) -> GatewayResult:
        def validate(_resolved: ResolvedDatabase) -> None:
            if flush_type not in FLUSH_TYPES:
                raise ValidationError("Invalid flush type")

        def operation(resolved: ResolvedDatabase, server: Server) -> dict[str, Any]:
            return resolved.service.flush(server, resolved.handle, str(flush_type))

        return self._write(
            uuid,
            ability=UserRole.ABILITY_MANAGE,
            action="flush",
            error_prefix="Failed to flush: ",
            operation=operation,
            families=(EngineFamily.REDIS,),
            validate=validate,
        )

    # ------------------------------------------------------------------
    # ClickHouse
    # ------------------------------------------------------------------

    def get_query_log(self, uuid: str, limit: object = DEFAULT_QUERY_LOG_LIMIT) -> GatewayResult:
        log_limit = clamp_int(limit, default=DEFAULT_QUERY_LOG_LIMIT, minimum=1, maximum=MAX_QUERY_LOG_LIMIT)

        def operation(resolved: ResolvedDatabase, server: Server) -> dict[str, Any]:
            return {"queries": resolved.service.get_query_log(server, resolved.handle, log_limit)}

        return self._read(
            uuid,
            action="get_query_log",
            error_prefix="Failed to fetch query log: ",
            operation=operation,
            families=(EngineFamily.CLICKHOUSE,),
        )

    def get_merge_status(self, uuid: str) -> GatewayResult:
        def operation(resolved: ResolvedDatabase, server: Server) -> dict[str, Any]:
            return resolved.service.get_merge_status(server, resolved.handle)

        return self._read(
            uuid,
            action="get_merge_status",
            error_prefix="Failed to fetch merge status: ",
            operation=operation,
            families=(EngineFamily.CLICKHOUSE,),
        )

    def get_replication_status(self, uuid: str) -> GatewayResult:
        def operation(resolved: ResolvedDatabase, server: Server) -> dict[str, Any]:
            return resolved.service.get_replication_status(server, resolved.handle)

        return self._read(
            uuid,
            action="get_replication_status",
            error_prefix="Failed to fetch replication status: ",
            operation=operation,
            families=(EngineFamily.CLICKHOUSE,),
        )

    # ------------------------------------------------------------------
    # 输入校验
    # ------------------------------------------------------------------

    @staticmethod
    def _validate_table(table: object) -> None:
        if not InputValidator.is_valid_table_name(table):
            raise ValidationError("Invalid table name")

    @staticmethod
    def _validate_redis_key(key: object) -> None:
        if not InputValidator.is_valid_redis_key(key):
            raise ValidationError("Invalid key name")

    @staticmethod
    def _validate_redis_value(key_type: str, value: object) -> None:
        """集合类键值的结构在发出 DEL 之前校验."""
        if key_type == "string" or value is None:
            if value is not None and not _is_scalar(value):
                raise ValidationError("String value must be a scalar")
            return
        if key_type == "hash":
            if not isinstance(value, Mapping) or not all(_is_scalar(item) for item in value.values()):
                raise ValidationError("Hash value must be a JSON object of scalar fields")
            return
        if not isinstance(value, list):
            raise ValidationError(f"{key_type.capitalize()} value must be a JSON array")
        if key_type == "zset":
            for item in value:
                if (
                    not isinstance(item, Mapping)
                    or not _is_scalar(item.get("member"))
                    or isinstance(item.get("score"), bool)
                    or not isinstance(item.get("score"), (int, float))
                ):
                    raise ValidationError("Sorted set members must be objects with member and numeric score")
            return
        if not all(_is_scalar(item) for item in value):
            raise ValidationError(f"{key_type.capitalize()} items must be scalars")

    def _validate_row_payload(self, table: object, data: object, primary_key: object = None) -> None:
        self._validate_table(table)
        if not isinstance(data, Mapping):
            raise ValidationError("Row data must be a JSON object")
        if primary_key is not None and (not isinstance(primary_key, Mapping) or not primary_key):
            raise ValidationError("Primary key must be a non-empty JSON object")

    @staticmethod
    def _columns(resolved: ResolvedDatabase, server: Server, table: str) -> list[ColumnInfo]:
        return resolved.service.get_columns(server, resolved.handle, table)

    @staticmethod
    def _validate_primary_key(columns: list[ColumnInfo], primary_key: Mapping[str, Any]) -> dict[str, Any]:
        """主键列集合必须与表的主键列完全一致."""
        expected = {column["name"] for column in columns if column.get("is_primary")}
        if not expected:
            raise ValidationError("Table has no primary key")
        provided = set(primary_key)
        if provided != expected:
            raise ValidationError(
                f"Primary key must contain exactly the columns: {', '.join(sorted(expected))}",
            )
        return dict(primary_key)

    @staticmethod
    def _validate_row_data(
        resolved: ResolvedDatabase,
        columns: list[ColumnInfo],
        data: Mapping[str, Any],
    ) -> dict[str, Any]:
        if not data:
            raise ValidationError("Row data must not be empty")
        if resolved.family == EngineFamily.MONGO:
            invalid = sorted(name for name in data if not InputValidator.is_valid_field_name(name) and name != "_id")
        else:
            known = {column["name"] for column in columns}
            invalid = sorted(name for name in data if name not in known)
        if invalid:
            raise ValidationError(f"Unknown column: {', '.join(invalid)}")
        return dict(data)


__all__ = ["AdministrationGateway", "GatewayResult", "generate_password"]
