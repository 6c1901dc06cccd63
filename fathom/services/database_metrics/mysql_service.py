"""MySQL / MariaDB 管理服务."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, ClassVar

from fathom.constants import DatabaseEngine, EngineFamily
from fathom.services.database_metrics.base import (
    ColumnInfo,
    EngineMetricsService,
    Row,
    TableDataQuery,
    parse_delimited_result,
    parse_json_rows,
    quote,
)
from fathom.utils.format_utils import format_bytes
from fathom.utils.input_validator import InputValidator

if TYPE_CHECKING:
    from fathom.models.server import Server
    from fathom.models.standalone_databases import StandaloneMariadb, StandaloneMysql

    MysqlHandle = StandaloneMysql | StandaloneMariadb

SECONDS_PER_MINUTE = 60


def mysql_literal(value: object) -> str:
    """生成 MySQL 字符串字面量,转义反斜杠与单引号."""
    if value is None:
        return "NULL"
    escaped = str(value).replace("\\", "\\\\").replace("'", "\\'")
    return f"'{escaped}'"


def backtick(name: str) -> str:
    return "`" + name.replace("`", "``") + "`"


class MysqlMetricsService(EngineMetricsService):
    """通过 `docker exec <uuid> mysql -u root` 管理 MySQL 与 MariaDB."""

    engine_family = EngineFamily.MYSQL
    PROTECTED_USERS: ClassVar[frozenset[str]] = frozenset({"root", "mysql.sys", "mysql.session", "mysql.infoschema"})
    QUERY_DELIMITER = "\t"

    @staticmethod
    def _credentials(handle: MysqlHandle) -> tuple[str, str]:
        """返回 (root 密码, 默认库名)."""
        if handle.engine_type == DatabaseEngine.MARIADB:
            password = handle.mariadb_root_password or handle.mariadb_password or ""
            database = handle.mariadb_database or "mysql"
        else:
            password = handle.mysql_root_password or handle.mysql_password or ""
            database = handle.mysql_database or "mysql"
        return password, database

    def _mysql(
        self,
        handle: MysqlHandle,
        sql: str,
        *,
        flags: str = "-N",
        use_database: bool = False,
        fallback: str | None = None,
        pipe: str = "",
    ) -> str:
        password, database = self._credentials(handle)
        parts = ["docker exec", quote(handle.uuid), "mysql -u root", f"-p{quote(password)}"]
        if use_database:
            parts.extend(["-D", quote(database)])
        if flags:
            parts.append(flags)
        parts.extend(["-e", quote(sql)])
        command = " ".join(parts)
        if fallback is None:
            return f"{command} 2>&1"
        return f"{command} 2>/dev/null{pipe} || echo {quote(fallback)}"

    def _variable(self, server: Server, handle: MysqlHandle, statement: str, *, action: str) -> str:
        return self.run(
            server,
            handle,
            self._mysql(handle, statement, fallback="N/A", pipe=" | awk '{print $2}'"),
            action=action,
        )

    def collect_metrics(self, server: Server, handle: MysqlHandle) -> dict[str, Any]:
        metrics: dict[str, Any] = {
            "activeConnections": None,
            "maxConnections": 150,
            "databaseSize": "N/A",
            "queriesPerSec": None,
            "slowQueries": None,
        }
        connections = self._variable(server, handle, "SHOW STATUS LIKE 'Threads_connected';", action="collect_metrics")
        if connections.isdigit():
            metrics["activeConnections"] = int(connections)
        max_connections = self._variable(
            server, handle, "SHOW VARIABLES LIKE 'max_connections';", action="collect_metrics"
        )
        if max_connections.isdigit():
            metrics["maxConnections"] = int(max_connections)
        slow_queries = self._variable(server, handle, "SHOW STATUS LIKE 'Slow_queries';", action="collect_metrics")
        if slow_queries.isdigit():
            metrics["slowQueries"] = int(slow_queries)
        return metrics

    def get_settings(self, server: Server, handle: MysqlHandle) -> dict[str, Any]:
        """读取关键服务端变量快照."""
        settings: dict[str, Any] = {
            "slowQueryLog": False,
            "binaryLogging": False,
            "maxConnections": None,
            "innodbBufferPoolSize": None,
            "queryCacheSize": None,
            "queryTimeout": None,
        }

        def variable(name: str) -> str:
            return self._variable(server, handle, f"SHOW VARIABLES LIKE '{name}';", action="get_settings")

        settings["slowQueryLog"] = variable("slow_query_log").upper() == "ON"
        settings["binaryLogging"] = variable("log_bin").upper() == "ON"
        max_connections = variable("max_connections")
        if max_connections.isdigit():
            settings["maxConnections"] = int(max_connections)
        buffer_pool = variable("innodb_buffer_pool_size")
        if buffer_pool.isdigit():
            settings["innodbBufferPoolSize"] = format_bytes(int(buffer_pool))
        query_cache = variable("query_cache_size")
        if query_cache.isdigit():
            settings["queryCacheSize"] = format_bytes(int(query_cache))
        wait_timeout = variable("wait_timeout")
        if wait_timeout.isdigit():
            settings["queryTimeout"] = int(wait_timeout)
        return settings

    def get_users(self, server: Server, handle: MysqlHandle) -> list[dict[str, Any]]:
        excluded = ", ".join(f"'{name}'" for name in sorted(self.PROTECTED_USERS))
        sql = f"SELECT user, 'Standard' as role, 0 as connections FROM mysql.user WHERE user NOT IN ({excluded});"
        output = self.run(server, handle, self._mysql(handle, sql, fallback=""), action="get_users")
        users: list[dict[str, Any]] = [{"name": "root", "role": "Superuser", "connections": 0}]
        for line in output.splitlines():
            parts = line.split()
            if parts:
                users.append({"name": parts[0], "role": "Standard", "connections": 0})
        return users

    def create_user(self, server: Server, handle: MysqlHandle, username: str, password: str) -> dict[str, Any]:
        if not InputValidator.is_valid_username(username):
            return {"success": False, "error": "Invalid username format"}

        create_sql = f"CREATE USER '{username}'@'%' IDENTIFIED BY {mysql_literal(password)};"
        output = self.run(server, handle, self._mysql(handle, create_sql, flags=""), action="create_user")
        if "ERROR" in output:
            return {"success": False, "error": output}

        _, database = self._credentials(handle)
        if database:
            if not InputValidator.is_valid_column_name(database):
                return {"success": True, "message": f"User {username} created (grant skipped - invalid db name format)"}
            grant_sql = f"GRANT ALL PRIVILEGES ON {backtick(database)}.* TO '{username}'@'%'; FLUSH PRIVILEGES;"
            self.run(server, handle, self._mysql(handle, grant_sql, flags=""), action="create_user")
        return {"success": True, "message": f"User {username} created successfully"}

    def delete_user(self, server: Server, handle: MysqlHandle, username: str) -> dict[str, Any]:
        if self.is_protected_user(username):
            return {"success": False, "error": f"Cannot delete system user: {username}"}
        if not InputValidator.is_valid_username(username):
            return {"success": False, "error": "Invalid username format"}

        output = self.run(
            server, handle, self._mysql(handle, f"DROP USER IF EXISTS '{username}'@'%';", flags=""), action="delete_user"
        )
        if "ERROR" in output:
            return {"success": False, "error": output}
        return {"success": True, "message": f"User {username} deleted successfully"}

    def get_active_connections(self, server: Server, handle: MysqlHandle) -> list[dict[str, Any]]:
        sql = (
            "SELECT ID, USER, DB, COMMAND, TIME, INFO, HOST FROM INFORMATION_SCHEMA.PROCESSLIST "
            "WHERE COMMAND != 'Daemon' ORDER BY TIME DESC LIMIT 50;"
        )
        output = self.run(server, handle, self._mysql(handle, sql, fallback=""), action="get_active_connections")
        connections = []
        for line in output.splitlines():
            parts = line.strip().split("\t")
            if len(parts) < 5 or not parts[0].isdigit():
                continue
            elapsed = int(parts[4]) if parts[4].isdigit() else 0
            connections.append(
                {
                    "id": len(connections) + 1,
                    "pid": int(parts[0]),
                    "user": parts[1],
                    "database": parts[2],
                    "state": "active" if parts[3].lower() == "query" else "idle",
                    "query": parts[5] if len(parts) > 5 else "<IDLE>",
                    "duration": (
                        f"{elapsed}s" if elapsed < SECONDS_PER_MINUTE else f"{round(elapsed / SECONDS_PER_MINUTE, 1)}m"
                    ),
                    "clientAddr": (parts[6] if len(parts) > 6 else "").split(":")[0],
                },
            )
        return connections

    def kill_connection(self, server: Server, handle: MysqlHandle, pid: int) -> dict[str, Any]:
        output = self.run(server, handle, self._mysql(handle, f"KILL {int(pid)};", flags=""), action="kill_connection")
        if "ERROR" in output:
            return {"success": False, "error": f"Failed to terminate connection PID {pid}"}
        return {"success": True, "message": f"Connection PID {pid} terminated"}

    def execute_query(self, server: Server, handle: MysqlHandle, query: str) -> dict[str, Any]:
        output = self.transport.run([self._mysql(handle, query, flags="-N -B", use_database=True)], server, False)
        if output is None:
            return {"error": "No response from database"}
        if "ERROR" in output:
            return {"error": output.strip()}
        return parse_delimited_result(output, self.QUERY_DELIMITER)

    def get_tables(self, server: Server, handle: MysqlHandle) -> list[dict[str, Any]]:
        _, database = self._credentials(handle)
        escaped_database = database.replace("'", "''")
        sql = (
            "SELECT TABLE_NAME, TABLE_ROWS, CONCAT(ROUND((DATA_LENGTH + INDEX_LENGTH) / 1024, 1), ' KB') AS size "
            f"FROM INFORMATION_SCHEMA.TABLES WHERE TABLE_SCHEMA = '{escaped_database}' "
            "ORDER BY TABLE_ROWS DESC LIMIT 100;"
        )
        output = self.run(server, handle, self._mysql(handle, sql, fallback=""), action="get_tables")
        tables = []
        for line in output.splitlines():
            parts = line.strip().split("\t")
            if len(parts) >= 3 and parts[0]:
                tables.append(
                    {"name": parts[0], "rows": int(parts[1]) if parts[1].isdigit() else 0, "size": parts[2] or "0 KB"},
                )
        return tables

    def get_columns(self, server: Server, handle: MysqlHandle, table: str) -> list[ColumnInfo]:
        _, database = self._credentials(handle)
        sql = (
            "SELECT COLUMN_NAME, DATA_TYPE, IS_NULLABLE, COLUMN_DEFAULT, "
            "(CASE WHEN COLUMN_KEY = 'PRI' THEN 1 ELSE 0 END) as is_primary "
            f"FROM INFORMATION_SCHEMA.COLUMNS WHERE TABLE_SCHEMA = {mysql_literal(database)} "
            f"AND TABLE_NAME = {mysql_literal(table)} ORDER BY ORDINAL_POSITION"
        )
        output = self.run(server, handle, self._mysql(handle, sql, fallback=""), action="get_columns")
        columns: list[ColumnInfo] = []
        for line in output.splitlines():
            parts = line.split("\t")
            if len(parts) >= 5:
                default = parts[3]
                columns.append(
                    {
                        "name": parts[0],
                        "type": parts[1],
                        "nullable": parts[2] == "YES",
                        "default": default if default not in {"", "NULL"} else None,
                        "is_primary": parts[4].strip() == "1",
                    },
                )
        return columns

    @staticmethod
    def _equality(column: str, value: object) -> str:
        if value is None:
            return f"{backtick(column)} IS NULL"
        return f"{backtick(column)} = {mysql_literal(value)}"

    def get_data(
        self,
        server: Server,
        handle: MysqlHandle,
        table: str,
        query: TableDataQuery,
        columns: list[ColumnInfo],
    ) -> dict[str, Any]:
        column_names = [column["name"] for column in columns]
        if not InputValidator.is_valid_table_name(table):
            return {"rows": [], "total": 0, "columns": columns}

        conditions = []
        if query.search:
            matches = " OR ".join(
                f"LOWER(CAST({backtick(name)} AS CHAR)) LIKE LOWER('%{query.search}%')"
                for name in column_names
                if InputValidator.is_valid_column_name(name)
            )
            if matches:
                conditions.append(f"({matches})")
        conditions.extend(self._equality(column, value) for column, value in query.filters.items())
        where = f" WHERE {' AND '.join(conditions)}" if conditions else ""

        order = ""
        if query.order_by and query.order_by in column_names:
            order = f" ORDER BY {backtick(query.order_by)} {InputValidator.safe_order_direction(query.order_dir)}"

        count_output = self.run(
            server,
            handle,
            self._mysql(handle, f"SELECT COUNT(*) FROM {backtick(table)}{where}", use_database=True, fallback="0"),
            action="get_data",
        )
        total = int(count_output) if count_output.isdigit() else 0

        if not column_names:
            return {"rows": [], "total": total, "columns": columns}
        row_json = ", ".join(f"{mysql_literal(name)}, {backtick(name)}" for name in column_names)
        data_sql = (
            f"SELECT JSON_OBJECT({row_json}) FROM {backtick(table)}{where}{order} "
            f"LIMIT {int(query.per_page)} OFFSET {int(query.offset)}"
        )
        # --raw 关闭批模式转义,JSON 内的反斜杠原样输出
        output = self.run(
            server,
            handle,
            self._mysql(handle, data_sql, flags="-N -B --raw", use_database=True, fallback=""),
            action="get_data",
        )
        return {"rows": parse_json_rows(output), "total": total, "columns": columns}

    def _write(self, server: Server, handle: MysqlHandle, sql: str, *, action: str) -> bool:
        output = self.run(server, handle, self._mysql(handle, sql, flags="", use_database=True), action=action)
        return "ERROR" not in output

    def create_row(self, server: Server, handle: MysqlHandle, table: str, data: Row) -> bool:
        safe = {column: value for column, value in data.items() if InputValidator.is_valid_column_name(column)}
        if not safe:
            return False
        column_sql = ", ".join(backtick(column) for column in safe)
        value_sql = ", ".join(mysql_literal(value) for value in safe.values())
        return self._write(
            server, handle, f"INSERT INTO {backtick(table)} ({column_sql}) VALUES ({value_sql})", action="create_row"
        )

    def update_row(self, server: Server, handle: MysqlHandle, table: str, primary_key: Row, data: Row) -> bool:
        assignments = [
            f"{backtick(column)} = {mysql_literal(value)}"
            for column, value in data.items()
            if InputValidator.is_valid_column_name(column)
        ]
        where = self._primary_key_clause(primary_key)
        if not assignments or not where:
            return False
        sql = f"UPDATE {backtick(table)} SET {', '.join(assignments)} WHERE {where}"
        return self._write(server, handle, sql, action="update_row")

    def delete_row(self, server: Server, handle: MysqlHandle, table: str, primary_key: Row) -> bool:
        where = self._primary_key_clause(primary_key)
        if not where:
            return False
        return self._write(server, handle, f"DELETE FROM {backtick(table)} WHERE {where}", action="delete_row")

    def _primary_key_clause(self, primary_key: Row) -> str:
        return " AND ".join(
            self._equality(column, value)
            for column, value in primary_key.items()
            if InputValidator.is_valid_column_name(column)
        )


__all__ = ["MysqlMetricsService", "backtick", "mysql_literal"]
