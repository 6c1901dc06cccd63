"""PostgreSQL 管理服务."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, ClassVar

from fathom.constants import EngineFamily
from fathom.services.database_metrics.base import (
    ColumnInfo,
    EngineMetricsService,
    Row,
    TableDataQuery,
    is_numeric,
    parse_delimited_result,
    parse_json_rows,
    quote,
    sql_literal,
)
from fathom.utils.input_validator import InputValidator

if TYPE_CHECKING:
    from fathom.models.server import Server
    from fathom.models.standalone_databases import StandalonePostgresql

SECONDS_PER_MINUTE = 60


def quote_identifier(name: str) -> str:
    """双引号包裹标识符,内部双引号加倍."""
    return '"' + name.replace('"', '""') + '"'


def quote_table_name(table: str) -> str:
    """`public.users` -> `"public"."users"`."""
    if "." in table:
        schema, name = table.split(".", 1)
        return f"{quote_identifier(schema)}.{quote_identifier(name)}"
    return quote_identifier(table)


def _split_pipe(line: str) -> list[str]:
    return line.strip().split("|")


class PostgresMetricsService(EngineMetricsService):
    """通过 `docker exec <uuid> psql` 管理 PostgreSQL."""

    engine_family = EngineFamily.POSTGRES
    PROTECTED_USERS: ClassVar[frozenset[str]] = frozenset({"postgres"})
    QUERY_DELIMITER = "|"

    def _psql(self, handle: StandalonePostgresql, flags: str, sql: str, *, fallback: str | None = None) -> str:
        """拼装 psql 命令.

        Args:
            handle: 数据库句柄.
            flags: psql 输出参数,例如 `-t -A -F '|'`.
            sql: 待执行 SQL,整体作为单个 shell 参数传入.
            fallback: 非空时吞掉 stderr 并在失败时回显该值,否则合并 stderr.

        """
        user = quote(handle.postgres_user or "postgres")
        database = quote(handle.postgres_db or "postgres")
        parts = ["docker exec", quote(handle.uuid), "psql -U", user, "-d", database]
        if flags:
            parts.append(flags)
        parts.extend(["-c", quote(sql)])
        command = " ".join(parts)
        if fallback is None:
            return f"{command} 2>&1"
        return f"{command} 2>/dev/null || echo {quote(fallback)}"

    def collect_metrics(self, server: Server, handle: StandalonePostgresql) -> dict[str, Any]:
        metrics: dict[str, Any] = {
            "activeConnections": None,
            "maxConnections": 100,
            "databaseSize": "N/A",
            "queriesPerSec": None,
            "cacheHitRatio": None,
        }

        active = self.run(
            server,
            handle,
            self._psql(handle, "-t", "SELECT count(*) FROM pg_stat_activity WHERE state = 'active';", fallback="N/A"),
            action="collect_metrics",
        )
        if is_numeric(active):
            metrics["activeConnections"] = int(float(active))

        database_name = handle.postgres_db or "postgres"
        size = self.run(
            server,
            handle,
            self._psql(
                handle,
                "-t",
                f"SELECT pg_size_pretty(pg_database_size({sql_literal(database_name)}));",
                fallback="N/A",
            ),
            action="collect_metrics",
        )
        if size and size != "N/A":
            metrics["databaseSize"] = size

        max_connections = self.run(
            server,
            handle,
            self._psql(handle, "-t", "SHOW max_connections;", fallback="100"),
            action="collect_metrics",
        )
        if is_numeric(max_connections):
            metrics["maxConnections"] = int(float(max_connections))

        return metrics

    def get_extensions(self, server: Server, handle: StandalonePostgresql) -> list[dict[str, Any]]:
        """列出已安装扩展,以及最多 20 个可安装扩展."""
        installed_sql = (
            "SELECT e.extname, e.extversion, 'installed' as status, c.comment FROM pg_extension e "
            "LEFT JOIN pg_available_extensions c ON e.extname = c.name ORDER BY e.extname;"
        )
        output = self.run(
            server, handle, self._psql(handle, "-t -A -F '|'", installed_sql, fallback=""), action="get_extensions"
        )
        extensions: list[dict[str, Any]] = []
        for line in output.splitlines():
            parts = _split_pipe(line)
            if len(parts) >= 3 and parts[0]:
                extensions.append(
                    {
                        "name": parts[0],
                        "version": parts[1] or "N/A",
                        "enabled": True,
                        "description": parts[3] if len(parts) > 3 else "",
                    },
                )

        available_sql = (
            "SELECT name, default_version, comment FROM pg_available_extensions "
            "WHERE installed_version IS NULL ORDER BY name LIMIT 20;"
        )
        output = self.run(
            server, handle, self._psql(handle, "-t -A -F '|'", available_sql, fallback=""), action="get_extensions"
        )
        for line in output.splitlines():
            parts = _split_pipe(line)
            if len(parts) >= 2 and parts[0]:
                extensions.append(
                    {
                        "name": parts[0],
                        "version": parts[1] or "N/A",
                        "enabled": False,
                        "description": parts[2] if len(parts) > 2 else "",
                    },
                )
        return extensions

    def toggle_extension(self, server: Server, handle: StandalonePostgresql, name: str, enable: bool) -> dict[str, Any]:
        if not InputValidator.is_valid_extension_name(name):
            return {"success": False, "error": "Invalid extension name format"}

        statement = (
            f"CREATE EXTENSION IF NOT EXISTS {quote_identifier(name)}"
            if enable
            else f"DROP EXTENSION IF EXISTS {quote_identifier(name)}"
        )
        output = self.run(server, handle, self._psql(handle, "", f"{statement};"), action="toggle_extension")
        if "error" in output.lower():
            return {"success": False, "error": output}
        state = "enabled" if enable else "disabled"
        return {"success": True, "message": f"Extension {name} {state}"}

    def get_users(self, server: Server, handle: StandalonePostgresql) -> list[dict[str, Any]]:
        sql = (
            "SELECT r.rolname, CASE WHEN r.rolsuper THEN 'Superuser' WHEN r.rolcreaterole THEN 'Admin' "
            "ELSE 'Standard' END as role_type, (SELECT count(*) FROM pg_stat_activity "
            "WHERE usename = r.rolname AND state = 'active') as connections FROM pg_roles r "
            "WHERE r.rolcanlogin = true ORDER BY r.rolname;"
        )
        output = self.run(server, handle, self._psql(handle, "-t -A -F '|'", sql, fallback=""), action="get_users")
        users = []
        for line in output.splitlines():
            parts = _split_pipe(line)
            if len(parts) >= 2 and parts[0]:
                connections = parts[2] if len(parts) > 2 else "0"
                users.append(
                    {
                        "name": parts[0],
                        "role": parts[1] or "Standard",
                        "connections": int(connections) if connections.isdigit() else 0,
                    },
                )
        return users

    def create_user(
        self,
        server: Server,
        handle: StandalonePostgresql,
        username: str,
        password: str,
    ) -> dict[str, Any]:
        if not InputValidator.is_valid_username(username):
            return {"success": False, "error": "Invalid username format"}

        create_sql = f"CREATE ROLE {quote_identifier(username)} WITH LOGIN PASSWORD {sql_literal(password)};"
        output = self.run(server, handle, self._psql(handle, "", create_sql), action="create_user")
        if "error" in output.lower():
            return {"success": False, "error": output}

        database_name = handle.postgres_db or "postgres"
        grant_sql = f"GRANT CONNECT ON DATABASE {quote_identifier(database_name)} TO {quote_identifier(username)};"
        self.run(server, handle, self._psql(handle, "", grant_sql), action="create_user")
        return {"success": True, "message": f"User {username} created successfully"}

    def delete_user(self, server: Server, handle: StandalonePostgresql, username: str) -> dict[str, Any]:
        if self.is_protected_user(username):
            return {"success": False, "error": f"Cannot delete system user: {username}"}
        if not InputValidator.is_valid_username(username):
            return {"success": False, "error": "Invalid username format"}

        role = quote_identifier(username)
        database_name = quote_identifier(handle.postgres_db or "postgres")
        sql = (
            f"REVOKE ALL PRIVILEGES ON ALL TABLES IN SCHEMA public FROM {role}; "
            f"REVOKE ALL ON DATABASE {database_name} FROM {role}; "
            f"DROP ROLE IF EXISTS {role};"
        )
        output = self.run(server, handle, self._psql(handle, "", sql), action="delete_user")
        if "error" in output.lower():
            return {"success": False, "error": output}
        return {"success": True, "message": f"User {username} deleted successfully"}

    def run_maintenance(self, server: Server, handle: StandalonePostgresql, operation: str) -> dict[str, Any]:
        """执行 VACUUM 或 ANALYZE.

        Raises:
            ValidationError: operation 不在白名单内.

        """
        statement = InputValidator.validate_maintenance_operation(operation)
        output = self.run(server, handle, self._psql(handle, "", f"{statement};"), action="run_maintenance")
        if "error" in output.lower():
            return {"success": False, "error": output}
        return {"success": True, "message": f"{statement} completed successfully"}

    def get_active_connections(self, server: Server, handle: StandalonePostgresql) -> list[dict[str, Any]]:
        sql = (
            "SELECT pid, usename, datname, state, COALESCE(query, '<IDLE>'), "
            "COALESCE(EXTRACT(EPOCH FROM (now() - query_start))::text, '0'), "
            "COALESCE(client_addr::text, 'local') FROM pg_stat_activity WHERE pid <> pg_backend_pid() "
            "ORDER BY query_start DESC NULLS LAST LIMIT 50;"
        )
        output = self.run(
            server, handle, self._psql(handle, "-t -A -F '|'", sql, fallback=""), action="get_active_connections"
        )
        connections = []
        for line in output.splitlines():
            parts = _split_pipe(line)
            if len(parts) < 5 or not parts[0].isdigit():
                continue
            raw_duration = parts[5] if len(parts) > 5 else "0"
            duration = float(raw_duration) if is_numeric(raw_duration) else 0.0
            connections.append(
                {
                    "id": len(connections) + 1,
                    "pid": int(parts[0]),
                    "user": parts[1],
                    "database": parts[2],
                    "state": parts[3] or "idle",
                    "query": parts[4] or "<IDLE>",
                    "duration": (
                        f"{round(duration, 3)}s"
                        if duration < SECONDS_PER_MINUTE
                        else f"{round(duration / SECONDS_PER_MINUTE, 1)}m"
                    ),
                    "clientAddr": parts[6] if len(parts) > 6 else "local",
                },
            )
        return connections

    def kill_connection(self, server: Server, handle: StandalonePostgresql, pid: int) -> dict[str, Any]:
        output = self.run(
            server,
            handle,
            self._psql(handle, "-t", f"SELECT pg_terminate_backend({int(pid)});"),
            action="kill_connection",
        )
        if output.strip() == "t":
            return {"success": True, "message": f"Connection PID {pid} terminated"}
        return {"success": False, "error": f"Failed to terminate connection PID {pid}"}

    def execute_query(self, server: Server, handle: StandalonePostgresql, query: str) -> dict[str, Any]:
        output = self.transport.run([self._psql(handle, "-t -A -F '|'", query)], server, False)
        if output is None:
            return {"error": "No response from database"}
        upper = output.upper()
        if "ERROR:" in upper or "FATAL:" in upper:
            return {"error": output.strip()}
        return parse_delimited_result(output, self.QUERY_DELIMITER)

    def get_tables(self, server: Server, handle: StandalonePostgresql) -> list[dict[str, Any]]:
        sql = (
            "SELECT schemaname || '.' || relname, n_live_tup, "
            "pg_size_pretty(pg_total_relation_size(schemaname || '.' || relname)) "
            "FROM pg_stat_user_tables ORDER BY n_live_tup DESC LIMIT 100;"
        )
        output = self.run(server, handle, self._psql(handle, "-t -A -F '|'", sql, fallback=""), action="get_tables")
        tables = []
        for line in output.splitlines():
            parts = _split_pipe(line)
            if len(parts) >= 3 and parts[0]:
                tables.append(
                    {"name": parts[0], "rows": int(parts[1]) if parts[1].isdigit() else 0, "size": parts[2]},
                )
        return tables

    def get_columns(self, server: Server, handle: StandalonePostgresql, table: str) -> list[ColumnInfo]:
        schema, name = table.split(".", 1) if "." in table else ("public", table)
        schema_literal = sql_literal(schema)
        table_literal = sql_literal(name)
        sql = (
            "SELECT column_name, data_type, is_nullable, column_default, "
            "(SELECT count(*) FROM information_schema.key_column_usage kcu "
            "JOIN information_schema.table_constraints tc ON kcu.constraint_name = tc.constraint_name "
            "WHERE tc.constraint_type = 'PRIMARY KEY' "
            f"AND kcu.table_schema = {schema_literal} AND kcu.table_name = {table_literal} "
            "AND kcu.column_name = c.column_name) as is_primary "
            "FROM information_schema.columns c "
            f"WHERE table_schema = {schema_literal} AND table_name = {table_literal} ORDER BY ordinal_position"
        )
        output = self.run(server, handle, self._psql(handle, "-t -A -F '|'", sql, fallback=""), action="get_columns")
        columns: list[ColumnInfo] = []
        for line in output.splitlines():
            parts = _split_pipe(line)
            if len(parts) >= 5:
                columns.append(
                    {
                        "name": parts[0],
                        "type": parts[1],
                        "nullable": parts[2] == "YES",
                        "default": parts[3] or None,
                        "is_primary": parts[4].isdigit() and int(parts[4]) > 0,
                    },
                )
        return columns

    @staticmethod
    def _equality(column: str, value: object) -> str:
        if value is None:
            return f"{quote_identifier(column)} IS NULL"
        return f"{quote_identifier(column)} = {sql_literal(value)}"

    def _where_clause(self, query: TableDataQuery, column_names: list[str]) -> str:
        conditions = []
        if query.search:
            searchable = [name for name in column_names if InputValidator.is_valid_column_name(name)]
            if searchable:
                matches = " OR ".join(
                    f"CAST({quote_identifier(name)} AS TEXT) ILIKE '%{query.search}%'" for name in searchable
                )
                conditions.append(f"({matches})")
        conditions.extend(self._equality(column, value) for column, value in query.filters.items())
        return f" WHERE {' AND '.join(conditions)}" if conditions else ""

    def get_data(
        self,
        server: Server,
        handle: StandalonePostgresql,
        table: str,
        query: TableDataQuery,
        columns: list[ColumnInfo],
    ) -> dict[str, Any]:
        column_names = [column["name"] for column in columns]
        if not InputValidator.is_valid_table_name(table):
            return {"rows": [], "total": 0, "columns": columns}

        table_sql = quote_table_name(table)
        where = self._where_clause(query, column_names)
        order = ""
        if query.order_by and query.order_by in column_names:
            direction = InputValidator.safe_order_direction(query.order_dir)
            order = f" ORDER BY {quote_identifier(query.order_by)} {direction}"

        count_output = self.run(
            server,
            handle,
            self._psql(handle, "-t -A", f"SELECT COUNT(*) FROM {table_sql}{where}", fallback="0"),
            action="get_data",
        )
        total = int(count_output) if count_output.isdigit() else 0

        page_sql = f"SELECT * FROM {table_sql}{where}{order} LIMIT {int(query.per_page)} OFFSET {int(query.offset)}"
        # 每行输出一个 JSON 对象,值中的分隔符与换行不影响解析
        data_sql = f"SELECT row_to_json(t) FROM ({page_sql}) t"
        output = self.run(server, handle, self._psql(handle, "-t -A", data_sql, fallback=""), action="get_data")
        return {"rows": parse_json_rows(output), "total": total, "columns": columns}

    def create_row(self, server: Server, handle: StandalonePostgresql, table: str, data: Row) -> bool:
        safe = {column: value for column, value in data.items() if InputValidator.is_valid_column_name(column)}
        if not safe:
            return False
        column_sql = ", ".join(quote_identifier(column) for column in safe)
        value_sql = ", ".join(sql_literal(value) for value in safe.values())
        sql = f"INSERT INTO {quote_table_name(table)} ({column_sql}) VALUES ({value_sql})"
        output = self.run(server, handle, self._psql(handle, "", sql), action="create_row")
        return "INSERT" in output

    def update_row(
        self,
        server: Server,
        handle: StandalonePostgresql,
        table: str,
        primary_key: Row,
        data: Row,
    ) -> bool:
        assignments = [
            f"{quote_identifier(column)} = {sql_literal(value)}"
            for column, value in data.items()
            if InputValidator.is_valid_column_name(column)
        ]
        where = self._primary_key_clause(primary_key)
        if not assignments or not where:
            return False
        sql = f"UPDATE {quote_table_name(table)} SET {', '.join(assignments)} WHERE {where}"
        output = self.run(server, handle, self._psql(handle, "", sql), action="update_row")
        return "UPDATE" in output

    def delete_row(self, server: Server, handle: StandalonePostgresql, table: str, primary_key: Row) -> bool:
        where = self._primary_key_clause(primary_key)
        if not where:
            return False
        sql = f"DELETE FROM {quote_table_name(table)} WHERE {where}"
        output = self.run(server, handle, self._psql(handle, "", sql), action="delete_row")
        return "DELETE" in output

    def _primary_key_clause(self, primary_key: Row) -> str:
        return " AND ".join(
            self._equality(column, value)
            for column, value in primary_key.items()
            if InputValidator.is_valid_column_name(column)
        )


__all__ = ["PostgresMetricsService", "quote_identifier", "quote_table_name"]
