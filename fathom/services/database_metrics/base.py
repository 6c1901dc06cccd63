"""引擎管理服务的公共能力接口.

每个引擎族一个实现,所有操作都是无状态的单次调用:拼装一条或多条单行命令,
经传输层在远程主机执行,再解析标准输出.调用方提供的标识符必须先通过
`InputValidator` 校验,才允许进入命令字符串.
"""

from __future__ import annotations

import json
import shlex
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, ClassVar

from fathom.errors import UnsupportedEngineError
from fathom.services.remote_execution import RemoteExecutionTransport, get_transport
from fathom.utils.structlog_config import get_logger

if TYPE_CHECKING:
    from fathom.models.server import Server
    from fathom.models.standalone_databases import StandaloneDatabaseMixin

logger = get_logger("database_metrics")

MAX_QUERY_ROWS = 1000

Row = dict[str, Any]
ColumnInfo = dict[str, Any]


@dataclass(slots=True)
class TableDataQuery:
    """表数据分页查询参数.

    Attributes:
        page: 页码,从 1 开始.
        per_page: 每页行数.
        search: 已清洗的搜索文本,在所有列上做 OR 模糊匹配.
        order_by: 排序列,必须属于表的已知列.
        order_dir: 排序方向,asc/desc.
        filters: 等值过滤 `{列: 值}`,AND 组合.

    """

    page: int = 1
    per_page: int = 50
    search: str = ""
    order_by: str = ""
    order_dir: str = "asc"
    filters: dict[str, Any] = field(default_factory=dict)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.per_page


def quote(value: object) -> str:
    """shell 参数转义."""
    return shlex.quote(str(value))


def sql_literal(value: object) -> str:
    """生成 SQL 字符串字面量,单引号加倍,None 转为 NULL."""
    if value is None:
        return "NULL"
    escaped = str(value).replace("'", "''")
    return f"'{escaped}'"


def parse_delimited_result(output: str, delimiter: str) -> dict[str, Any]:
    """将分隔符输出解析为通用列名 `column_0..n` 与行列表.

    Args:
        output: 命令标准输出.
        delimiter: 列分隔符.

    Returns:
        `{columns, rows, rowCount}`,最多保留 1000 行.

    """
    lines = [line for line in output.strip().split("\n") if line.strip()]
    if not lines:
        return {"columns": [], "rows": [], "rowCount": 0}

    first = lines[0].split(delimiter)
    columns = [f"column_{index}" for index in range(len(first))]
    rows = [line.split(delimiter) for line in lines[:MAX_QUERY_ROWS]]
    return {"columns": columns, "rows": rows, "rowCount": len(rows)}


def is_numeric(value: str) -> bool:
    try:
        float(value)
    except ValueError:
        return False
    return True


def parse_json_rows(output: str) -> list[Row]:
    """解析每行一个 JSON 对象的输出,非对象行(告警、空行)跳过."""
    rows: list[Row] = []
    for line in output.split("\n"):
        text = line.strip()
        if not text.startswith("{"):
            continue
        try:
            row = json.loads(text)
        except ValueError:
            continue
        if isinstance(row, dict):
            rows.append(row)
    return rows


class EngineMetricsService:
    """引擎管理服务基类.

    未实现的能力统一抛出 UnsupportedEngineError,由网关转换为
    "Unsupported database type" 载荷.

    Attributes:
        engine_family: 引擎族标识.
        PROTECTED_USERS: 无论调用方权限如何都不允许删除的系统用户.
        QUERY_DELIMITER: 自由查询输出的列分隔符.

    """

    engine_family: ClassVar[str] = ""
    PROTECTED_USERS: ClassVar[frozenset[str]] = frozenset()
    QUERY_DELIMITER: ClassVar[str] = "\t"

    def __init__(self, transport: RemoteExecutionTransport | None = None) -> None:
        self._transport = transport

    @property
    def transport(self) -> RemoteExecutionTransport:
        return self._transport or get_transport()

    def run(self, server: Server, handle: StandaloneDatabaseMixin, command: str, *, action: str) -> str:
        """执行单条命令并返回去除首尾空白的输出,None 视为空串."""
        logger.debug(
            "执行引擎命令",
            module="database_metrics",
            engine=handle.engine_type,
            database_uuid=handle.uuid,
            action=action,
        )
        output = self.transport.run([command], server, False)
        return (output or "").strip()

    def is_protected_user(self, username: str) -> bool:
        return username in self.PROTECTED_USERS

    def _unsupported(self, capability: str) -> UnsupportedEngineError:
        return UnsupportedEngineError(
            "Unsupported database type",
            extra={"engine_family": self.engine_family, "capability": capability},
        )

    # 通用能力

    def collect_metrics(self, server: Server, handle: StandaloneDatabaseMixin) -> dict[str, Any]:
        raise self._unsupported("collect_metrics")

    def get_tables(self, server: Server, handle: StandaloneDatabaseMixin) -> list[dict[str, Any]]:
        raise self._unsupported("get_tables")

    def get_columns(self, server: Server, handle: StandaloneDatabaseMixin, table: str) -> list[ColumnInfo]:
        raise self._unsupported("get_columns")

    def get_data(
        self,
        server: Server,
        handle: StandaloneDatabaseMixin,
        table: str,
        query: TableDataQuery,
        columns: list[ColumnInfo],
    ) -> dict[str, Any]:
        raise self._unsupported("get_data")

    def create_row(self, server: Server, handle: StandaloneDatabaseMixin, table: str, data: Row) -> bool:
        raise self._unsupported("create_row")

    def update_row(
        self,
        server: Server,
        handle: StandaloneDatabaseMixin,
        table: str,
        primary_key: Row,
        data: Row,
    ) -> bool:
        raise self._unsupported("update_row")

    def delete_row(self, server: Server, handle: StandaloneDatabaseMixin, table: str, primary_key: Row) -> bool:
        raise self._unsupported("delete_row")

    def execute_query(self, server: Server, handle: StandaloneDatabaseMixin, query: str) -> dict[str, Any]:
        raise self._unsupported("execute_query")

    def get_users(self, server: Server, handle: StandaloneDatabaseMixin) -> list[dict[str, Any]]:
        raise self._unsupported("get_users")

    def create_user(
        self,
        server: Server,
        handle: StandaloneDatabaseMixin,
        username: str,
        password: str,
    ) -> dict[str, Any]:
        raise self._unsupported("create_user")

    def delete_user(self, server: Server, handle: StandaloneDatabaseMixin, username: str) -> dict[str, Any]:
        raise self._unsupported("delete_user")

    def get_active_connections(self, server: Server, handle: StandaloneDatabaseMixin) -> list[dict[str, Any]]:
        raise self._unsupported("get_active_connections")

    def kill_connection(self, server: Server, handle: StandaloneDatabaseMixin, pid: int) -> dict[str, Any]:
        raise self._unsupported("kill_connection")


__all__ = [
    "MAX_QUERY_ROWS",
    "ColumnInfo",
    "EngineMetricsService",
    "Row",
    "TableDataQuery",
    "is_numeric",
    "parse_delimited_result",
    "parse_json_rows",
    "quote",
    "sql_literal",
]
