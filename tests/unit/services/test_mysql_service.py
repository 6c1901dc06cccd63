import pytest

from fathom.constants import DatabaseEngine
from fathom.services.database_metrics.base import TableDataQuery
from fathom.services.database_metrics.mysql_service import MysqlMetricsService, backtick, mysql_literal


@pytest.fixture
def mysql(app, make_database):
    return make_database(DatabaseEngine.MYSQL, uuid="my-0001")


@pytest.fixture
def mariadb(app, make_database):
    return make_database(DatabaseEngine.MARIADB, uuid="maria-0001", mariadb_database="crm")


@pytest.mark.unit
def test_literal_helpers() -> None:
    assert mysql_literal("it's a \\ path") == "'it\\'s a \\\\ path'"
    assert mysql_literal(None) == "NULL"
    assert backtick("we`ird") == "`we``ird`"


@pytest.mark.unit
def test_command_uses_root_credentials(mysql, transport) -> None:
    transport.when("Threads_connected", "7").when("max_connections", "300").when("Slow_queries", "2")
    metrics = MysqlMetricsService(transport).collect_metrics(mysql.server, mysql)

    assert metrics == {
        "activeConnections": 7,
        "maxConnections": 300,
        "databaseSize": "N/A",
        "queriesPerSec": None,
        "slowQueries": 2,
    }
    assert transport.commands[0].startswith("docker exec my-0001 mysql -u root -proot-secret -N -e ")
    assert transport.commands[0].endswith("2>/dev/null | awk '{print $2}' || echo N/A")


@pytest.mark.unit
def test_mariadb_uses_its_own_credentials(mariadb, transport) -> None:
    transport.when("INFORMATION_SCHEMA.TABLES", "customers\t120\t16.0 KB\n")
    tables = MysqlMetricsService(transport).get_tables(mariadb.server, mariadb)

    assert tables == [{"name": "customers", "rows": 120, "size": "16.0 KB"}]
    assert "TABLE_SCHEMA = '\"'\"'crm'\"'\"'" in transport.commands[0]


@pytest.mark.unit
def test_settings_snapshot(mysql, transport) -> None:
    transport.when("slow_query_log", "ON").when("log_bin", "OFF").when("'max_connections'", "151")
    transport.when("innodb_buffer_pool_size", "134217728").when("query_cache_size", "N/A")
    transport.when("wait_timeout", "28800")

    settings = MysqlMetricsService(transport).get_settings(mysql.server, mysql)

    assert settings == {
        "slowQueryLog": True,
        "binaryLogging": False,
        "maxConnections": 151,
        "innodbBufferPoolSize": "128 MB",
        "queryCacheSize": None,
        "queryTimeout": 28800,
    }


@pytest.mark.unit
def test_get_columns_and_data(mysql, transport) -> None:
    transport.when("INFORMATION_SCHEMA.COLUMNS", "id\tint\tNO\tNULL\t1\nname\tvarchar\tYES\t\t0\n")
    transport.when("SELECT COUNT(*)", "1").when("JSON_OBJECT", '{"id": 1, "name": null}\n')
    service = MysqlMetricsService(transport)

    columns = service.get_columns(mysql.server, mysql, "users")
    assert columns == [
        {"name": "id", "type": "int", "nullable": False, "default": None, "is_primary": True},
        {"name": "name", "type": "varchar", "nullable": True, "default": None, "is_primary": False},
    ]

    result = service.get_data(
        mysql.server,
        mysql,
        "users",
        TableDataQuery(search="ann", order_by="name", filters={"id": None}),
        columns,
    )
    assert result["rows"] == [{"id": 1, "name": None}]
    assert result["total"] == 1
    assert "`id` IS NULL" in transport.commands[-1]
    assert "ORDER BY `name` ASC LIMIT 50 OFFSET 0" in transport.commands[-1]


@pytest.mark.unit
def test_row_writes_detect_errors(mysql, transport) -> None:
    service = MysqlMetricsService(transport)
    transport.when("DELETE FROM", "ERROR 1451 (23000): Cannot delete")

    assert service.create_row(mysql.server, mysql, "users", {"name": "ann"}) is True
    assert service.update_row(mysql.server, mysql, "users", {"id": 1}, {"name": "bo"}) is True
    assert service.delete_row(mysql.server, mysql, "users", {"id": 1}) is False
    assert service.update_row(mysql.server, mysql, "users", {}, {"name": "bo"}) is False


@pytest.mark.unit
def test_query_users_and_connections(mysql, transport) -> None:
    transport.when("SELECT 1", "1\tone\n").when("mysql.user", "reporting\tStandard\t0\n")
    transport.when("PROCESSLIST", "12\tapp\tshop\tQuery\t90\tSELECT SLEEP(100)\t10.0.0.9:50122\n")
    service = MysqlMetricsService(transport)

    assert service.execute_query(mysql.server, mysql, "SELECT 1, 'one'")["rows"] == [["1", "one"]]
    assert "-D shop -N -B" in transport.commands[0]
    assert service.get_users(mysql.server, mysql) == [
        {"name": "root", "role": "Superuser", "connections": 0},
        {"name": "reporting", "role": "Standard", "connections": 0},
    ]
    connections = service.get_active_connections(mysql.server, mysql)
    assert connections == [
        {
            "id": 1,
            "pid": 12,
            "user": "app",
            "database": "shop",
            "state": "active",
            "query": "SELECT SLEEP(100)",
            "duration": "1.5m",
            "clientAddr": "10.0.0.9",
        },
    ]


@pytest.mark.unit
def test_user_management(mysql, transport) -> None:
    service = MysqlMetricsService(transport)
    transport.when("KILL 99", "ERROR 1094 (HY000): Unknown thread id: 99")

    assert service.create_user(mysql.server, mysql, "reporting", "s3cret-pass") == {
        "success": True,
        "message": "User reporting created successfully",
    }
    assert transport.ran("GRANT ALL PRIVILEGES ON `shop`.*")
    assert service.delete_user(mysql.server, mysql, "mysql.sys")["success"] is False
    assert service.kill_connection(mysql.server, mysql, 99)["success"] is False
    assert service.kill_connection(mysql.server, mysql, 12)["success"] is True
