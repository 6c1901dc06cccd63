import pytest

from fathom.constants import DatabaseEngine
from fathom.errors import UnsupportedEngineError
from fathom.services.database_metrics.clickhouse_service import ClickhouseMetricsService


@pytest.fixture
def clickhouse(app, make_database):
    return make_database(DatabaseEngine.CLICKHOUSE, uuid="ch-0001")


@pytest.mark.unit
def test_client_omits_user_for_default_account(clickhouse, transport) -> None:
    transport.when("NOT IN", "12").when("system.processes", "3")
    metrics = ClickhouseMetricsService(transport).collect_metrics(clickhouse.server, clickhouse)

    assert metrics == {"totalTables": 12, "totalRows": None, "databaseSize": "N/A", "queriesPerSec": 3}
    assert transport.commands[0].startswith("docker exec ch-0001 clickhouse-client --password ch-secret -q ")
    assert "--user" not in transport.commands[0]


@pytest.mark.unit
def test_client_passes_custom_user(app, make_database, transport) -> None:
    handle = make_database(DatabaseEngine.CLICKHOUSE, uuid="ch-0002", clickhouse_admin_user="admin")
    ClickhouseMetricsService(transport).collect_metrics(handle.server, handle)
    assert "clickhouse-client --user admin --password ch-secret" in transport.commands[0]


@pytest.mark.unit
def test_query_log_formats_rows(clickhouse, transport) -> None:
    transport.when(
        "system.query_log",
        '{"query": "SELECT count() FROM events", "duration_sec": 0.25, "read_rows": "1234567", '
        '"event_time": "2024-01-01 00:00:00", "user": "analyst"}\nnot-json\n',
    )
    assert ClickhouseMetricsService(transport).get_query_log(clickhouse.server, clickhouse) == [
        {
            "query": "SELECT count() FROM events",
            "duration": "0.25s",
            "rows": "1,234,567",
            "timestamp": "2024-01-01 00:00:00",
            "user": "analyst",
        },
    ]


@pytest.mark.unit
def test_merge_status(clickhouse, transport) -> None:
    transport.when("system.merges", "3").when("system.parts", "120").when("system.part_log", "4")
    assert ClickhouseMetricsService(transport).get_merge_status(clickhouse.server, clickhouse) == {
        "activeMerges": 3,
        "partsCount": 120,
        "mergeRate": 4,
    }


@pytest.mark.unit
def test_replication_status(clickhouse, transport) -> None:
    transport.when(
        "system.replicas",
        '{"database": "db", "table": "events", "replica_name": "r1", "is_leader": 1, "is_readonly": 1, '
        '"absolute_delay": 0}\n'
        '{"database": "db", "table": "events", "replica_name": "r2", "is_leader": 0, "is_readonly": 0, '
        '"absolute_delay": 120}\n',
    )
    status = ClickhouseMetricsService(transport).get_replication_status(clickhouse.server, clickhouse)

    assert status["enabled"] is True
    assert [(replica["host"], replica["status"], replica["delay"]) for replica in status["replicas"]] == [
        ("r1", "Read-only", "0ms"),
        ("r2", "Delayed", "120s"),
    ]
    assert status["replicas"][0]["isLeader"] is True


@pytest.mark.unit
def test_replication_disabled_on_exception(clickhouse, transport) -> None:
    transport.when("system.replicas", "Code: 60. DB::Exception: Table system.replicas doesn't exist")
    assert ClickhouseMetricsService(transport).get_replication_status(clickhouse.server, clickhouse) == {
        "enabled": False,
        "replicas": [],
    }


@pytest.mark.unit
def test_settings(clickhouse, transport) -> None:
    transport.when(
        "WHERE name IN",
        '{"name": "max_threads", "value": "8"}\n{"name": "max_memory_usage", "value": "10737418240"}\n',
    )
    transport.when("network_compression_method", "ZSTD")

    settings = ClickhouseMetricsService(transport).get_settings(clickhouse.server, clickhouse)

    assert settings == {
        "maxThreads": 8,
        "maxMemoryUsage": "10 GB",
        "maxConcurrentQueries": None,
        "maxPartsInTotal": None,
        "backgroundPoolSize": None,
        "compressionMethod": "ZSTD",
    }


@pytest.mark.unit
def test_execute_query(clickhouse, transport) -> None:
    transport.when("SELECT 1", "1\ta\n").when("SELEC oops", "Code: 62. DB::Exception: Syntax error")
    service = ClickhouseMetricsService(transport)

    assert service.execute_query(clickhouse.server, clickhouse, "SELECT 1, 'a'")["rows"] == [["1", "a"]]
    assert service.execute_query(clickhouse.server, clickhouse, "SELEC oops") == {
        "error": "Code: 62. DB::Exception: Syntax error",
    }


@pytest.mark.unit
def test_tables_and_unsupported_row_access(clickhouse, transport) -> None:
    transport.when("FORMAT TabSeparated", "events\t1200\t1.17 KiB\n")
    service = ClickhouseMetricsService(transport)

    assert service.get_tables(clickhouse.server, clickhouse) == [{"name": "events", "rows": 1200, "size": "1.17 KiB"}]
    assert service.is_protected_user("default") is True
    with pytest.raises(UnsupportedEngineError):
        service.get_columns(clickhouse.server, clickhouse, "events")
