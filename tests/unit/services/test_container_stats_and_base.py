import pytest

from fathom.errors import UnsupportedEngineError
from fathom.services.database_metrics.base import (
    MAX_QUERY_ROWS,
    EngineMetricsService,
    TableDataQuery,
    parse_delimited_result,
    quote,
    sql_literal,
)
from fathom.services.database_metrics.container_stats import collect_container_stats, parse_container_stats


@pytest.mark.unit
def test_parse_container_stats_reads_docker_json() -> None:
    output = (
        '{"CPUPerc":"12.5%","MemUsage":"512MiB / 2GiB","NetIO":"1.5kB / 3MB","Name":"pg"}'
    )
    sample = parse_container_stats(output)
    assert sample == {
        "cpuPercent": 12.5,
        "memoryUsedBytes": 512 * 1024**2,
        "memoryLimitBytes": 2 * 1024**3,
        "networkRxBytes": 1500,
        "networkTxBytes": 3_000_000,
    }


@pytest.mark.unit
@pytest.mark.parametrize("output", ["", "{}", "not json", "[1, 2]"])
def test_parse_container_stats_missing_fields_are_none(output: str) -> None:
    sample = parse_container_stats(output)
    assert set(sample) == {"cpuPercent", "memoryUsedBytes", "memoryLimitBytes", "networkRxBytes", "networkTxBytes"}
    assert all(value is None for value in sample.values())


@pytest.mark.unit
def test_collect_container_stats_quotes_container_name(app, make_server, transport) -> None:
    server = make_server()
    transport.when("docker stats", '{"CPUPerc":"1%","MemUsage":"1MiB / 1GiB","NetIO":"0B / 0B"}')

    sample = collect_container_stats(server, "abc; rm -rf /", transport)

    assert sample["cpuPercent"] == 1.0
    assert "docker stats 'abc; rm -rf /' --no-stream" in transport.commands[0]


@pytest.mark.unit
def test_quote_and_sql_literal() -> None:
    assert quote("plain") == "plain"
    assert quote("it's") == "'it'\"'\"'s'"
    assert sql_literal("it's") == "'it''s'"
    assert sql_literal(None) == "NULL"
    assert sql_literal(5) == "'5'"


@pytest.mark.unit
def test_parse_delimited_result_uses_generic_column_names() -> None:
    result = parse_delimited_result("1|alice\n2|bob\n\n", "|")
    assert result == {
        "columns": ["column_0", "column_1"],
        "rows": [["1", "alice"], ["2", "bob"]],
        "rowCount": 2,
    }
    assert parse_delimited_result("   \n", "|") == {"columns": [], "rows": [], "rowCount": 0}


@pytest.mark.unit
def test_parse_delimited_result_caps_rows() -> None:
    output = "\n".join(str(index) for index in range(MAX_QUERY_ROWS + 50))
    assert parse_delimited_result(output, "\t")["rowCount"] == MAX_QUERY_ROWS


@pytest.mark.unit
def test_table_data_query_offset() -> None:
    assert TableDataQuery(page=3, per_page=25).offset == 50
    assert TableDataQuery().filters == {}


@pytest.mark.unit
def test_base_service_reports_unsupported_capabilities(app, make_server, transport) -> None:
    service = EngineMetricsService(transport)
    with pytest.raises(UnsupportedEngineError, match="Unsupported database type"):
        service.get_tables(make_server(), handle=None)
    assert service.is_protected_user("postgres") is False
