import pytest

from fathom.errors import ValidationError
from fathom.services.database_metrics.log_parser import parse_line, parse_logs
from fathom.services.database_metrics.query_guard import BLOCKED_QUERY_MESSAGE, MAX_QUERY_LENGTH, validate_query


@pytest.mark.unit
def test_validate_query_returns_stripped_text() -> None:
    assert validate_query("  SELECT 1  ") == "SELECT 1"


@pytest.mark.unit
@pytest.mark.parametrize("query", [None, "", "   ", 42])
def test_validate_query_requires_text(query) -> None:
    with pytest.raises(ValidationError, match="Query is required"):
        validate_query(query)


@pytest.mark.unit
def test_validate_query_enforces_length_limit() -> None:
    with pytest.raises(ValidationError, match="must not exceed"):
        validate_query("SELECT " + "1" * MAX_QUERY_LENGTH)


@pytest.mark.unit
@pytest.mark.parametrize(
    "query",
    [
        "DROP DATABASE app",
        "  drop user bob",
        "DROP ROLE reporting",
        "truncate all",
        "SELECT 1; DROP TABLE users",
        "SELECT 1;\ntruncate orders",
    ],
)
def test_validate_query_blocks_dangerous_statements(query: str) -> None:
    with pytest.raises(ValidationError) as exc_info:
        validate_query(query)
    assert exc_info.value.message == BLOCKED_QUERY_MESSAGE


@pytest.mark.unit
def test_validate_query_allows_single_drop_table() -> None:
    assert validate_query("DROP TABLE scratch") == "DROP TABLE scratch"


@pytest.mark.unit
def test_parse_line_postgres_log_level_maps_to_info() -> None:
    entry = parse_line("2024-01-01 12:00:00.000 UTC [1] LOG:  database system is ready to accept connections")
    assert entry == {
        "timestamp": "2024-01-01 12:00:00",
        "level": "INFO",
        "message": "database system is ready to accept connections",
    }


@pytest.mark.unit
def test_parse_line_mysql_bracket_level() -> None:
    entry = parse_line("2024-01-01T10:00:00.000000Z 0 [System] [MY-010931] ready")
    assert entry == {"timestamp": "2024-01-01T10:00:00", "level": "INFO", "message": "[MY-010931] ready"}


@pytest.mark.unit
def test_parse_line_keeps_error_level() -> None:
    entry = parse_line("2024-01-01 12:00:01.123 UTC [77] ERROR:  relation \"nope\" does not exist")
    assert entry["level"] == "ERROR"
    assert entry["message"] == 'relation "nope" does not exist'


@pytest.mark.unit
def test_parse_line_unrecognised_line_defaults_to_info() -> None:
    entry = parse_line("Ready to accept connections tcp")
    assert entry["level"] == "INFO"
    assert entry["message"] == "Ready to accept connections tcp"
    assert len(entry["timestamp"]) == len("2024-01-01 00:00:00")


@pytest.mark.unit
def test_parse_logs_skips_blank_lines_and_preserves_order() -> None:
    raw = "\n2024-01-01 12:00:00 UTC [1] WARNING:  first\n\n   \n2024-01-01 12:00:05 UTC [1] FATAL:  second\n"
    entries = list(parse_logs(raw))
    assert [entry["message"] for entry in entries] == ["first", "second"]
    assert [entry["level"] for entry in entries] == ["WARNING", "FATAL"]
