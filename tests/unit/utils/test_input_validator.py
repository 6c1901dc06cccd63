import pytest

from fathom.errors import ValidationError
from fathom.utils.input_validator import InputValidator


@pytest.mark.unit
@pytest.mark.parametrize("name", ["users", "public.users", "_audit_2024", "Orders"])
def test_table_name_accepts_identifiers(name: str) -> None:
    assert InputValidator.is_valid_table_name(name) is True


@pytest.mark.unit
@pytest.mark.parametrize(
    "name",
    ["", "1users", "users; DROP TABLE x", "users-archive", "us ers", "users`", "a" * 129, None, 42],
)
def test_table_name_rejects_injection_and_shape(name) -> None:
    assert InputValidator.is_valid_table_name(name) is False


@pytest.mark.unit
def test_column_name_rejects_dots_but_field_name_allows_them() -> None:
    assert InputValidator.is_valid_column_name("created_at") is True
    assert InputValidator.is_valid_column_name("address.city") is False
    assert InputValidator.is_valid_field_name("address.city") is True
    assert InputValidator.is_valid_field_name("$where") is False


@pytest.mark.unit
def test_username_and_password_rules() -> None:
    assert InputValidator.is_valid_username("reporting_ro") is True
    assert InputValidator.is_valid_username("a" * 64) is False
    assert InputValidator.is_valid_username("bob'--") is False
    assert InputValidator.is_valid_password("12345678") is True
    assert InputValidator.is_valid_password("short") is False
    assert InputValidator.is_valid_password(None) is False


@pytest.mark.unit
def test_extension_allow_list() -> None:
    assert InputValidator.is_valid_extension_name("pg_trgm") is True
    assert InputValidator.is_valid_extension_name("uuid-ossp") is True
    assert InputValidator.is_valid_extension_name("plpython3u") is False


@pytest.mark.unit
def test_redis_pattern_rejects_shell_metacharacters() -> None:
    assert InputValidator.is_valid_redis_pattern("session:*") is True
    assert InputValidator.is_valid_redis_pattern("user:[0-9]?") is True
    for pattern in ("a b", "key;rm", "$(id)", "`id`", "k'ey", 'k"ey'):
        assert InputValidator.is_valid_redis_pattern(pattern) is False
    assert InputValidator.is_valid_redis_key("x" * 257) is False


@pytest.mark.unit
def test_object_id_detection() -> None:
    assert InputValidator.is_valid_object_id("65a1b2c3d4e5f60718293a4b") is True
    assert InputValidator.is_valid_object_id("65a1b2c3") is False
    assert InputValidator.is_valid_object_id(123) is False


@pytest.mark.unit
def test_maintenance_operation_is_normalized_or_rejected() -> None:
    assert InputValidator.validate_maintenance_operation(" Vacuum ") == "VACUUM"
    assert InputValidator.validate_maintenance_operation("analyze") == "ANALYZE"
    with pytest.raises(ValidationError, match="Invalid maintenance operation"):
        InputValidator.validate_maintenance_operation("VACUUM FULL; DROP TABLE x")


@pytest.mark.unit
def test_order_direction() -> None:
    assert InputValidator.validate_order_direction("desc") == "DESC"
    with pytest.raises(ValidationError):
        InputValidator.validate_order_direction("sideways")
    assert InputValidator.safe_order_direction("sideways") == "ASC"


@pytest.mark.unit
def test_sanitize_search_strips_statement_breakers() -> None:
    assert InputValidator.sanitize_search("  o'brien; -- /* x */ $1 \\ ") == "obrien   x  1"
    assert InputValidator.sanitize_search(None) == ""


@pytest.mark.unit
def test_sanitize_mongo_search_keeps_word_characters_only() -> None:
    assert InputValidator.sanitize_mongo_search("ab.*c(d) e-f_g") == "abcd e-f_g"
