import pytest

from fathom.utils.format_utils import convert_to_bytes, format_bytes, format_seconds
from fathom.utils.pagination_utils import build_pagination, clamp_int, resolve_page, resolve_page_size


@pytest.mark.unit
@pytest.mark.parametrize(
    ("size", "expected"),
    [(0, "0 B"), (512, "512 B"), (1536, "1.5 KB"), (10 * 1024 * 1024, "10 MB"), (3 * 1024**4, "3 TB")],
)
def test_format_bytes(size: int, expected: str) -> None:
    assert format_bytes(size) == expected


@pytest.mark.unit
@pytest.mark.parametrize(
    ("seconds", "expected"),
    [(45, "45s"), (120, "2m"), (330, "5m 30s"), (3600, "1h"), (8100, "2h 15m")],
)
def test_format_seconds(seconds: int, expected: str) -> None:
    assert format_seconds(seconds) == expected


@pytest.mark.unit
def test_convert_to_bytes_understands_decimal_and_binary_units() -> None:
    assert convert_to_bytes("1.5GiB") == int(1.5 * 1024**3)
    assert convert_to_bytes("10MB") == 10_000_000
    assert convert_to_bytes("512 KiB") == 512 * 1024
    assert convert_to_bytes("0B") == 0
    assert convert_to_bytes("--") == 0


@pytest.mark.unit
def test_resolve_page_and_page_size_clamp_inputs() -> None:
    assert resolve_page({}) == 1
    assert resolve_page({"page": "0"}) == 1
    assert resolve_page({"page": "abc"}) == 1
    assert resolve_page({"page": "4"}) == 4

    assert resolve_page_size({}) == 50
    assert resolve_page_size({"perPage": "5"}) == 10
    assert resolve_page_size({"perPage": "1000"}) == 100
    assert resolve_page_size({"perPage": "25"}) == 25


@pytest.mark.unit
def test_clamp_int() -> None:
    assert clamp_int("5", default=100, minimum=10, maximum=1000) == 10
    assert clamp_int(None, default=100, minimum=10, maximum=1000) == 100
    assert clamp_int("5000", default=100, minimum=10, maximum=1000) == 1000


@pytest.mark.unit
def test_build_pagination() -> None:
    assert build_pagination(120, 3, 50) == {"current_page": 3, "per_page": 50, "total": 120, "last_page": 3}
    assert build_pagination(0, 1, 50)["last_page"] == 1
