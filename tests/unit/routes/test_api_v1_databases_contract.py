import pytest

from fathom.constants import DatabaseEngine, UserRole
from fathom.services import remote_execution


@pytest.fixture
def fake_transport(monkeypatch, transport):
    monkeypatch.setattr(remote_execution, "_transport", transport)
    return transport


@pytest.fixture
def pg(make_database):
    return make_database(DatabaseEngine.POSTGRESQL, uuid="pg-0001")


@pytest.mark.unit
def test_api_v1_databases_requires_login(app, pg) -> None:
    response = app.test_client().get(f"/api/v1/databases/{pg.uuid}/tables")

    assert response.status_code == 401
    payload = response.get_json()
    assert payload["error"] is True
    assert payload["message_code"] == "AUTHENTICATION_REQUIRED"


@pytest.mark.unit
def test_api_v1_databases_tables_contract(make_user, login_client, pg, fake_transport) -> None:
    fake_transport.when("pg_stat_user_tables", "public.users|12|16 kB\n")
    client = login_client(make_user())

    response = client.get(f"/api/v1/databases/{pg.uuid}/tables")

    assert response.status_code == 200
    assert response.get_json() == {
        "available": True,
        "tables": [{"name": "public.users", "rows": 12, "size": "16 kB"}],
    }


@pytest.mark.unit
def test_api_v1_databases_unknown_uuid_returns_404(make_user, login_client, fake_transport) -> None:
    response = login_client(make_user()).get("/api/v1/databases/missing/metrics")

    assert response.status_code == 404
    assert response.get_json() == {"available": False, "error": "Database not found"}
    assert fake_transport.commands == []


@pytest.mark.unit
def test_api_v1_databases_query_forbidden_for_viewer(make_user, login_client, pg, fake_transport) -> None:
    client = login_client(make_user("victor", UserRole.VIEWER))

    response = client.post(f"/api/v1/databases/{pg.uuid}/query", json={"query": "SELECT 1"})

    assert response.status_code == 403
    assert response.get_json()["message_code"] == "PERMISSION_DENIED"
    assert fake_transport.commands == []


@pytest.mark.unit
def test_api_v1_databases_table_data_rejects_malformed_filters(make_user, login_client, pg, fake_transport) -> None:
    client = login_client(make_user())

    response = client.get(f"/api/v1/databases/{pg.uuid}/tables/users/data", query_string={"filters": "{oops"})

    assert response.status_code == 400
    assert response.get_json() == {"available": False, "error": "Filters must be a JSON object"}


@pytest.mark.unit
def test_api_v1_databases_redis_key_write_contract(make_user, login_client, make_database, fake_transport) -> None:
    redis = make_database(DatabaseEngine.REDIS, uuid="redis-0001")
    fake_transport.when(" SET ", "OK")
    client = login_client(make_user())

    response = client.put(
        f"/api/v1/databases/{redis.uuid}/keys/value",
        json={"key": "greeting", "value": "hello", "type": "string"},
    )

    assert response.status_code == 200
    assert response.get_json()["success"] is True
    assert fake_transport.ran("SET greeting hello")
