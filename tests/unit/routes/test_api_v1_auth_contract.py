import pytest

from fathom import db
from fathom.constants import UserRole


@pytest.mark.unit
def test_api_v1_auth_login_contract(app, make_user) -> None:
    user = make_user("admin", UserRole.OWNER)
    client = app.test_client()

    response = client.post("/api/v1/auth/login", json={"username": "admin", "password": "TestPass1"})

    assert response.status_code == 200
    payload = response.get_json()
    assert payload["success"] is True
    assert payload["message"] == "登录成功"
    assert payload["data"] == {
        "id": user.id,
        "username": "admin",
        "role": UserRole.OWNER,
        "team_id": user.team_id,
        "is_active": True,
    }

    me_response = client.get("/api/v1/auth/me")
    assert me_response.status_code == 200
    assert me_response.get_json()["data"]["username"] == "admin"


@pytest.mark.unit
def test_api_v1_auth_login_rejects_bad_credentials(app, make_user) -> None:
    make_user("admin")
    client = app.test_client()

    response = client.post("/api/v1/auth/login", json={"username": "admin", "password": "wrong"})

    assert response.status_code == 401
    payload = response.get_json()
    assert payload["error"] is True
    assert payload["message_code"] == "INVALID_CREDENTIALS"


@pytest.mark.unit
def test_api_v1_auth_login_requires_both_fields(app) -> None:
    response = app.test_client().post("/api/v1/auth/login", json={"username": " "})

    assert response.status_code == 400
    assert response.get_json()["message"] == "用户名和密码不能为空"


@pytest.mark.unit
def test_api_v1_auth_login_rejects_disabled_account(app, make_user) -> None:
    user = make_user("admin")
    user.is_active = False
    db.session.commit()

    response = app.test_client().post("/api/v1/auth/login", json={"username": "admin", "password": "TestPass1"})

    assert response.status_code == 403
    assert response.get_json()["message_code"] == "ACCOUNT_DISABLED"


@pytest.mark.unit
def test_api_v1_auth_me_requires_login(app) -> None:
    response = app.test_client().get("/api/v1/auth/me")

    assert response.status_code == 401
    assert response.get_json()["message_code"] == "AUTHENTICATION_REQUIRED"


@pytest.mark.unit
def test_api_v1_auth_logout_contract(make_user, login_client) -> None:
    client = login_client(make_user())

    response = client.post("/api/v1/auth/logout")

    assert response.status_code == 200
    assert response.get_json()["message"] == "登出成功"
