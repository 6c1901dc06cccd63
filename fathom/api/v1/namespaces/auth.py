"""Auth namespace (基于 Flask-Login 会话)."""

from __future__ import annotations

from typing import Any

from flask import request
from flask_login import current_user, login_user, logout_user
from flask_restx import Namespace, fields

from fathom import db
from fathom.api.v1.models.envelope import get_error_envelope_model, make_success_envelope_model
from fathom.api.v1.resources.base import BaseResource
from fathom.api.v1.resources.decorators import api_login_required
from fathom.constants.system_constants import ErrorMessages, SuccessMessages
from fathom.errors import AuthenticationError, AuthorizationError, ValidationError
from fathom.repositories.users_repository import UsersRepository
from fathom.utils.time_utils import time_utils

ns = Namespace("auth", description="认证")

ErrorEnvelope = get_error_envelope_model(ns)

LoginPayload = ns.model(
    "LoginPayload",
    {
        "username": fields.String(required=True, description="用户名", example="alice"),
        "password": fields.String(required=True, description="密码", example="your_password"),
    },
)

AuthUserData = ns.model(
    "AuthUserData",
    {
        "id": fields.Integer(description="用户 ID", example=1),
        "username": fields.String(description="用户名", example="alice"),
        "role": fields.String(description="角色(admin/owner/member/viewer)", example="member"),
        "team_id": fields.Integer(description="所属团队", example=1),
        "is_active": fields.Boolean(description="是否启用", example=True),
    },
)
LoginSuccessEnvelope = make_success_envelope_model(ns, "LoginSuccessEnvelope", AuthUserData)
MeSuccessEnvelope = make_success_envelope_model(ns, "MeSuccessEnvelope", AuthUserData)
EmptySuccessEnvelope = make_success_envelope_model(ns, "EmptySuccessEnvelope")


def _parse_payload() -> Any:
    if request.is_json:
        payload = request.get_json(silent=True)
        return payload if isinstance(payload, dict) else {}
    return request.form


def _user_data(user: Any) -> dict[str, Any]:
    return {
        "id": user.id,
        "username": user.username,
        "role": user.role,
        "team_id": user.team_id,
        "is_active": user.is_active,
    }


@ns.route("/login")
class LoginResource(BaseResource):
    @ns.expect(LoginPayload, validate=False)
    @ns.response(200, "OK", LoginSuccessEnvelope)
    @ns.response(400, "Bad Request", ErrorEnvelope)
    @ns.response(401, "Unauthorized", ErrorEnvelope)
    @ns.response(403, "Forbidden", ErrorEnvelope)
    def post(self):
        payload = _parse_payload()
        username = (payload.get("username") or "").strip()
        password = payload.get("password")

        if not username or not password:
            raise ValidationError(message="用户名和密码不能为空")

        user = UsersRepository.get_by_username(username)
        if user is None or not user.check_password(password):
            raise AuthenticationError(
                message=ErrorMessages.INVALID_CREDENTIALS,
                message_key="INVALID_CREDENTIALS",
            )
        if not user.is_active:
            raise AuthorizationError(
                message=ErrorMessages.ACCOUNT_DISABLED,
                message_key="ACCOUNT_DISABLED",
            )

        login_user(user, remember=True)
        user.last_login = time_utils.now()
        db.session.commit()
        return self.success(data=_user_data(user), message=SuccessMessages.LOGIN_SUCCESS)


@ns.route("/logout")
class LogoutResource(BaseResource):
    @ns.response(200, "OK", EmptySuccessEnvelope)
    @ns.response(401, "Unauthorized", ErrorEnvelope)
    @api_login_required
    def post(self):
        logout_user()
        return self.success(message=SuccessMessages.LOGOUT_SUCCESS)


@ns.route("/me")
class MeResource(BaseResource):
    @ns.response(200, "OK", MeSuccessEnvelope)
    @ns.response(401, "Unauthorized", ErrorEnvelope)
    @api_login_required
    def get(self):
        return self.success(data=_user_data(current_user))
