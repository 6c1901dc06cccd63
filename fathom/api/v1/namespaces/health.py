"""Health namespace."""

from __future__ import annotations

from flask_restx import Namespace

from fathom.api.v1.models.envelope import make_success_envelope_model
from fathom.api.v1.resources.base import BaseResource
from fathom.utils.time_utils import time_utils

ns = Namespace("health", description="健康检查")

PingSuccessEnvelope = make_success_envelope_model(ns, "PingSuccessEnvelope")


@ns.route("/ping")
class PingResource(BaseResource):
    @ns.response(200, "OK", PingSuccessEnvelope)
    def get(self):
        return self.success(data={"status": "ok", "time": time_utils.now().isoformat()}, message="pong")
