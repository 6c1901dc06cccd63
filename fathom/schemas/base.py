"""Schema 基础设施."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class PayloadSchema(BaseModel):
    """配置与 payload 的基础 schema,默认忽略未知字段."""

    model_config = ConfigDict(extra="ignore")
