"""YAML 配置文件的 schema(一次性校验/规范化入口).

读取 `fathom/config/*.yaml` 时在入口完成规范化与校验,
下游只消费已规整的 typed config.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from pydantic import Field, field_validator, model_validator

from fathom.schemas.base import PayloadSchema

TRIGGER_TYPES = frozenset({"interval", "cron", "date"})


class SchedulerTaskConfig(PayloadSchema):
    """单条定时任务配置.

    Attributes:
        interval_setting: app.config 中以分钟为单位的配置项,存在时覆盖 `trigger_params.minutes`.
        enabled_setting: app.config 中的布尔开关,为假时不注册该任务.

    """

    id: str
    name: str
    function: str
    trigger_type: str
    trigger_params: dict[str, Any] = Field(default_factory=dict)
    enabled: bool = True
    interval_setting: str | None = None
    enabled_setting: str | None = None

    @field_validator("id", "name", "function", "trigger_type")
    @classmethod
    def _strip_required_text(cls, value: str) -> str:
        if not isinstance(value, str) or not value.strip():
            raise ValueError("字段不能为空")
        return value.strip()

    @field_validator("trigger_type")
    @classmethod
    def _check_trigger_type(cls, value: str) -> str:
        if value not in TRIGGER_TYPES:
            raise ValueError(f"不支持的触发器类型: {value}")
        return value

    @field_validator("trigger_params", mode="before")
    @classmethod
    def _coerce_trigger_params(cls, value: Any) -> Any:
        if value is None:
            return {}
        if not isinstance(value, Mapping):
            raise ValueError("trigger_params 必须为对象")  # noqa: TRY004
        return dict(value)


class SchedulerTasksConfigFile(PayloadSchema):
    """`scheduler_tasks.yaml` 文件结构."""

    default_tasks: list[SchedulerTaskConfig]

    @model_validator(mode="before")
    @classmethod
    def _validate_root(cls, data: Any) -> Any:
        if not isinstance(data, Mapping):
            raise ValueError("配置文件格式错误,必须为 YAML mapping")  # noqa: TRY004
        return data


__all__ = ["SchedulerTaskConfig", "SchedulerTasksConfigFile"]
