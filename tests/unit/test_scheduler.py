"""
TaskScheduler 与调度任务配置单元测试
"""

from datetime import timedelta
from types import SimpleNamespace
from unittest.mock import Mock

import pytest
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from fathom.scheduler import (
    TaskScheduler,
    _load_task_callable,
    _load_tasks_from_config,
    build_cron_trigger,
    init_scheduler,
    is_task_enabled,
    read_default_task_configs,
    resolve_trigger_params,
    scheduler,
)
from fathom.schemas.yaml_configs import SchedulerTaskConfig
from fathom.tasks.database_metrics_tasks import cleanup_database_metrics, collect_database_metrics


def _task(**overrides) -> SchedulerTaskConfig:
    values = {
        "id": "collect_database_metrics",
        "name": "采集数据库指标",
        "function": "collect_database_metrics",
        "trigger_type": "interval",
        "trigger_params": {"minutes": 5},
    }
    values.update(overrides)
    return SchedulerTaskConfig.model_validate(values)


@pytest.mark.unit
def test_task_scheduler_is_lazy():
    scheduler = TaskScheduler()
    assert scheduler.app is None
    assert scheduler.running is False


@pytest.mark.unit
def test_add_and_remove_job_delegate_to_apscheduler():
    scheduler = TaskScheduler()
    backend = Mock()
    backend.remove_job.side_effect = JobLookupError("missing")
    scheduler._scheduler = backend

    def job():
        return "ok"

    scheduler.add_job(job, "interval", id="job", minutes=1)
    backend.add_job.assert_called_once_with(job, "interval", id="job", minutes=1)

    scheduler.remove_job("missing")
    backend.remove_job.assert_called_once_with("missing")


@pytest.mark.unit
def test_default_task_configs():
    configs = read_default_task_configs()

    assert [config.id for config in configs] == ["collect_database_metrics", "cleanup_database_metrics"]
    collect, cleanup = configs
    assert collect.interval_setting == "METRICS_COLLECTION_INTERVAL"
    assert collect.enabled_setting == "METRICS_COLLECTION_ENABLED"
    assert cleanup.trigger_type == "cron"


@pytest.mark.unit
def test_task_config_normalizes_null_trigger_params(tmp_path):
    config_file = tmp_path / "tasks.yaml"
    config_file.write_text(
        "default_tasks:\n"
        "  - id: cleanup\n"
        "    name: cleanup\n"
        "    function: cleanup_database_metrics\n"
        "    trigger_type: cron\n"
        "    trigger_params:\n",
        encoding="utf-8",
    )

    (config,) = read_default_task_configs(config_file)
    assert config.trigger_params == {}
    assert config.enabled is True


@pytest.mark.unit
@pytest.mark.parametrize(
    "content",
    [
        "- id: a\n",
        "default_tasks:\n  - id: a\n    name: a\n    function: f\n    trigger_type: weekly\n",
        "default_tasks:\n  - id: a\n    name: a\n    function: f\n    trigger_type: cron\n    trigger_params: [1]\n",
    ],
)
def test_invalid_task_config_raises(tmp_path, content):
    config_file = tmp_path / "tasks.yaml"
    config_file.write_text(content, encoding="utf-8")

    with pytest.raises(ValueError):
        read_default_task_configs(config_file)


@pytest.mark.unit
def test_interval_setting_overrides_minutes():
    app = SimpleNamespace(config={"METRICS_COLLECTION_INTERVAL": 7})
    task = _task(interval_setting="METRICS_COLLECTION_INTERVAL")

    assert resolve_trigger_params(app, task) == {"minutes": 7}
    assert resolve_trigger_params(SimpleNamespace(config={}), task) == {"minutes": 5}


@pytest.mark.unit
def test_is_task_enabled():
    app = SimpleNamespace(config={"METRICS_COLLECTION_ENABLED": False})

    assert is_task_enabled(app, _task()) is True
    assert is_task_enabled(app, _task(enabled=False)) is False
    assert is_task_enabled(app, _task(enabled_setting="METRICS_COLLECTION_ENABLED")) is False


@pytest.mark.unit
def test_build_cron_trigger_uses_utc():
    trigger = build_cron_trigger({"hour": 3, "minute": 30, "unknown": 1})

    assert str(trigger.timezone) == "UTC"
    assert "hour='3'" in str(trigger)
    assert "minute='30'" in str(trigger)


@pytest.mark.unit
def test_load_task_callable():
    assert _load_task_callable("collect_database_metrics") is collect_database_metrics
    assert _load_task_callable("cleanup_database_metrics") is cleanup_database_metrics
    assert _load_task_callable("nope") is None


@pytest.mark.unit
def test_init_scheduler_skips_when_disabled():
    assert init_scheduler(SimpleNamespace(config={"ENABLE_SCHEDULER": False})) is None
    assert init_scheduler(SimpleNamespace(config={"ENABLE_SCHEDULER": True, "TESTING": True})) is None


@pytest.fixture
def paused_backend(monkeypatch):
    """暂停状态的内存调度器,任务写入 jobstore 但不会执行."""
    backend = BackgroundScheduler(timezone="UTC")
    backend.start(paused=True)
    monkeypatch.setattr(scheduler, "_scheduler", backend)
    yield backend
    backend.shutdown(wait=False)


@pytest.mark.unit
def test_config_sync_replaces_persisted_jobs(paused_backend):
    paused_backend.add_job(collect_database_metrics, "interval", id="collect_database_metrics", minutes=5)
    paused_backend.add_job(cleanup_database_metrics, "interval", id="cleanup_database_metrics", hours=1)

    _load_tasks_from_config(SimpleNamespace(config={"METRICS_COLLECTION_INTERVAL": 7}))

    assert sorted(job.id for job in paused_backend.get_jobs()) == ["cleanup_database_metrics", "collect_database_metrics"]
    assert paused_backend.get_job("collect_database_metrics").trigger.interval == timedelta(minutes=7)
    assert isinstance(paused_backend.get_job("cleanup_database_metrics").trigger, CronTrigger)


@pytest.mark.unit
def test_config_sync_removes_disabled_persisted_job(paused_backend):
    paused_backend.add_job(collect_database_metrics, "interval", id="collect_database_metrics", minutes=5)

    _load_tasks_from_config(SimpleNamespace(config={"METRICS_COLLECTION_ENABLED": False}))

    assert paused_backend.get_job("collect_database_metrics") is None
    assert paused_backend.get_job("cleanup_database_metrics") is not None
