"""Fathom 定时任务调度器.

使用 APScheduler 周期采集受管数据库指标,并通过文件锁控制单实例运行.
"""

from __future__ import annotations

import atexit
import os
from collections.abc import Callable
from importlib import import_module
from pathlib import Path
from typing import IO, TYPE_CHECKING, Any

import yaml
from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED, JobExecutionEvent
from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.jobstores.base import JobLookupError
from apscheduler.jobstores.sqlalchemy import SQLAlchemyJobStore
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.base import BaseTrigger
from apscheduler.triggers.cron import CronTrigger
from sqlalchemy.exc import SQLAlchemyError
from yaml import YAMLError

try:
    import fcntl  # type: ignore[attr-defined]
except ImportError:  # pragma: no cover - Windows 环境不会加载
    fcntl = None

from fathom.schemas.yaml_configs import SchedulerTaskConfig, SchedulerTasksConfigFile
from fathom.settings import PROJECT_ROOT
from fathom.utils.structlog_config import get_system_logger

if TYPE_CHECKING:
    from apscheduler.job import Job
    from flask import Flask

logger = get_system_logger()

JobFunc = Callable[..., object]
TriggerArg = BaseTrigger | str

SCHEDULER_TIMEZONE = "UTC"
USERDATA_DIR = PROJECT_ROOT / "userdata"
JOBSTORE_PATH = USERDATA_DIR / "scheduler.db"
LOCK_PATH = USERDATA_DIR / "scheduler.lock"


class _SchedulerLockState:
    """记录调度器文件锁的句柄与所属进程."""

    def __init__(self) -> None:
        self.handle: IO[str] | None = None
        self.pid: int | None = None


_LOCK_STATE = _SchedulerLockState()

LOCK_IO_EXCEPTIONS: tuple[type[BaseException], ...] = (OSError,)
JOB_REMOVAL_EXCEPTIONS: tuple[type[BaseException], ...] = (JobLookupError, LookupError)
JOBSTORE_OPERATION_EXCEPTIONS: tuple[type[BaseException], ...] = (
    SQLAlchemyError,
    JobLookupError,
    LookupError,
    RuntimeError,
)
SCHEDULER_INIT_EXCEPTIONS: tuple[type[BaseException], ...] = (
    OSError,
    SQLAlchemyError,
    RuntimeError,
    LookupError,
    ValueError,
)
DEFAULT_TASK_CREATION_EXCEPTIONS: tuple[type[BaseException], ...] = (
    ValueError,
    LookupError,
    RuntimeError,
    SQLAlchemyError,
    TypeError,
)
CONFIG_IO_EXCEPTIONS: tuple[type[BaseException], ...] = (OSError, YAMLError, ValueError)
CRON_FIELDS = ("second", "minute", "hour", "day", "month", "day_of_week", "year")
TASK_CONFIG_PATH = Path(__file__).resolve().parent / "config" / "scheduler_tasks.yaml"
TASK_FUNCTIONS: dict[str, JobFunc | str] = {
    "collect_database_metrics": "fathom.tasks.database_metrics_tasks:collect_database_metrics",
    "cleanup_database_metrics": "fathom.tasks.database_metrics_tasks:cleanup_database_metrics",
}


def _load_task_callable(function_name: str) -> JobFunc | None:
    """按需加载任务函数,避免在导入阶段触发循环依赖."""
    target = TASK_FUNCTIONS.get(function_name)
    if callable(target):
        return target
    if isinstance(target, str):
        module_path, attr_name = target.split(":", 1)
        module = import_module(module_path)
        func = getattr(module, attr_name)
        TASK_FUNCTIONS[function_name] = func
        return func
    return None


class TaskScheduler:
    """定时任务调度器.

    调度器在首次调用 `start` 时才创建,导入本模块不会触碰 jobstore 文件.
    """

    def __init__(self, app: Flask | None = None) -> None:
        self.app = app
        self._scheduler: BackgroundScheduler | None = None

    @property
    def scheduler(self) -> BackgroundScheduler:
        if self._scheduler is None:
            self._scheduler = self._setup_scheduler()
        return self._scheduler

    def _setup_scheduler(self) -> BackgroundScheduler:
        """配置 APScheduler 并注册事件监听.

        使用 userdata 下的 SQLite 作为 jobstore,线程池执行任务,
        同一任务不并发、错过的触发合并为一次.

        Returns:
            BackgroundScheduler: 尚未启动的调度器.

        """
        USERDATA_DIR.mkdir(parents=True, exist_ok=True)
        database_url = f"sqlite:///{JOBSTORE_PATH.absolute()}"

        jobstores = {"default": SQLAlchemyJobStore(url=database_url)}
        executors = {"default": ThreadPoolExecutor(max_workers=5)}
        job_defaults = {
            "coalesce": True,
            "max_instances": 1,
            "misfire_grace_time": 300,
        }

        scheduler = BackgroundScheduler(
            jobstores=jobstores,
            executors=executors,
            job_defaults=job_defaults,
            timezone=SCHEDULER_TIMEZONE,
        )
        scheduler.add_listener(self._job_executed, EVENT_JOB_EXECUTED)
        scheduler.add_listener(self._job_error, EVENT_JOB_ERROR)
        return scheduler

    def _job_executed(self, event: JobExecutionEvent) -> None:
        logger.info("任务执行成功", job_id=event.job_id, retval=str(event.retval))

    def _job_error(self, event: JobExecutionEvent) -> None:
        exception_str = str(event.exception) if event.exception else "未知错误"
        logger.error("任务执行失败", job_id=event.job_id, error=exception_str)

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def start(self) -> None:
        """启动调度器,已运行时仅记录告警."""
        if not self.scheduler.running:
            self.scheduler.start()
            logger.info("定时任务调度器已启动", timezone=SCHEDULER_TIMEZONE)
        else:
            logger.warning("定时任务调度器已经在运行,跳过启动")

    def stop(self) -> None:
        """停止调度器."""
        if self.running:
            self.scheduler.shutdown()
            logger.info("定时任务调度器已停止")

    def add_job(self, func: JobFunc, trigger: TriggerArg, **kwargs: object) -> Job:
        """向调度器注册任务.

        Args:
            func: 需要调度的可调用对象.
            trigger: APScheduler 触发器或触发器名称.
            **kwargs: 传递给 `scheduler.add_job` 的其它参数,如 id/name.

        Returns:
            Job: APScheduler 新建任务对象.

        """
        return self.scheduler.add_job(func, trigger, **kwargs)

    def remove_job(self, job_id: str) -> None:
        try:
            self.scheduler.remove_job(job_id)
            logger.info("任务已删除", job_id=job_id)
        except JOB_REMOVAL_EXCEPTIONS as remove_error:
            logger.exception("删除任务失败", job_id=job_id, error=str(remove_error))

    def get_jobs(self) -> list[Job]:
        return self.scheduler.get_jobs()

    def get_job(self, job_id: str) -> Job | None:
        return self.scheduler.get_job(job_id)


# 全局调度器实例
scheduler = TaskScheduler()


def get_scheduler() -> TaskScheduler:
    """获取全局调度器包装实例."""
    return scheduler


def _acquire_scheduler_lock() -> bool:
    """尝试获取文件锁,确保单进程运行调度器.

    Returns:
        bool: 成功获取锁返回 True,否则返回 False.

    """
    if fcntl is None:
        logger.warning("当前平台不支持fcntl,无法加文件锁,可能存在多个调度器实例并发运行")
        return True

    current_pid = os.getpid()

    if _LOCK_STATE.handle:
        if _LOCK_STATE.pid == current_pid:
            return True
        # fork 出的子进程继承了句柄,但并未持有锁
        try:  # pragma: no cover
            _LOCK_STATE.handle.close()
        except LOCK_IO_EXCEPTIONS as close_error:
            logger.warning("继承的调度器锁句柄关闭失败", error=str(close_error))
        _LOCK_STATE.handle = None
        _LOCK_STATE.pid = None

    LOCK_PATH.parent.mkdir(parents=True, exist_ok=True)
    handle = LOCK_PATH.open("w+")
    try:
        fcntl.flock(handle, fcntl.LOCK_EX | fcntl.LOCK_NB)
    except BlockingIOError:
        handle.close()
        logger.info("检测到其他进程正在运行调度器,跳过当前进程的调度器初始化")
        return False
    except LOCK_IO_EXCEPTIONS as lock_error:  # pragma: no cover
        handle.close()
        logger.exception("获取调度器锁失败", error=str(lock_error))
        return False
    else:
        handle.write(str(current_pid))
        handle.flush()
        _LOCK_STATE.handle = handle
        _LOCK_STATE.pid = current_pid
        logger.info("调度器锁已获取,当前进程负责运行定时任务", pid=current_pid)
        return True


def _release_scheduler_lock() -> None:
    """释放调度器文件锁并清理句柄."""
    if fcntl is None or not _LOCK_STATE.handle:
        return
    try:  # pragma: no cover
        fcntl.flock(_LOCK_STATE.handle, fcntl.LOCK_UN)
    except LOCK_IO_EXCEPTIONS as unlock_error:
        logger.warning("释放调度器文件锁失败", error=str(unlock_error))
    try:  # pragma: no cover
        _LOCK_STATE.handle.close()
    except LOCK_IO_EXCEPTIONS as close_error:
        logger.warning("关闭调度器锁文件失败", error=str(close_error))
    finally:
        _LOCK_STATE.handle = None
        _LOCK_STATE.pid = None


atexit.register(_release_scheduler_lock)


def _should_start_scheduler(app: Flask) -> bool:
    """根据应用配置及进程角色判断是否需启动调度器.

    Args:
        app: Flask 应用实例,读取 ENABLE_SCHEDULER 与 TESTING.

    Returns:
        bool: True 表示可以启动,False 表示跳过.

    """
    if not app.config.get("ENABLE_SCHEDULER", True):
        logger.info("检测到调度器禁用标记,跳过初始化")
        return False

    if app.config.get("TESTING"):
        logger.info("测试环境不启动调度器")
        return False

    server_software = os.environ.get("SERVER_SOFTWARE", "")
    if server_software.startswith("gunicorn"):
        logger.info("检测到 gunicorn 环境,通过文件锁保持单实例", parent_pid=os.getppid())

    # Flask reloader: 只有子进程 (WERKZEUG_RUN_MAIN=true) 才运行调度器
    if os.environ.get("FLASK_RUN_FROM_CLI") == "true":
        reloader_flag = os.environ.get("WERKZEUG_RUN_MAIN")
        if reloader_flag not in ("true", "1"):
            logger.info("检测到 Flask reloader 父进程,跳过调度器初始化")
            return False

    return True


def init_scheduler(app: Flask) -> TaskScheduler | None:
    """初始化调度器(仅在允许的进程中启动).

    Args:
        app: Flask 应用实例,任务执行时在其上下文中访问数据库.

    Returns:
        TaskScheduler | None: 初始化成功时返回 TaskScheduler,否则返回 None.

    """
    if not _should_start_scheduler(app):
        return None

    if not _acquire_scheduler_lock():
        return None

    if scheduler.app is not None:
        logger.warning("调度器已经初始化过,跳过重复初始化")
        return scheduler

    try:
        scheduler.app = app
        scheduler.start()
        _load_existing_jobs()
        _load_tasks_from_config(app)
    except SCHEDULER_INIT_EXCEPTIONS as init_error:
        logger.exception("调度器初始化失败", error=str(init_error))
        return None
    else:
        logger.info("调度器初始化完成")
        return scheduler


def _load_existing_jobs() -> None:
    """记录 SQLite jobstore 中恢复出的既有任务."""
    if not scheduler.running:
        logger.warning("调度器未启动,跳过加载现有任务")
        return
    try:
        existing_jobs = scheduler.get_jobs()
    except JOBSTORE_OPERATION_EXCEPTIONS as load_error:
        logger.exception("获取任务列表失败", error=str(load_error))
        return

    if not existing_jobs:
        logger.info("SQLite数据库中没有找到任务")
        return
    logger.info("从SQLite数据库加载既有任务完成", job_count=len(existing_jobs))
    for job in existing_jobs:
        logger.info("加载任务配置", job_name=job.name, job_id=job.id)


def _load_tasks_from_config(app: Flask) -> None:
    """按配置文件同步默认任务.

    jobstore 中恢复出的同 id 任务按当前配置替换,被禁用的任务从 jobstore 移除.
    """
    try:
        task_configs = read_default_task_configs()
    except FileNotFoundError:
        logger.exception("配置文件不存在,无法加载默认任务", config_file=str(TASK_CONFIG_PATH))
        return
    except CONFIG_IO_EXCEPTIONS as config_error:
        logger.exception("读取配置文件失败", config_file=str(TASK_CONFIG_PATH), error=str(config_error))
        return

    for task_config in task_configs:
        _register_task_from_config(app, task_config)

    logger.info("默认定时任务已同步")


def read_default_task_configs(path: Path | None = None) -> list[SchedulerTaskConfig]:
    """读取并校验调度任务配置.

    Raises:
        ValueError: 配置结构不合法时抛出(pydantic ValidationError).

    """
    with (path or TASK_CONFIG_PATH).open(encoding="utf-8") as config_buffer:
        raw = yaml.safe_load(config_buffer) or {}
    return SchedulerTasksConfigFile.model_validate(raw).default_tasks


def resolve_trigger_params(app: Flask, task_config: SchedulerTaskConfig) -> dict[str, Any]:
    """合并静态触发参数与来自应用配置的间隔.

    `interval_setting` 指向 app.config 中以分钟为单位的配置项,存在时覆盖
    `trigger_params.minutes`.
    """
    trigger_params = dict(task_config.trigger_params)
    setting_key = task_config.interval_setting
    if setting_key and app.config.get(setting_key):
        trigger_params["minutes"] = int(app.config[setting_key])
    return trigger_params


def is_task_enabled(app: Flask, task_config: SchedulerTaskConfig) -> bool:
    if not task_config.enabled:
        return False
    setting_key = task_config.enabled_setting
    return bool(app.config.get(setting_key, True)) if setting_key else True


def _register_task_from_config(app: Flask, task_config: SchedulerTaskConfig) -> None:
    """根据配置注册单个任务,已存在的同 id 任务被替换."""
    task_id = task_config.id
    task_name = task_config.name
    if not is_task_enabled(app, task_config):
        _remove_disabled_job(task_id, task_name)
        return

    func = _load_task_callable(task_config.function)
    if not func:
        logger.warning("未知的任务函数", function_name=task_config.function)
        return

    trigger_params = resolve_trigger_params(app, task_config)
    try:
        _schedule_job(func, task_id, task_name, task_config.trigger_type, trigger_params)
        logger.info("添加调度任务", task_name=task_name, task_id=task_id, trigger_params=trigger_params)
    except DEFAULT_TASK_CREATION_EXCEPTIONS as error:
        logger.exception("创建调度任务失败", task_name=task_name, task_id=task_id, error=str(error))


def _remove_disabled_job(task_id: str, task_name: str) -> None:
    """任务被配置禁用时,移除 jobstore 中残留的同 id 任务."""
    try:
        existing_job = scheduler.get_job(task_id)
    except JOBSTORE_OPERATION_EXCEPTIONS as query_error:
        logger.exception("检查现有任务失败", task_id=task_id, error=str(query_error))
        return
    if existing_job is None:
        logger.info("任务未启用,跳过注册", task_id=task_id)
        return
    scheduler.remove_job(task_id)
    logger.info("任务未启用,已移除既有任务", task_name=task_name, task_id=task_id)


def _schedule_job(
    func: JobFunc,
    task_id: str,
    task_name: str,
    trigger_type: str,
    trigger_params: dict[str, Any],
) -> None:
    """将任务注册到调度器."""
    if trigger_type == "cron":
        trigger = build_cron_trigger(trigger_params)
        scheduler.add_job(func, trigger, id=task_id, name=task_name, replace_existing=True)
        return
    scheduler.add_job(func, trigger_type, id=task_id, name=task_name, replace_existing=True, **trigger_params)


def build_cron_trigger(trigger_params: dict[str, Any]) -> CronTrigger:
    """构建 CronTrigger,只传入配置中出现的字段."""
    cron_kwargs: dict[str, Any] = {field: trigger_params[field] for field in CRON_FIELDS if field in trigger_params}
    cron_kwargs["timezone"] = SCHEDULER_TIMEZONE
    return CronTrigger(**cron_kwargs)


__all__ = [
    "TASK_FUNCTIONS",
    "TaskScheduler",
    "build_cron_trigger",
    "get_scheduler",
    "init_scheduler",
    "is_task_enabled",
    "read_default_task_configs",
    "resolve_trigger_params",
    "scheduler",
]
