"""定时任务模块集合.

为避免循环导入,此包不在导入时触发实际任务加载,具体任务由调度器按需导入.
"""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from fathom.tasks import database_metrics_tasks

__all__ = ["database_metrics_tasks"]
