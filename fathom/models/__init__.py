"""数据模型模块.

定义团队、用户、远程服务器、各引擎的受管数据库以及指标样本.

主要模型:
- Team: 团队模型
- User: 用户模型
- Server: 远程主机模型
- StandalonePostgresql 等: 每个引擎一张表的受管数据库模型
- DatabaseMetric: 数据库指标样本模型
"""

__all__ = [
    "DatabaseMetric",
    "Server",
    "StandaloneClickhouse",
    "StandaloneDragonfly",
    "StandaloneKeydb",
    "StandaloneMariadb",
    "StandaloneMongodb",
    "StandaloneMysql",
    "StandalonePostgresql",
    "StandaloneRedis",
    "Team",
    "User",
]


def __getattr__(name: str):
    """延迟加载模型, 避免初始化周期引发的循环导入."""

    if name not in __all__:
        msg = f"module 'fathom.models' has no attribute {name}"
        raise AttributeError(msg)

    from importlib import import_module

    module_map = {
        "DatabaseMetric": "fathom.models.database_metric",
        "Server": "fathom.models.server",
        "Team": "fathom.models.team",
        "User": "fathom.models.user",
    }

    module = import_module(module_map.get(name, "fathom.models.standalone_databases"))
    value = getattr(module, name)
    globals()[name] = value
    return value
