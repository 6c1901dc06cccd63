"""受管数据库管理服务包.

对外入口为 `AdministrationGateway`;各引擎族的命令拼装与输出解析
分别位于 `*_service.py` 中.
"""

from fathom.services.database_metrics.gateway import AdministrationGateway, GatewayResult
from fathom.services.database_metrics.resolver import DatabaseResolver, ResolvedDatabase

__all__ = ["AdministrationGateway", "DatabaseResolver", "GatewayResult", "ResolvedDatabase"]
