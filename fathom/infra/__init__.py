"""Fathom 基础设施层:请求日志中间件与事务边界助手."""
