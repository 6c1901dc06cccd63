"""API v1 Resource 基类与装饰器."""
