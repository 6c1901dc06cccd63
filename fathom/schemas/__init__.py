"""配置与请求体 schema."""
