"""数据访问层(Repository).

只负责 Query 组装与落库,不做序列化、不 commit.
"""
