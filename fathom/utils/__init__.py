"""Fathom 通用工具包."""
