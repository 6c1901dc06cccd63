"""密码管理工具
用于加密存储受管数据库的凭据字段.
"""

from __future__ import annotations

import base64
import binascii
import os
from functools import lru_cache

from cryptography.fernet import Fernet, InvalidToken
from flask import current_app, has_app_context


class PasswordManager:
    """密码管理器.

    使用 Fernet 对称加密算法加密和解密数据库凭据.

    Attributes:
        key: 加密密钥(bytes).
        cipher: Fernet 加密器实例.

    Example:
        >>> manager = PasswordManager(Fernet.generate_key())
        >>> encrypted = manager.encrypt_password("my_password")
        >>> manager.decrypt_password(encrypted)
        'my_password'

    """

    def __init__(self, key: bytes) -> None:
        self.key = key
        self.cipher = Fernet(self.key)

    def encrypt_password(self, password: str) -> str:
        """加密密码.

        Args:
            password: 原始密码

        Returns:
            str: 加密后的密码,空密码返回空串

        """
        if not password:
            return ""

        encrypted = self.cipher.encrypt(password.encode())
        return base64.b64encode(encrypted).decode()

    def decrypt_password(self, encrypted_password: str) -> str:
        """解密密码.

        Args:
            encrypted_password: 加密后的密码

        Returns:
            str: 原始密码,无法解密时返回空串

        """
        if not encrypted_password:
            return ""

        try:
            encrypted = base64.b64decode(encrypted_password.encode())
            return self.cipher.decrypt(encrypted).decode()
        except (InvalidToken, binascii.Error, ValueError) as exc:
            from fathom.utils.structlog_config import get_system_logger  # noqa: PLC0415

            get_system_logger().warning("密码解密失败", module="password_manager", error_type=exc.__class__.__name__)
            return ""


def _resolve_key() -> str:
    if has_app_context():
        configured = current_app.config.get("PASSWORD_ENCRYPTION_KEY")
        if configured:
            return str(configured)
    return os.getenv("PASSWORD_ENCRYPTION_KEY", "")


@lru_cache(maxsize=4)
def _build_password_manager(key: str) -> PasswordManager:
    if not key:
        from fathom.utils.structlog_config import get_system_logger  # noqa: PLC0415

        get_system_logger().warning("没有设置PASSWORD_ENCRYPTION_KEY,使用进程内临时密钥", module="password_manager")
        return PasswordManager(Fernet.generate_key())
    return PasswordManager(key.encode())


def get_password_manager() -> PasswordManager:
    """获取密码管理器实例.

    优先使用应用配置中的 PASSWORD_ENCRYPTION_KEY,同一密钥复用同一实例.

    Returns:
        PasswordManager: 管理器实例.

    """
    return _build_password_manager(_resolve_key())


__all__ = ["PasswordManager", "get_password_manager"]
