"""远程命令执行传输层.

所有引擎操作最终都变成一段 shell 脚本,经 SSH 在数据库所在主机上执行.
超时由传输层统一负责,不做重试.
"""

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from flask import current_app, has_app_context

from fathom.errors import RemoteExecutionError
from fathom.settings import DEFAULT_REMOTE_COMMAND_TIMEOUT_SECONDS, DEFAULT_SSH_BINARY, DEFAULT_SSH_CONNECT_TIMEOUT_SECONDS
from fathom.utils.structlog_config import get_logger

if TYPE_CHECKING:
    from fathom.models.server import Server

logger = get_logger("remote_execution")

SSH_FAILURE_EXIT_CODE = 255


class RemoteExecutionTransport(Protocol):
    """远程命令执行协议."""

    def run(self, command_lines: list[str], server: Server, interactive: bool = False) -> str | None:
        """在主机上执行命令并返回标准输出."""
        ...


class SshCommandTransport:
    """基于系统 ssh 客户端的传输实现.

    Attributes:
        ssh_binary: ssh 可执行文件.
        connect_timeout: SSH 建连超时(秒).
        command_timeout: 单次命令整体超时(秒).
        key_dir: 私钥目录.

    """

    def __init__(
        self,
        *,
        ssh_binary: str = DEFAULT_SSH_BINARY,
        connect_timeout: int = DEFAULT_SSH_CONNECT_TIMEOUT_SECONDS,
        command_timeout: int = DEFAULT_REMOTE_COMMAND_TIMEOUT_SECONDS,
        key_dir: str | None = None,
    ) -> None:
        self.ssh_binary = ssh_binary
        self.connect_timeout = connect_timeout
        self.command_timeout = command_timeout
        self.key_dir = key_dir

    @classmethod
    def from_config(cls) -> SshCommandTransport:
        """从当前应用配置构建,无应用上下文时使用默认值."""
        if not has_app_context():
            return cls()
        config = current_app.config
        return cls(
            ssh_binary=str(config.get("REMOTE_SSH_BINARY", DEFAULT_SSH_BINARY)),
            connect_timeout=int(config.get("REMOTE_SSH_CONNECT_TIMEOUT", DEFAULT_SSH_CONNECT_TIMEOUT_SECONDS)),
            command_timeout=int(config.get("REMOTE_COMMAND_TIMEOUT", DEFAULT_REMOTE_COMMAND_TIMEOUT_SECONDS)),
            key_dir=config.get("REMOTE_SSH_KEY_DIR"),
        )

    def build_argv(self, script: str, server: Server) -> list[str]:
        """组装 ssh 调用参数;本机主机直接交给 bash."""
        if server.runs_locally():
            return ["bash", "-c", script]

        argv = [
            self.ssh_binary,
            "-o",
            "BatchMode=yes",
            "-o",
            "StrictHostKeyChecking=accept-new",
            "-o",
            f"ConnectTimeout={self.connect_timeout}",
            "-p",
            str(server.port),
        ]
        if server.private_key_name and self.key_dir:
            argv.extend(["-i", str(Path(self.key_dir) / server.private_key_name)])
        argv.extend([f"{server.user}@{server.ip}", script])
        return argv

    def run(self, command_lines: list[str], server: Server, interactive: bool = False) -> str | None:
        """执行命令.

        Args:
            command_lines: 依次执行的命令行,以换行拼接为单个脚本.
            server: 目标主机.
            interactive: 是否需要 TTY,为真时追加 `-t`.

        Returns:
            标准输出文本,无输出时返回空串.

        Raises:
            RemoteExecutionError: ssh 失败(退出码 255)、超时或无法启动进程.

        """
        script = "\n".join(command_lines)
        argv = self.build_argv(script, server)
        if interactive and not server.runs_locally():
            argv.insert(1, "-t")

        try:
            completed = subprocess.run(  # noqa: S603
                argv,
                capture_output=True,
                text=True,
                timeout=self.command_timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as exc:
            logger.warning("远程命令执行超时", module="remote_execution", server=server.name, timeout=self.command_timeout)
            raise RemoteExecutionError(f"Command timed out after {self.command_timeout}s") from exc
        except OSError as exc:
            logger.warning("远程命令无法启动", module="remote_execution", server=server.name, error_message=str(exc))
            raise RemoteExecutionError(str(exc)) from exc

        if completed.returncode == SSH_FAILURE_EXIT_CODE and not server.runs_locally():
            stderr = (completed.stderr or "").strip()
            logger.warning("SSH 连接失败", module="remote_execution", server=server.name, stderr=stderr[:200])
            raise RemoteExecutionError(stderr or f"SSH connection to {server.ip} failed")

        return completed.stdout or ""


_transport: RemoteExecutionTransport | None = None


def get_transport() -> RemoteExecutionTransport:
    """返回进程级默认传输实现."""
    if _transport is not None:
        return _transport
    return SshCommandTransport.from_config()


def set_transport(transport: RemoteExecutionTransport | None) -> None:
    """替换进程级默认传输实现,传入 None 恢复为 SSH."""
    global _transport  # noqa: PLW0603
    _transport = transport


__all__ = ["RemoteExecutionTransport", "SshCommandTransport", "get_transport", "set_transport"]
