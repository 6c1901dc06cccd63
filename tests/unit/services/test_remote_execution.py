import subprocess

import pytest

from fathom.errors import RemoteExecutionError
from fathom.models.server import Server
from fathom.services import remote_execution
from fathom.services.remote_execution import SshCommandTransport, get_transport, set_transport


def _server(**overrides) -> Server:
    values = {
        "name": "db-host-1",
        "ip": "10.0.0.5",
        "port": 2222,
        "user": "deploy",
        "is_local": False,
        "is_reachable": True,
        "is_usable": True,
        "private_key_name": None,
    }
    values.update(overrides)
    return Server(**values)


@pytest.mark.unit
def test_build_argv_for_remote_host() -> None:
    transport = SshCommandTransport(connect_timeout=7, key_dir="/keys")
    argv = transport.build_argv("docker ps", _server(private_key_name="id_ed25519"))
    assert argv == [
        "ssh",
        "-o",
        "BatchMode=yes",
        "-o",
        "StrictHostKeyChecking=accept-new",
        "-o",
        "ConnectTimeout=7",
        "-p",
        "2222",
        "-i",
        "/keys/id_ed25519",
        "deploy@10.0.0.5",
        "docker ps",
    ]


@pytest.mark.unit
def test_build_argv_runs_local_host_through_bash() -> None:
    transport = SshCommandTransport()
    argv = transport.build_argv("docker ps", _server(is_local=True, ip="localhost"))
    assert argv == ["bash", "-c", "docker ps"]


@pytest.mark.unit
def test_is_local_flag_requires_loopback_address() -> None:
    assert _server(is_local=True, ip="10.0.0.5").runs_locally() is False
    assert _server(is_local=True, ip="127.0.0.1").runs_locally() is True


@pytest.mark.unit
def test_run_joins_lines_and_returns_stdout(monkeypatch) -> None:
    captured = {}

    def _fake_run(argv, **kwargs):
        captured["argv"] = argv
        captured["timeout"] = kwargs["timeout"]
        return subprocess.CompletedProcess(argv, 0, stdout="ok\n", stderr="")

    monkeypatch.setattr(remote_execution.subprocess, "run", _fake_run)
    transport = SshCommandTransport(command_timeout=15)

    assert transport.run(["echo a", "echo b"], _server(), interactive=True) == "ok\n"
    assert captured["argv"][1] == "-t"
    assert captured["argv"][-1] == "echo a\necho b"
    assert captured["timeout"] == 15


@pytest.mark.unit
def test_run_raises_on_ssh_failure(monkeypatch) -> None:
    monkeypatch.setattr(
        remote_execution.subprocess,
        "run",
        lambda argv, **kwargs: subprocess.CompletedProcess(argv, 255, stdout="", stderr="Connection refused"),
    )
    with pytest.raises(RemoteExecutionError, match="Connection refused"):
        SshCommandTransport().run(["docker ps"], _server())


@pytest.mark.unit
def test_run_keeps_non_ssh_exit_codes(monkeypatch) -> None:
    monkeypatch.setattr(
        remote_execution.subprocess,
        "run",
        lambda argv, **kwargs: subprocess.CompletedProcess(argv, 1, stdout="ERROR: boom", stderr=""),
    )
    assert SshCommandTransport().run(["psql"], _server()) == "ERROR: boom"


@pytest.mark.unit
def test_run_raises_on_timeout(monkeypatch) -> None:
    def _timeout(argv, **kwargs):
        raise subprocess.TimeoutExpired(argv, kwargs["timeout"])

    monkeypatch.setattr(remote_execution.subprocess, "run", _timeout)
    with pytest.raises(RemoteExecutionError, match="timed out after 3s"):
        SshCommandTransport(command_timeout=3).run(["sleep 10"], _server())


@pytest.mark.unit
def test_from_config_reads_app_settings(app) -> None:
    app.config["REMOTE_SSH_CONNECT_TIMEOUT"] = 4
    app.config["REMOTE_COMMAND_TIMEOUT"] = 30
    transport = SshCommandTransport.from_config()
    assert transport.connect_timeout == 4
    assert transport.command_timeout == 30


@pytest.mark.unit
def test_set_transport_overrides_default(monkeypatch, transport) -> None:
    monkeypatch.setattr(remote_execution, "_transport", None)
    set_transport(transport)
    assert get_transport() is transport
    set_transport(None)
    assert isinstance(get_transport(), SshCommandTransport)
