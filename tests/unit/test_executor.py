"""Unit tests for the remote executors (paramiko and subprocess mocked)."""

from __future__ import annotations

import subprocess
from unittest.mock import Mock

import paramiko
import pytest

from host_task_orchestrator.orchestrator.hosts import HostConfig
from host_task_orchestrator.orchestrator.remote import executor as executor_module
from host_task_orchestrator.orchestrator.remote.executor import (
    SSH_ERROR_EXIT_CODE,
    TIMEOUT_EXIT_CODE,
    CommandResult,
    LocalExecutor,
    SSHExecutor,
)

NODE1 = HostConfig(host="node1", hostname="10.0.0.1", user="curve")


def _streams(stdout: bytes = b"", stderr: bytes = b"", exit_code: int = 0) -> tuple[Mock, Mock, Mock]:
    stdin, out, err = Mock(), Mock(), Mock()
    out.read.return_value = stdout
    out.channel.recv_exit_status.return_value = exit_code
    err.read.return_value = stderr
    return stdin, out, err


def _client(*streams: tuple[Mock, Mock, Mock]) -> Mock:
    client = Mock(spec=paramiko.SSHClient)
    client.exec_command.side_effect = list(streams) or [_streams(b"ok\n")]
    client.get_transport.return_value.is_active.return_value = True
    return client


@pytest.fixture
def fake_run(monkeypatch: pytest.MonkeyPatch) -> Mock:
    run = Mock(return_value=subprocess.CompletedProcess(args=[], returncode=0, stdout="ok\n", stderr=""))
    monkeypatch.setattr(executor_module.subprocess, "run", run)
    return run


def test_ssh_connects_with_host_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("HOME", "/home/op")
    host = HostConfig(
        host="node1",
        hostname="10.0.0.1",
        user="curve",
        ssh_port=2222,
        private_key_file="~/keys/id_rsa",
    )
    client = _client()

    result = SSHExecutor(connect_timeout_seconds=5, client_factory=Mock(return_value=client)).run(
        host, ["mkdir", "-p", "/data/my dir"]
    )

    assert result == CommandResult(exit_code=0, stdout="ok\n", stderr="")
    client.connect.assert_called_once_with(
        hostname="10.0.0.1",
        port=2222,
        username="curve",
        key_filename="/home/op/keys/id_rsa",
        timeout=5,
    )
    assert isinstance(client.set_missing_host_key_policy.call_args.args[0], paramiko.AutoAddPolicy)
    client.exec_command.assert_called_once_with("mkdir -p '/data/my dir'", timeout=None)


def test_ssh_reuses_one_client_per_host() -> None:
    client = _client(_streams(), _streams(), _streams())
    factory = Mock(return_value=client)
    executor = SSHExecutor(client_factory=factory)

    executor.run(NODE1, ["true"])
    executor.run(NODE1, ["true"])
    executor.run(HostConfig(host="node2", hostname="10.0.0.2"), ["true"])

    assert factory.call_count == 2
    assert [c.kwargs["hostname"] for c in client.connect.call_args_list] == ["10.0.0.1", "10.0.0.2"]


def test_ssh_reconnects_when_transport_is_gone() -> None:
    stale, fresh = _client(), _client()
    stale.get_transport.return_value.is_active.return_value = False
    factory = Mock(side_effect=[stale, fresh])
    executor = SSHExecutor(client_factory=factory)

    executor.run(NODE1, ["true"])
    result = executor.run(NODE1, ["true"])

    assert result.ok
    stale.close.assert_called_once_with()
    fresh.connect.assert_called_once()


def test_ssh_passes_input_and_timeout() -> None:
    stdin, stdout, stderr = _streams(b"ok\n")
    client = _client((stdin, stdout, stderr))

    result = SSHExecutor(timeout_seconds=15, client_factory=Mock(return_value=client)).run(
        NODE1, ["sh", "-c", 'cat > "$1"', "sh", "/tmp/f"], input="payload"
    )

    assert result.output == "ok"
    assert client.exec_command.call_args.kwargs["timeout"] == 15
    stdin.write.assert_called_once_with("payload")
    stdin.channel.shutdown_write.assert_called_once_with()


def test_ssh_command_runs_through_sudo_when_become_user_is_set() -> None:
    client = _client()
    host = HostConfig(host="node1", hostname="10.0.0.1", become_user="root")

    SSHExecutor(client_factory=Mock(return_value=client)).run(host, ["umount", "/dev/sdb"])

    assert client.exec_command.call_args.args[0] == "sudo -u root -- umount /dev/sdb"


def test_ssh_reports_exit_status_and_stderr() -> None:
    client = _client(_streams(stderr=b"umount: /dev/sdb: not mounted.\n", exit_code=32))

    result = SSHExecutor(client_factory=Mock(return_value=client)).run(NODE1, ["umount", "/dev/sdb"])

    assert result.exit_code == 32
    assert result.output == "umount: /dev/sdb: not mounted."


def test_ssh_read_timeout_maps_to_exit_code() -> None:
    stdin, stdout, stderr = _streams()
    stdout.read.side_effect = TimeoutError()
    client = _client((stdin, stdout, stderr))

    result = SSHExecutor(timeout_seconds=3, client_factory=Mock(return_value=client)).run(
        NODE1, ["sleep", "10"]
    )

    assert result.exit_code == TIMEOUT_EXIT_CODE
    assert result.output == "command timed out after 3s"
    stdout.channel.close.assert_called_once_with()


def test_ssh_connect_failure_is_reported_and_retried() -> None:
    broken, working = _client(), _client()
    broken.connect.side_effect = paramiko.AuthenticationException("Authentication failed.")
    executor = SSHExecutor(client_factory=Mock(side_effect=[broken, working]))

    failed = executor.run(NODE1, ["true"])
    retried = executor.run(NODE1, ["true"])

    assert failed.exit_code == SSH_ERROR_EXIT_CODE
    assert failed.output == "ssh: Authentication failed."
    broken.close.assert_called_once_with()
    assert retried.ok


def test_ssh_close_closes_every_client() -> None:
    first, second = _client(), _client()
    executor = SSHExecutor(client_factory=Mock(side_effect=[first, second]))
    executor.run(NODE1, ["true"])
    executor.run(HostConfig(host="node2", hostname="10.0.0.2"), ["true"])

    executor.close()

    first.close.assert_called_once_with()
    second.close.assert_called_once_with()


def test_loopback_hosts_run_locally(fake_run: Mock) -> None:
    factory = Mock()
    host = HostConfig(host="self", hostname="localhost")

    SSHExecutor(client_factory=factory).run(host, ["blkid", "/dev/sdb"])

    assert fake_run.call_args.args[0] == ["blkid", "/dev/sdb"]
    factory.assert_not_called()


def test_local_timeout_maps_to_exit_code(monkeypatch: pytest.MonkeyPatch) -> None:
    def slow(cmd: list[str], **kwargs: object) -> None:
        raise subprocess.TimeoutExpired(cmd, 3, output="partial")

    monkeypatch.setattr(executor_module.subprocess, "run", slow)

    result = LocalExecutor(timeout_seconds=3).run(HostConfig(host="h", hostname="localhost"), ["sleep", "10"])

    assert result.exit_code == TIMEOUT_EXIT_CODE
    assert not result.ok
    assert result.output == "partial\ncommand timed out after 3s"


def test_failed_output_combines_streams() -> None:
    result = CommandResult(exit_code=32, stdout="partial\n", stderr="umount: /dev/sdb: not mounted.\n")

    assert result.output == "partial\numount: /dev/sdb: not mounted."
