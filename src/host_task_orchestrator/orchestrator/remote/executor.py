"""Remote command execution.

This intentionally stays a thin wrapper around a paramiko client so command
steps stay free of transport details and tests can swap in a fake executor.
"""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
import threading
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Protocol

import paramiko

from host_task_orchestrator.orchestrator.hosts import HostConfig

logger = logging.getLogger(__name__)

TIMEOUT_EXIT_CODE = 124
# Same code the OpenSSH client exits with when the connection fails.
SSH_ERROR_EXIT_CODE = 255


@dataclass(frozen=True, slots=True)
class CommandResult:
    exit_code: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    @property
    def output(self) -> str:
        """Stdout on success; stdout and stderr combined on failure."""

        if self.ok:
            return self.stdout.strip()
        parts = [p.strip() for p in (self.stdout, self.stderr) if p and p.strip()]
        return "\n".join(parts)


class RemoteExecutor(Protocol):
    """Execute one command on a host and report exit code and output."""

    def run(
        self, host: HostConfig, argv: Sequence[str], *, input: str | None = None
    ) -> CommandResult: ...

    def close(self) -> None:
        """Release connections held by the executor."""
        ...


def _with_become(host: HostConfig, argv: Sequence[str]) -> list[str]:
    if host.become_user:
        return ["sudo", "-u", host.become_user, "--", *argv]
    return list(argv)


def _run_process(
    cmd: list[str], *, input: str | None, timeout: float | None
) -> CommandResult:
    try:
        proc = subprocess.run(
            cmd,
            input=input,
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False,
        )
    except subprocess.TimeoutExpired as e:
        stdout = e.stdout.decode() if isinstance(e.stdout, bytes) else (e.stdout or "")
        return CommandResult(
            exit_code=TIMEOUT_EXIT_CODE,
            stdout=stdout,
            stderr=f"command timed out after {timeout}s",
        )
    return CommandResult(exit_code=proc.returncode, stdout=proc.stdout, stderr=proc.stderr)


class LocalExecutor:
    """Run commands on the machine the orchestrator runs on."""

    def __init__(self, *, timeout_seconds: float | None = None) -> None:
        self._timeout = timeout_seconds

    def run(
        self, host: HostConfig, argv: Sequence[str], *, input: str | None = None
    ) -> CommandResult:
        cmd = _with_become(host, argv)
        logger.debug("Running local command", extra={"host": host.host, "command": shlex.join(cmd)})
        return _run_process(cmd, input=input, timeout=self._timeout)

    def close(self) -> None:
        pass


class SSHExecutor:
    """Run commands over SSH with paramiko, keeping one client per host.

    Hosts whose hostname is a loopback address are executed locally.
    """

    def __init__(
        self,
        *,
        timeout_seconds: float | None = None,
        connect_timeout_seconds: float = 10,
        client_factory: Callable[[], paramiko.SSHClient] = paramiko.SSHClient,
    ) -> None:
        self._timeout = timeout_seconds
        self._connect_timeout = connect_timeout_seconds
        self._client_factory = client_factory
        self._local = LocalExecutor(timeout_seconds=timeout_seconds)
        self._clients: dict[str, paramiko.SSHClient] = {}
        self._lock = threading.Lock()

    def _client(self, host: HostConfig) -> paramiko.SSHClient:
        with self._lock:
            client = self._clients.get(host.host)
            if client is not None:
                transport = client.get_transport()
                if transport is not None and transport.is_active():
                    return client
                client.close()
                del self._clients[host.host]

            client = self._client_factory()
            client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
            key = os.path.expanduser(host.private_key_file) if host.private_key_file else None
            logger.info(
                "Connecting",
                extra={"host": host.host, "hostname": host.hostname, "port": host.ssh_port},
            )
            try:
                client.connect(
                    hostname=host.hostname,
                    port=host.ssh_port,
                    username=host.user,
                    key_filename=key,
                    timeout=self._connect_timeout,
                )
            except BaseException:
                client.close()
                raise
            self._clients[host.host] = client
            return client

    def _forget(self, host: HostConfig) -> None:
        with self._lock:
            client = self._clients.pop(host.host, None)
        if client is not None:
            client.close()

    def run(
        self, host: HostConfig, argv: Sequence[str], *, input: str | None = None
    ) -> CommandResult:
        if host.is_local:
            return self._local.run(host, argv, input=input)

        command = shlex.join(_with_become(host, argv))
        logger.debug("Running remote command", extra={"host": host.host, "command": command})
        try:
            client = self._client(host)
            stdin, stdout, stderr = client.exec_command(command, timeout=self._timeout)
            if input is not None:
                stdin.write(input)
            stdin.channel.shutdown_write()
            try:
                out = stdout.read().decode("utf-8", errors="replace")
                err = stderr.read().decode("utf-8", errors="replace")
            except TimeoutError:
                stdout.channel.close()
                return CommandResult(
                    exit_code=TIMEOUT_EXIT_CODE,
                    stderr=f"command timed out after {self._timeout}s",
                )
            exit_code = stdout.channel.recv_exit_status()
        except (paramiko.SSHException, OSError) as e:
            logger.warning(
                "SSH transport failed", extra={"host": host.host, "error": str(e)}
            )
            self._forget(host)
            return CommandResult(exit_code=SSH_ERROR_EXIT_CODE, stderr=f"ssh: {e}")
        return CommandResult(exit_code=exit_code, stdout=out, stderr=err)

    def close(self) -> None:
        with self._lock:
            clients = list(self._clients.values())
            self._clients.clear()
        for client in clients:
            client.close()
