"""Transport used by command steps: run a command on a host, get exit code and output."""

from host_task_orchestrator.orchestrator.remote.executor import (
    CommandResult,
    LocalExecutor,
    RemoteExecutor,
    SSHExecutor,
)

__all__ = ["CommandResult", "LocalExecutor", "RemoteExecutor", "SSHExecutor"]
