"""Wiring between settings and the task engine.

Workflow builders take a `Fleet` (what hosts exist and how the project is laid
out on them); tasks execute against an `ExecutionEnvironment` (how commands
reach the hosts, plus the shared store).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from host_task_orchestrator.orchestrator.config import OrchestratorSettings
from host_task_orchestrator.orchestrator.hosts import HostInventory
from host_task_orchestrator.orchestrator.remote.executor import SSHExecutor
from host_task_orchestrator.orchestrator.task.context import ExecutionEnvironment
from host_task_orchestrator.orchestrator.task.memstorage import MemStorage
from host_task_orchestrator.orchestrator.topology import ProjectLayout

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Fleet:
    inventory: HostInventory
    layout: ProjectLayout
    container_engine: str = "docker"
    fstab_path: str = "/etc/fstab"

    @classmethod
    def from_settings(cls, settings: OrchestratorSettings) -> Fleet:
        inventory = HostInventory.load(settings.hosts_file)
        logger.info(
            "Fleet loaded",
            extra={"hosts_file": str(settings.hosts_file), "hosts": inventory.names()},
        )
        return cls(
            inventory=inventory,
            layout=settings.layout,
            container_engine=settings.container_engine,
            fstab_path=settings.fstab_path,
        )


def build_environment(
    settings: OrchestratorSettings, *, storage: MemStorage | None = None
) -> ExecutionEnvironment:
    executor = SSHExecutor(
        timeout_seconds=settings.command_timeout_seconds,
        connect_timeout_seconds=settings.ssh_connect_timeout_seconds,
    )
    return ExecutionEnvironment(executor=executor, storage=storage or MemStorage())
