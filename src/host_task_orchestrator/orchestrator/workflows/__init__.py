"""Workflow builders: each assembles one Task from steps in a fixed order."""

from host_task_orchestrator.orchestrator.workflows.format import (
    FormatRequest,
    VolumeRequest,
    build_format_requests,
    device_to_container_name,
    new_format_chunkfile_pool_task,
    parse_disk_spec,
)
from host_task_orchestrator.orchestrator.workflows.fstab import new_edit_fstab_step
from host_task_orchestrator.orchestrator.workflows.target import (
    TargetRequest,
    new_add_target_task,
)

__all__ = [
    "FormatRequest",
    "TargetRequest",
    "VolumeRequest",
    "build_format_requests",
    "device_to_container_name",
    "new_add_target_task",
    "new_edit_fstab_step",
    "new_format_chunkfile_pool_task",
    "parse_disk_spec",
]
