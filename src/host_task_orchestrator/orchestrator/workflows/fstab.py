"""Filesystem table edit protocol.

Binds a freshly formatted device (by UUID) to its mount point in the host's
fstab. Several tasks may target the same host concurrently, so the whole
protocol runs as one composite step locked on (host, fstab path):

1. probe the device UUID
2. reject non-block devices and malformed UUIDs
3. back up fstab to a dated path, never overwriting that day's backup
4. compute the deletion expressions and the insertion line
5. delete the previous UUID's record, and any record of the new UUID
6. append the new record (unless suppressed)

Validation happens before the backup so a bad device never touches the file.
"""

from __future__ import annotations

import logging
import re

from host_task_orchestrator.orchestrator.errors import (
    ERR_GET_DEVICE_UUID_FAILED,
    ERR_NOT_A_BLOCK_DEVICE,
)
from host_task_orchestrator.orchestrator.hosts import HostConfig
from host_task_orchestrator.orchestrator.task.commands import AppendLine, BlockId, CopyFile, Sed
from host_task_orchestrator.orchestrator.task.context import Ref, TaskContext
from host_task_orchestrator.orchestrator.task.outcome import StepOutcome
from host_task_orchestrator.orchestrator.task.step import CompositeStep, Lambda, LambdaFn

logger = logging.getLogger(__name__)

WARNING_EDIT = "GENERATED BY HOST TASK ORCHESTRATOR, DONT EDIT THIS"

SIGNATURE_NOT_A_BLOCK_DEVICE = "not a block device"

# 82511eb8-e4e3-4a50-a736-d584fbf533fa
DEVICE_UUID_PATTERN = re.compile(
    r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"
)

SLOT_UUID = "fstab.uuid"
SLOT_UUID_OK = "fstab.uuid_ok"
SLOT_BACKUP_PATH = "fstab.backup_path"
SLOT_DELETE_OLD = "fstab.delete_old"
SLOT_DELETE_NEW = "fstab.delete_new"
SLOT_RECORD = "fstab.record"


def is_valid_uuid(value: str) -> bool:
    return DEVICE_UUID_PATTERN.match(value) is not None


def check_device_uuid(host: str, device: str, uuid_slot: str, ok_slot: str) -> LambdaFn:
    def check(ctx: TaskContext) -> StepOutcome | None:
        uuid = ctx.get_str(uuid_slot)
        if not ctx.get(ok_slot):
            if SIGNATURE_NOT_A_BLOCK_DEVICE in uuid:
                return StepOutcome.fail(ERR_NOT_A_BLOCK_DEVICE.format(host=host, device=device))
            return StepOutcome.fail(
                ERR_GET_DEVICE_UUID_FAILED.format(host=host, device=device, uuid=uuid)
            )
        if not is_valid_uuid(uuid):
            return StepOutcome.fail(
                ERR_GET_DEVICE_UUID_FAILED.format(host=host, device=device, uuid=uuid)
            )
        return None

    return check


def _backup_path(fstab_path: str) -> LambdaFn:
    def compute(ctx: TaskContext) -> None:
        ctx.set(SLOT_BACKUP_PATH, f"{fstab_path}-{ctx.env.today():%Y-%m-%d}.backup")

    return compute


def _expressions(mount_point: str, old_uuid: str | Ref | None, skip_add: bool) -> LambdaFn:
    def compute(ctx: TaskContext) -> None:
        uuid = ctx.get_str(SLOT_UUID)
        old = ctx.resolve_str(old_uuid) if old_uuid is not None else ""
        if old and not is_valid_uuid(old):
            logger.warning(
                "Ignoring malformed previous uuid",
                extra={"host": ctx.host.host, "old_uuid": old},
            )
            old = ""

        ctx.set(SLOT_DELETE_OLD, f"/UUID={old}/d" if old else "")
        ctx.set(SLOT_DELETE_NEW, f"/UUID={uuid}/d" if not skip_add and uuid != old else "")
        ctx.set(
            SLOT_RECORD,
            f"UUID={uuid}  {mount_point}  ext4  rw,errors=remount-ro  0  0  # {WARNING_EDIT}",
        )

    return compute


def new_edit_fstab_step(
    *,
    host: HostConfig,
    device: str,
    mount_point: str,
    old_uuid: str | Ref | None = None,
    skip_add: bool = False,
    fstab_path: str = "/etc/fstab",
) -> CompositeStep:
    """Build the locked fstab edit for `device` on `host`."""

    composite = CompositeStep(name="edit fstab", scope=("fstab", host.host, fstab_path))
    composite.add_step(BlockId(device=device, out=SLOT_UUID, success_out=SLOT_UUID_OK))
    composite.add_step(
        Lambda(
            check_device_uuid(host.host, device, SLOT_UUID, SLOT_UUID_OK),
            name="check device uuid",
            reads=(SLOT_UUID, SLOT_UUID_OK),
        )
    )
    composite.add_step(
        Lambda(_backup_path(fstab_path), name="backup path", writes=(SLOT_BACKUP_PATH,))
    )
    composite.add_step(
        CopyFile(source=fstab_path, dest=Ref(SLOT_BACKUP_PATH), no_clobber=True, name="backup fstab")
    )

    reads = (SLOT_UUID, old_uuid.key) if isinstance(old_uuid, Ref) else (SLOT_UUID,)
    composite.add_step(
        Lambda(
            _expressions(mount_point, old_uuid, skip_add),
            name="generate fstab record",
            reads=reads,
            writes=(SLOT_DELETE_OLD, SLOT_DELETE_NEW, SLOT_RECORD),
        )
    )
    composite.add_step(
        Sed(
            files=(fstab_path,),
            expressions=(Ref(SLOT_DELETE_OLD), Ref(SLOT_DELETE_NEW)),
            name="remove stale records",
        )
    )
    if not skip_add:
        composite.add_step(
            AppendLine(file=fstab_path, line=Ref(SLOT_RECORD), name="add record")
        )
    return composite
