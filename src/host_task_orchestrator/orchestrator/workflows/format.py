"""Format a device into a chunkfile pool.

The task, in order:

1. skip if the work container for this device already exists
2. optionally create the backing volume (an existing volume is fine)
3. capture the current UUID, umount, mkdir, mkfs, mount, edit fstab
4. pull the image, create the work container, install the format script,
   start the container

The work container name is derived from the device path, so repeated or
concurrent submissions for the same device resolve to the same container. By
default the whole sequence holds a lock scoped to (host, device), so two
submissions for the same device cannot both pass the existence check.
"""

from __future__ import annotations

import hashlib
import logging
from collections.abc import Sequence

from pydantic import BaseModel, Field

from host_task_orchestrator.orchestrator.errors import (
    ERR_INVALID_DISK_SPEC,
    ERR_NOT_A_BLOCK_DEVICE,
)
from host_task_orchestrator.orchestrator.fleet import Fleet
from host_task_orchestrator.orchestrator.scripts import SCRIPT_FORMAT
from host_task_orchestrator.orchestrator.task.commands import (
    BlockId,
    CreateContainer,
    CreateDirectory,
    CreateFilesystem,
    CreateVolume,
    InstallFile,
    ListContainers,
    MountFilesystem,
    PullImage,
    StartContainer,
    UmountFilesystem,
    Volume,
)
from host_task_orchestrator.orchestrator.task.context import Ref, TaskContext
from host_task_orchestrator.orchestrator.task.outcome import StepOutcome
from host_task_orchestrator.orchestrator.task.step import CompositeStep, Lambda, LambdaFn, Step
from host_task_orchestrator.orchestrator.task.task import Task
from host_task_orchestrator.orchestrator.topology import DEFAULT_CHUNKFILE_SIZE
from host_task_orchestrator.orchestrator.workflows.fstab import (
    SIGNATURE_NOT_A_BLOCK_DEVICE,
    is_valid_uuid,
    new_edit_fstab_step,
)

logger = logging.getLogger(__name__)

FORMAT_CONTAINER_PREFIX = "curvebs-format-"

SLOT_OLD_CONTAINER_ID = "format.old_container_id"
SLOT_PROBED_UUID = "format.probed_uuid"
SLOT_PROBED_UUID_OK = "format.probed_uuid_ok"
SLOT_OLD_UUID = "format.old_uuid"
SLOT_CONTAINER_ID = "format.container_id"


class VolumeRequest(BaseModel):
    """A volume to create before formatting."""

    user: str
    name: str
    size_gb: int = Field(gt=0)
    create: bool = Field(default=True)


class FormatRequest(BaseModel):
    """What to format, where, and with which image."""

    host: str
    device: str
    mount_point: str
    format_percent: int = Field(ge=1, le=100)
    container_image: str
    volume: VolumeRequest | None = Field(default=None)


def device_to_container_name(device: str) -> str:
    digest = hashlib.md5(device.encode("utf-8"), usedforsecurity=False).hexdigest()
    return FORMAT_CONTAINER_PREFIX + digest


def parse_disk_spec(spec: str) -> tuple[str, str, int]:
    """Parse `DEVICE:MOUNT_POINT:PERCENT`, e.g. `/dev/sdb:/data/chunkserver0:90`."""

    parts = [p.strip() for p in spec.split(":")]
    if len(parts) != 3 or not all(parts):
        raise ERR_INVALID_DISK_SPEC.format(spec=spec)

    device, mount_point, percent_raw = parts
    if not device.startswith("/") or not mount_point.startswith("/"):
        raise ERR_INVALID_DISK_SPEC.format(spec=spec, reason="paths must be absolute")
    try:
        percent = int(percent_raw.rstrip("%"))
    except ValueError:
        raise ERR_INVALID_DISK_SPEC.format(spec=spec, reason="percent is not a number") from None
    if not 1 <= percent <= 100:
        raise ERR_INVALID_DISK_SPEC.format(spec=spec, reason="percent must be in 1..100")
    return device, mount_point, percent


def build_format_requests(
    *, hosts: Sequence[str], disks: Sequence[str], container_image: str
) -> list[FormatRequest]:
    """One request per host and disk, hosts first."""

    parsed = [parse_disk_spec(d) for d in disks]
    return [
        FormatRequest(
            host=host,
            device=device,
            mount_point=mount_point,
            format_percent=percent,
            container_image=container_image,
        )
        for host in hosts
        for device, mount_point, percent in parsed
    ]


def skip_format(container_id_slot: str) -> LambdaFn:
    def check(ctx: TaskContext) -> StepOutcome | None:
        container_id = ctx.get_str(container_id_slot)
        if container_id:
            return StepOutcome.skip(f"format container already exists: {container_id}")
        return None

    return check


def capture_old_uuid(host: str, device: str) -> LambdaFn:
    """Keep the probed UUID only if it is one; reject non-block devices early."""

    def capture(ctx: TaskContext) -> StepOutcome | None:
        probed = ctx.get_str(SLOT_PROBED_UUID)
        if SIGNATURE_NOT_A_BLOCK_DEVICE in probed:
            return StepOutcome.fail(ERR_NOT_A_BLOCK_DEVICE.format(host=host, device=device))
        ok = bool(ctx.get(SLOT_PROBED_UUID_OK))
        ctx.set(SLOT_OLD_UUID, probed if ok and is_valid_uuid(probed) else "")
        return None

    return capture


def new_format_chunkfile_pool_task(
    fleet: Fleet, request: FormatRequest, *, lock_device: bool = True
) -> Task:
    host = fleet.inventory.get(request.host)
    device = request.device
    mount_point = request.mount_point
    usage_percent = request.format_percent
    engine = fleet.container_engine
    layout = fleet.layout

    subtitle = (
        f"host={request.host} device={device} mountPoint={mount_point} usage={usage_percent}%"
    )
    task = Task("Start Format Chunkfile Pool", subtitle, host)

    container_name = device_to_container_name(device)
    format_script_path = layout.format_script_path
    format_command = " ".join(
        [
            format_script_path,
            layout.format_binary_path,
            str(usage_percent),
            str(DEFAULT_CHUNKFILE_SIZE),
            layout.chunkfile_pool_dir,
            layout.chunkfile_pool_meta_path,
        ]
    )

    steps: list[Step] = []

    # 1: skip if the format container exists
    steps.append(
        ListContainers(
            filter=f"name={container_name}",
            show_all=True,
            out=SLOT_OLD_CONTAINER_ID,
            engine=engine,
        )
    )
    steps.append(
        Lambda(
            skip_format(SLOT_OLD_CONTAINER_ID),
            name="skip if formatting",
            reads=(SLOT_OLD_CONTAINER_ID,),
        )
    )

    # 2: volume
    if request.volume is not None and request.volume.create:
        steps.append(
            CreateVolume(
                user=request.volume.user,
                volume=request.volume.name,
                size_gb=request.volume.size_gb,
                ignore_exists=True,
                ops_tool=layout.ops_tool,
            )
        )

    # 3: mkfs, mount device, edit fstab
    steps.append(
        BlockId(
            device=device,
            out=SLOT_PROBED_UUID,
            success_out=SLOT_PROBED_UUID_OK,
            name="capture old uuid",
        )
    )
    steps.append(
        Lambda(
            capture_old_uuid(request.host, device),
            name="check block device",
            reads=(SLOT_PROBED_UUID, SLOT_PROBED_UUID_OK),
            writes=(SLOT_OLD_UUID,),
        )
    )
    steps.append(
        UmountFilesystem(directories=(device,), ignore_umounted=True, ignore_not_found=True)
    )
    steps.append(CreateDirectory(paths=(mount_point,)))
    steps.append(CreateFilesystem(device=device))
    steps.append(MountFilesystem(source=device, directory=mount_point))
    steps.append(
        new_edit_fstab_step(
            host=host,
            device=device,
            mount_point=mount_point,
            old_uuid=Ref(SLOT_OLD_UUID),
            fstab_path=fleet.fstab_path,
        )
    )

    # 4: run container to format chunkfile pool
    steps.append(PullImage(image=request.container_image, engine=engine))
    steps.append(
        CreateContainer(
            image=request.container_image,
            container_name=container_name,
            command=format_command,
            entrypoint="/bin/bash",
            remove=True,
            volumes=(Volume(host_path=mount_point, container_path=layout.chunkfile_pool_root_dir),),
            out=SLOT_CONTAINER_ID,
            engine=engine,
        )
    )
    steps.append(
        InstallFile(
            container_id=Ref(SLOT_CONTAINER_ID),
            dest_path=format_script_path,
            content=SCRIPT_FORMAT,
            engine=engine,
        )
    )
    steps.append(StartContainer(container_id=Ref(SLOT_CONTAINER_ID), engine=engine))

    if lock_device:
        task.add_step(
            CompositeStep(name="format device", steps=steps, scope=("format", host.host, device))
        )
    else:
        for step in steps:
            task.add_step(step)

    logger.debug(
        "Format task built",
        extra={"host": request.host, "device": device, "container_name": container_name},
    )
    return task
