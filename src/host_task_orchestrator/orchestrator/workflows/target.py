"""Register an iSCSI target for a volume through the target daemon container."""

from __future__ import annotations

from pydantic import BaseModel, Field

from host_task_orchestrator.orchestrator.errors import (
    ERR_ADD_TARGET_FAILED,
    ERR_TARGET_DAEMON_NOT_RUNNING,
)
from host_task_orchestrator.orchestrator.fleet import Fleet
from host_task_orchestrator.orchestrator.scripts import SCRIPT_TARGET
from host_task_orchestrator.orchestrator.task.commands import (
    ContainerExec,
    InstallFile,
    ListContainers,
)
from host_task_orchestrator.orchestrator.task.context import Ref, TaskContext
from host_task_orchestrator.orchestrator.task.outcome import StepOutcome
from host_task_orchestrator.orchestrator.task.step import Lambda, LambdaFn
from host_task_orchestrator.orchestrator.task.task import Task

TARGET_DAEMON_CONTAINER_NAME = "curvebs-target-daemon"

SLOT_DAEMON_IDS = "target.daemon_ids"
SLOT_DAEMON_ID = "target.daemon_id"
SLOT_OUTPUT = "target.output"


class TargetRequest(BaseModel):
    host: str
    user: str
    volume: str
    size_gb: int = Field(gt=0)
    create: bool = Field(default=False)


def check_target_daemon(host: str) -> LambdaFn:
    def check(ctx: TaskContext) -> StepOutcome | None:
        ids = ctx.get_str(SLOT_DAEMON_IDS).split()
        if not ids:
            return StepOutcome.fail(
                ERR_TARGET_DAEMON_NOT_RUNNING.format(
                    host=host, container_name=TARGET_DAEMON_CONTAINER_NAME
                )
            )
        ctx.set(SLOT_DAEMON_ID, ids[0])
        return None

    return check


def new_add_target_task(fleet: Fleet, request: TargetRequest) -> Task:
    host = fleet.inventory.get(request.host)
    engine = fleet.container_engine
    script_path = fleet.layout.target_script_path

    subtitle = (
        f"host={request.host} user={request.user} volume={request.volume} "
        f"create={str(request.create).lower()} size={request.size_gb}GB"
    )
    task = Task("Add Target", subtitle, host)

    task.add_step(
        ListContainers(
            filter=f"name={TARGET_DAEMON_CONTAINER_NAME}",
            show_all=False,
            out=SLOT_DAEMON_IDS,
            engine=engine,
        )
    )
    task.add_step(
        Lambda(
            check_target_daemon(request.host),
            name="check target daemon",
            reads=(SLOT_DAEMON_IDS,),
            writes=(SLOT_DAEMON_ID,),
        )
    )
    task.add_step(
        InstallFile(
            container_id=Ref(SLOT_DAEMON_ID),
            dest_path=script_path,
            content=SCRIPT_TARGET,
            engine=engine,
        )
    )
    task.add_step(
        ContainerExec(
            container_id=Ref(SLOT_DAEMON_ID),
            command=(
                "bash",
                script_path,
                request.user,
                request.volume,
                str(request.create).lower(),
                str(request.size_gb),
            ),
            out=SLOT_OUTPUT,
            error=ERR_ADD_TARGET_FAILED,
            engine=engine,
            name="add target",
        )
    )
    return task
