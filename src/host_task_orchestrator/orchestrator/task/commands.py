"""Command steps.

Each step wraps exactly one remote operation. Inputs are literals or `Ref`s to
slots written by earlier steps; `out` names the slot a step writes. A non-zero
exit code maps to an operation-specific catalog error unless an idempotency
flag (`ignore_umounted`, `no_clobber`, `ignore_exists`, ...) says the failure
means "already done".
"""

from __future__ import annotations

import logging
import shlex
import uuid
from dataclasses import dataclass, field

from host_task_orchestrator.orchestrator.errors import (
    ERR_CONTAINER_EXEC_FAILED,
    ERR_COPY_FILE_FAILED,
    ERR_CREATE_CONTAINER_FAILED,
    ERR_CREATE_DIRECTORY_FAILED,
    ERR_CREATE_FILESYSTEM_FAILED,
    ERR_CREATE_VOLUME_FAILED,
    ERR_EDIT_FILE_FAILED,
    ERR_GET_DEVICE_UUID_FAILED,
    ERR_INSTALL_FILE_FAILED,
    ERR_LIST_CONTAINERS_FAILED,
    ERR_MOUNT_FILESYSTEM_FAILED,
    ERR_PULL_IMAGE_FAILED,
    ERR_START_CONTAINER_FAILED,
    ERR_UMOUNT_FILESYSTEM_FAILED,
    ErrorCode,
)
from host_task_orchestrator.orchestrator.remote.executor import CommandResult
from host_task_orchestrator.orchestrator.task.context import Ref, TaskContext
from host_task_orchestrator.orchestrator.task.outcome import StepOutcome

logger = logging.getLogger(__name__)

DEFAULT_ENGINE = "docker"

# Output of `curve_ops_tool create` when the volume already exists.
VOLUME_EXISTS_OUTPUT = "CreateFile fail with errCode: 101"

_MAX_OUTPUT_IN_ERROR = 512


def _fail(
    kind: ErrorCode, ctx: TaskContext, result: CommandResult, **fields: object
) -> StepOutcome:
    output = result.output
    if len(output) > _MAX_OUTPUT_IN_ERROR:
        output = output[:_MAX_OUTPUT_IN_ERROR] + "..."
    return StepOutcome.fail(
        kind.format(host=ctx.host.host, **fields, exit_code=result.exit_code, output=output)
    )


@dataclass(frozen=True, slots=True)
class Volume:
    host_path: str
    container_path: str


@dataclass(frozen=True, slots=True)
class BlockId:
    """Query a block device attribute (`blkid -o value -s UUID DEVICE`).

    When `success_out` is set, a failed probe does not fail the step: the
    raw output goes to `out` and the exit status to `success_out`, so a later
    lambda can classify it.
    """

    device: str | Ref
    match_tag: str = "UUID"
    format: str = "value"
    out: str | None = None
    success_out: str | None = None
    name: str = "blkid"

    @property
    def writes(self) -> tuple[str, ...]:
        return tuple(k for k in (self.out, self.success_out) if k)

    def execute(self, ctx: TaskContext) -> StepOutcome:
        device = ctx.resolve_str(self.device)
        result = ctx.run(["blkid", "-o", self.format, "-s", self.match_tag, device])
        if self.out:
            ctx.set(self.out, result.output)
        if self.success_out:
            ctx.set(self.success_out, result.ok)
            return StepOutcome.proceed()
        if not result.ok:
            return _fail(ERR_GET_DEVICE_UUID_FAILED, ctx, result, device=device)
        return StepOutcome.proceed()


@dataclass(frozen=True, slots=True)
class UmountFilesystem:
    directories: tuple[str | Ref, ...]
    ignore_umounted: bool = False
    ignore_not_found: bool = False
    name: str = "umount"

    def execute(self, ctx: TaskContext) -> StepOutcome:
        for target in (ctx.resolve_str(d) for d in self.directories):
            result = ctx.run(["umount", target])
            if result.ok:
                continue
            text = result.output.lower()
            if self.ignore_umounted and "not mounted" in text:
                continue
            if self.ignore_not_found and (
                "no mount point specified" in text
                or "not found" in text
                or "no such file or directory" in text
            ):
                continue
            return _fail(ERR_UMOUNT_FILESYSTEM_FAILED, ctx, result, path=target)
        return StepOutcome.proceed()


@dataclass(frozen=True, slots=True)
class CreateDirectory:
    paths: tuple[str | Ref, ...]
    name: str = "mkdir"

    def execute(self, ctx: TaskContext) -> StepOutcome:
        paths = [ctx.resolve_str(p) for p in self.paths]
        result = ctx.run(["mkdir", "-p", *paths])
        if not result.ok:
            return _fail(ERR_CREATE_DIRECTORY_FAILED, ctx, result, paths=",".join(paths))
        return StepOutcome.proceed()


@dataclass(frozen=True, slots=True)
class CreateFilesystem:
    device: str | Ref
    fs_type: str = "ext4"
    name: str = "mkfs"

    def execute(self, ctx: TaskContext) -> StepOutcome:
        device = ctx.resolve_str(self.device)
        result = ctx.run([f"mkfs.{self.fs_type}", "-F", device])
        if not result.ok:
            return _fail(ERR_CREATE_FILESYSTEM_FAILED, ctx, result, device=device)
        return StepOutcome.proceed()


@dataclass(frozen=True, slots=True)
class MountFilesystem:
    source: str | Ref
    directory: str | Ref
    options: str | None = None
    name: str = "mount"

    def execute(self, ctx: TaskContext) -> StepOutcome:
        source = ctx.resolve_str(self.source)
        directory = ctx.resolve_str(self.directory)
        argv = ["mount"]
        if self.options:
            argv += ["-o", self.options]
        result = ctx.run([*argv, source, directory])
        if not result.ok:
            return _fail(
                ERR_MOUNT_FILESYSTEM_FAILED, ctx, result, source=source, directory=directory
            )
        return StepOutcome.proceed()


@dataclass(frozen=True, slots=True)
class CopyFile:
    source: str | Ref
    dest: str | Ref
    no_clobber: bool = False
    name: str = "cp"

    def execute(self, ctx: TaskContext) -> StepOutcome:
        source = ctx.resolve_str(self.source)
        dest = ctx.resolve_str(self.dest)
        argv = ["cp", "-n", source, dest] if self.no_clobber else ["cp", source, dest]
        result = ctx.run(argv)
        # Newer coreutils report a skipped no-clobber copy with a non-zero exit.
        if result.ok or (self.no_clobber and "not replacing" in result.output):
            return StepOutcome.proceed()
        return _fail(ERR_COPY_FILE_FAILED, ctx, result, source=source, dest=dest)


@dataclass(frozen=True, slots=True)
class Sed:
    """Run sed expressions against files. Empty expressions are dropped."""

    files: tuple[str, ...]
    expressions: tuple[str | Ref, ...]
    in_place: bool = True
    name: str = "sed"

    def execute(self, ctx: TaskContext) -> StepOutcome:
        expressions = [e for e in (ctx.resolve_str(x) for x in self.expressions) if e]
        if not expressions:
            return StepOutcome.proceed()

        argv = ["sed"]
        if self.in_place:
            argv.append("-i")
        for expression in expressions:
            argv += ["-e", expression]
        result = ctx.run([*argv, *self.files])
        if not result.ok:
            return _fail(ERR_EDIT_FILE_FAILED, ctx, result, files=",".join(self.files))
        return StepOutcome.proceed()


# Terminates a last line that lacks a newline, then appends $1 to $2.
_APPEND_LINE_SCRIPT = (
    'if [ -s "$2" ] && [ -n "$(tail -c 1 "$2")" ]; then echo >> "$2"; fi; '
    'printf "%s\\n" "$1" >> "$2"'
)


@dataclass(frozen=True, slots=True)
class AppendLine:
    """Append one line to a file, also when the file is empty.

    `sed '$ a ...'` does nothing on a file without lines, so appends go
    through the shell instead.
    """

    file: str
    line: str | Ref
    name: str = "append line"

    def execute(self, ctx: TaskContext) -> StepOutcome:
        line = ctx.resolve_str(self.line)
        result = ctx.run(["sh", "-c", _APPEND_LINE_SCRIPT, "sh", line, self.file])
        if not result.ok:
            return _fail(ERR_EDIT_FILE_FAILED, ctx, result, files=self.file)
        return StepOutcome.proceed()


@dataclass(frozen=True, slots=True)
class PullImage:
    image: str
    engine: str = DEFAULT_ENGINE
    name: str = "pull image"

    def execute(self, ctx: TaskContext) -> StepOutcome:
        result = ctx.run([self.engine, "pull", self.image])
        if not result.ok:
            return _fail(ERR_PULL_IMAGE_FAILED, ctx, result, image=self.image)
        return StepOutcome.proceed()


@dataclass(frozen=True, slots=True)
class ListContainers:
    """List container IDs matching a filter; writes the (possibly empty) IDs to `out`."""

    filter: str
    show_all: bool = True
    out: str | None = None
    engine: str = DEFAULT_ENGINE
    name: str = "list containers"

    def execute(self, ctx: TaskContext) -> StepOutcome:
        argv = [self.engine, "ps", "--quiet", "--format", "{{.ID}}", "--filter", self.filter]
        if self.show_all:
            argv.insert(2, "--all")
        result = ctx.run(argv)
        if not result.ok:
            return _fail(ERR_LIST_CONTAINERS_FAILED, ctx, result, filter=self.filter)
        if self.out:
            ctx.set(self.out, result.stdout.strip())
        return StepOutcome.proceed()


@dataclass(frozen=True, slots=True)
class CreateContainer:
    """Create (but do not start) a container; writes its ID to `out`."""

    image: str
    container_name: str
    command: str = ""
    entrypoint: str | None = None
    remove: bool = False
    volumes: tuple[Volume, ...] = field(default_factory=tuple)
    out: str | None = None
    engine: str = DEFAULT_ENGINE
    name: str = "create container"

    def execute(self, ctx: TaskContext) -> StepOutcome:
        argv = [self.engine, "create", "--name", self.container_name]
        if self.remove:
            argv.append("--rm")
        if self.entrypoint:
            argv += ["--entrypoint", self.entrypoint]
        for v in self.volumes:
            argv += ["--volume", f"{v.host_path}:{v.container_path}"]
        argv.append(self.image)
        argv += shlex.split(self.command)

        result = ctx.run(argv)
        lines = result.stdout.strip().splitlines()
        if not result.ok or not lines:
            return _fail(
                ERR_CREATE_CONTAINER_FAILED, ctx, result, container_name=self.container_name
            )
        if self.out:
            ctx.set(self.out, lines[-1].strip())
        return StepOutcome.proceed()


@dataclass(frozen=True, slots=True)
class InstallFile:
    """Copy content into a (possibly not yet started) container.

    The content is staged in a temporary file on the host and copied in with
    `<engine> cp`; the staging file is removed afterwards.
    """

    container_id: str | Ref
    dest_path: str
    content: str | Ref
    engine: str = DEFAULT_ENGINE
    name: str = "install file"

    def execute(self, ctx: TaskContext) -> StepOutcome:
        container_id = ctx.resolve_str(self.container_id)
        content = ctx.resolve_str(self.content)
        staging = f"/tmp/hostorch-{uuid.uuid4().hex}"

        result = ctx.run(["sh", "-c", 'cat > "$1"', "sh", staging], input=content)
        if result.ok:
            result = ctx.run([self.engine, "cp", staging, f"{container_id}:{self.dest_path}"])
            cleanup = ctx.run(["rm", "-f", staging])
            if not cleanup.ok:
                logger.warning(
                    "Failed to remove staging file",
                    extra={"host": ctx.host.host, "path": staging},
                )
        if not result.ok:
            return _fail(
                ERR_INSTALL_FILE_FAILED,
                ctx,
                result,
                container_id=container_id,
                dest=self.dest_path,
            )
        return StepOutcome.proceed()


@dataclass(frozen=True, slots=True)
class StartContainer:
    container_id: str | Ref
    engine: str = DEFAULT_ENGINE
    name: str = "start container"

    def execute(self, ctx: TaskContext) -> StepOutcome:
        container_id = ctx.resolve_str(self.container_id)
        result = ctx.run([self.engine, "start", container_id])
        if not result.ok:
            return _fail(ERR_START_CONTAINER_FAILED, ctx, result, container_id=container_id)
        return StepOutcome.proceed()


@dataclass(frozen=True, slots=True)
class ContainerExec:
    """Run a command inside a running container; writes its output to `out`."""

    container_id: str | Ref
    command: tuple[str, ...]
    out: str | None = None
    error: ErrorCode = ERR_CONTAINER_EXEC_FAILED
    engine: str = DEFAULT_ENGINE
    name: str = "exec in container"

    def execute(self, ctx: TaskContext) -> StepOutcome:
        container_id = ctx.resolve_str(self.container_id)
        result = ctx.run([self.engine, "exec", container_id, *self.command])
        if self.out:
            ctx.set(self.out, result.output)
        if not result.ok:
            return _fail(self.error, ctx, result, container_id=container_id)
        return StepOutcome.proceed()


@dataclass(frozen=True, slots=True)
class CreateVolume:
    """Create a volume with the cluster ops tool.

    With `ignore_exists`, the tool's "already exists" answer is not an error.
    """

    user: str
    volume: str
    size_gb: int
    ignore_exists: bool = True
    ops_tool: str = "curve_ops_tool"
    name: str = "create volume"

    def execute(self, ctx: TaskContext) -> StepOutcome:
        result = ctx.run(
            [
                self.ops_tool,
                "create",
                f"-userName={self.user}",
                f"-fileName={self.volume}",
                f"-fileLength={self.size_gb}",
            ]
        )
        if result.ok:
            return StepOutcome.proceed()
        if self.ignore_exists and VOLUME_EXISTS_OUTPUT in (result.stdout.strip(), result.output):
            logger.info(
                "Volume already exists",
                extra={"host": ctx.host.host, "user": self.user, "volume": self.volume},
            )
            return StepOutcome.proceed()
        return _fail(ERR_CREATE_VOLUME_FAILED, ctx, result, user=self.user, volume=self.volume)
