"""Test configuration and fixtures."""

from __future__ import annotations

import logging
import threading
import time
import uuid
from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field
from datetime import date

import pytest

from host_task_orchestrator.orchestrator.fleet import Fleet
from host_task_orchestrator.orchestrator.hosts import HostConfig, HostInventory
from host_task_orchestrator.orchestrator.remote.executor import CommandResult
from host_task_orchestrator.orchestrator.task.context import ExecutionEnvironment
from host_task_orchestrator.orchestrator.task.memstorage import MemStorage
from host_task_orchestrator.orchestrator.topology import ProjectLayout

FSTAB = "/etc/fstab"
TODAY = date(2025, 1, 2)


@dataclass
class FakeContainer:
    id: str
    name: str
    image: str
    args: tuple[str, ...]
    running: bool = False
    files: dict[str, str] = field(default_factory=dict)


class FakeHost:
    """In-memory stand-in for the hosts behind a `RemoteExecutor`.

    Understands the handful of commands the steps emit (blkid, umount, mkdir,
    mkfs, mount, cp, sed, sh, docker, the ops tool) and records every call.
    """

    def __init__(self, *, latency: float = 0.0) -> None:
        self.latency = latency
        self.files: dict[str, str] = {FSTAB: "# /etc/fstab: static file system information.\n"}
        self.devices: dict[str, str] = {}
        self.mounts: dict[str, str] = {}
        self.directories: set[str] = set()
        self.images: set[str] = set()
        self.containers: dict[str, FakeContainer] = {}
        self.volumes: set[tuple[str, str]] = set()
        self.calls: list[tuple[str, tuple[str, ...]]] = []
        self._failures: list[tuple[tuple[str, ...], CommandResult]] = []
        self._lock = threading.RLock()
        self._next_id = 0
        self.closed = False

    # --- test helpers -----------------------------------------------------

    @property
    def commands(self) -> list[tuple[str, ...]]:
        return [argv for _, argv in self.calls]

    def programs(self) -> list[str]:
        """First word of each command, with the docker subcommand attached."""

        out = []
        for argv in self.commands:
            out.append(f"docker {argv[1]}" if argv[0] == "docker" else argv[0])
        return out

    def fail_on(self, *prefix: str, exit_code: int = 1, stdout: str = "", stderr: str = "") -> None:
        self._failures.append((prefix, CommandResult(exit_code, stdout, stderr)))

    def add_container(self, name: str, *, running: bool = False, image: str = "img") -> str:
        with self._lock:
            container = self._new_container(name, image, ())
            container.running = running
            return container.id

    def fstab_lines(self) -> list[str]:
        return [line for line in self.files[FSTAB].splitlines() if line.strip()]

    # --- executor protocol -----------------------------------------------

    def run(self, host: HostConfig, argv: Sequence[str], *, input: str | None = None) -> CommandResult:
        argv = tuple(argv)
        if self.latency:
            time.sleep(self.latency)
        with self._lock:
            self.calls.append((host.host, argv))
            for prefix, result in self._failures:
                if argv[: len(prefix)] == prefix:
                    return result
            return self._dispatch(argv, input)

    def close(self) -> None:
        self.closed = True

    # --- command emulation ------------------------------------------------

    def _dispatch(self, argv: tuple[str, ...], input: str | None) -> CommandResult:
        program = argv[0]
        if program == "blkid":
            return self._blkid(argv[-1])
        if program == "umount":
            return self._umount(argv[1])
        if program == "mkdir":
            self.directories.update(a for a in argv[1:] if a != "-p")
            return CommandResult(0)
        if program.startswith("mkfs."):
            return self._mkfs(argv[-1])
        if program == "mount":
            return self._mount(argv[-2], argv[-1])
        if program == "cp":
            return self._cp(argv)
        if program == "sed":
            return self._sed(argv)
        if program == "sh":
            return self._sh(argv, input)
        if program == "rm":
            self.files.pop(argv[-1], None)
            return CommandResult(0)
        if program == "docker":
            return self._docker(argv[1], argv[2:])
        if program == "curve_ops_tool":
            return self._ops_tool(argv[1:])
        return CommandResult(127, "", f"{program}: command not found")

    def _sh(self, argv: tuple[str, ...], input: str | None) -> CommandResult:
        script = argv[2]
        if script == 'cat > "$1"':
            self.files[argv[-1]] = input or ""
            return CommandResult(0)
        if 'printf "%s\\n" "$1" >> "$2"' in script:
            line, path = argv[-2], argv[-1]
            content = self.files.get(path, "")
            if content and not content.endswith("\n"):
                content += "\n"
            self.files[path] = content + line + "\n"
            return CommandResult(0)
        return CommandResult(2, "", f"sh: unsupported script: {script}")

    def _blkid(self, device: str) -> CommandResult:
        if self.devices.get(device):
            return CommandResult(0, self.devices[device] + "\n")
        if device in self.files:
            return CommandResult(2, "", f"{device}: not a block device")
        return CommandResult(2)

    def _umount(self, target: str) -> CommandResult:
        for device, directory in list(self.mounts.items()):
            if target in (device, directory):
                del self.mounts[device]
                return CommandResult(0)
        if target in self.devices or target in self.directories:
            return CommandResult(32, "", f"umount: {target}: not mounted.")
        return CommandResult(32, "", f"umount: {target}: no mount point specified.")

    def _mkfs(self, device: str) -> CommandResult:
        if device not in self.devices:
            return CommandResult(1, "", f"The file {device} does not exist and no size was specified.")
        self.devices[device] = str(uuid.uuid4())
        return CommandResult(0, "Creating filesystem with 4096 4k blocks\n")

    def _mount(self, source: str, directory: str) -> CommandResult:
        if source not in self.devices:
            return CommandResult(32, "", f"mount: {directory}: special device {source} does not exist.")
        if directory not in self.directories:
            return CommandResult(32, "", f"mount: {directory}: mount point does not exist.")
        self.mounts[source] = directory
        return CommandResult(0)

    def _cp(self, argv: tuple[str, ...]) -> CommandResult:
        no_clobber = "-n" in argv
        source, dest = argv[-2], argv[-1]
        if source not in self.files:
            return CommandResult(1, "", f"cp: cannot stat '{source}': No such file or directory")
        if no_clobber and dest in self.files:
            return CommandResult(1, "", f"cp: not replacing '{dest}'")
        self.files[dest] = self.files[source]
        return CommandResult(0)

    def _sed(self, argv: tuple[str, ...]) -> CommandResult:
        expressions: list[str] = []
        files: list[str] = []
        args = iter(argv[1:])
        for arg in args:
            if arg == "-i":
                continue
            if arg == "-e":
                expressions.append(next(args))
            else:
                files.append(arg)

        for path in files:
            if path not in self.files:
                return CommandResult(2, "", f"sed: can't read {path}: No such file or directory")
            lines = self.files[path].splitlines()
            for expression in expressions:
                if expression.startswith("/") and expression.endswith("/d"):
                    pattern = expression[1:-2]
                    lines = [line for line in lines if pattern not in line]
                else:
                    return CommandResult(1, "", f"sed: -e expression: unknown command: {expression}")
            self.files[path] = "".join(f"{line}\n" for line in lines)
        return CommandResult(0)

    def _new_container(self, name: str, image: str, args: tuple[str, ...]) -> FakeContainer:
        self._next_id += 1
        container = FakeContainer(id=f"{self._next_id:012x}", name=name, image=image, args=args)
        self.containers[container.id] = container
        return container

    def _docker(self, sub: str, args: tuple[str, ...]) -> CommandResult:
        if sub == "ps":
            show_all = "--all" in args
            wanted = args[args.index("--filter") + 1].removeprefix("name=")
            ids = [
                c.id
                for c in self.containers.values()
                if wanted in c.name and (show_all or c.running)
            ]
            return CommandResult(0, "".join(f"{i}\n" for i in ids))
        if sub == "pull":
            self.images.add(args[0])
            return CommandResult(0, f"{args[0]}: Pulling from library\n")
        if sub == "create":
            return self._docker_create(args)
        if sub == "cp":
            source, target = args
            container_id, dest = target.split(":", 1)
            if container_id not in self.containers:
                return CommandResult(1, "", f"Error: No such container:path: {target}")
            self.containers[container_id].files[dest] = self.files[source]
            return CommandResult(0)
        if sub == "start":
            container = self.containers.get(args[0])
            if container is None:
                return CommandResult(1, "", f"Error: No such container: {args[0]}")
            container.running = True
            return CommandResult(0, f"{args[0]}\n")
        if sub == "exec":
            container = self.containers.get(args[0])
            if container is None or not container.running:
                return CommandResult(1, "", f"Error: container {args[0]} is not running")
            return CommandResult(0)
        return CommandResult(125, "", f"docker: '{sub}' is not a docker command.")

    def _docker_create(self, args: tuple[str, ...]) -> CommandResult:
        name = args[args.index("--name") + 1]
        if any(c.name == name for c in self.containers.values()):
            return CommandResult(125, "", f'Conflict. The container name "/{name}" is already in use')
        rest = list(args)
        positional: list[str] = []
        while rest:
            arg = rest.pop(0)
            if arg in ("--name", "--entrypoint", "--volume"):
                rest.pop(0)
            elif arg == "--rm":
                continue
            else:
                positional.append(arg)
        container = self._new_container(name, positional[0], tuple(positional[1:]))
        return CommandResult(0, f"{container.id}\n")

    def _ops_tool(self, args: tuple[str, ...]) -> CommandResult:
        options = dict(a.lstrip("-").split("=", 1) for a in args[1:])
        key = (options["userName"], options["fileName"])
        if key in self.volumes:
            return CommandResult(255, "CreateFile fail with errCode: 101\n")
        self.volumes.add(key)
        return CommandResult(0)


@pytest.fixture(autouse=True)
def restore_root_logging() -> Iterator[None]:
    """Undo `configure_logging` calls made by a test."""

    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def fake_host() -> FakeHost:
    return FakeHost()


@pytest.fixture
def host() -> HostConfig:
    return HostConfig(host="node1", hostname="10.0.0.1", user="curve")


@pytest.fixture
def env(fake_host: FakeHost) -> ExecutionEnvironment:
    return ExecutionEnvironment(executor=fake_host, storage=MemStorage(), today=lambda: TODAY)


@pytest.fixture
def fleet(host: HostConfig) -> Fleet:
    inventory = HostInventory([host, HostConfig(host="node2", hostname="10.0.0.2")])
    return Fleet(inventory=inventory, layout=ProjectLayout.from_root("/curvebs"))
