"""Per-task execution environment.

Steps never share mutable out-parameters. Instead each task owns a scratchpad
of named slots: a step declares the slots it reads (`Ref("...")` inputs) and
the slot it writes (`out="..."`), and later steps read them back by name.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import date
from typing import TypeVar

from host_task_orchestrator.orchestrator.hosts import HostConfig
from host_task_orchestrator.orchestrator.remote.executor import CommandResult, RemoteExecutor
from host_task_orchestrator.orchestrator.task.memstorage import MemStorage

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class Ref:
    """A reference to a named slot, resolved when the step executes."""

    key: str


@dataclass(slots=True)
class ExecutionEnvironment:
    """Collaborators shared by every task run in this process."""

    executor: RemoteExecutor
    storage: MemStorage = field(default_factory=MemStorage)
    today: Callable[[], date] = date.today


class UnsetSlotError(KeyError):
    """A step read a slot no earlier step has written."""


class TaskContext:
    """What a step sees while executing: host, transport, store and slots."""

    def __init__(self, *, env: ExecutionEnvironment, host: HostConfig, task_name: str) -> None:
        self.env = env
        self.host = host
        self.task_name = task_name
        self._slots: dict[str, object] = {}

    @property
    def storage(self) -> MemStorage:
        return self.env.storage

    def get(self, key: str) -> object:
        if key not in self._slots:
            raise UnsetSlotError(f"slot {key!r} read before it was written (task={self.task_name})")
        return self._slots[key]

    def get_str(self, key: str) -> str:
        value = self.get(key)
        return "" if value is None else str(value)

    def set(self, key: str, value: object) -> None:
        self._slots[key] = value

    def has(self, key: str) -> bool:
        return key in self._slots

    def resolve(self, value: T | Ref) -> T | object:
        if isinstance(value, Ref):
            return self.get(value.key)
        return value

    def resolve_str(self, value: str | Ref) -> str:
        resolved = self.resolve(value)
        return "" if resolved is None else str(resolved)

    def slots(self) -> dict[str, object]:
        return dict(self._slots)

    def run(self, argv: Sequence[str], *, input: str | None = None) -> CommandResult:
        return self.env.executor.run(self.host, argv, input=input)
