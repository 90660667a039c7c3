from __future__ import annotations

import logging
import time

from host_task_orchestrator.orchestrator.hosts import HostConfig
from host_task_orchestrator.orchestrator.task.context import ExecutionEnvironment, TaskContext
from host_task_orchestrator.orchestrator.task.outcome import (
    OutcomeKind,
    TaskResult,
    TaskStatus,
)
from host_task_orchestrator.orchestrator.task.step import (
    Step,
    declared_reads,
    declared_writes,
    run_steps,
    step_name,
)

logger = logging.getLogger(__name__)


class TaskAlreadyStartedError(RuntimeError):
    pass


class Task:
    """A named, host-bound, ordered sequence of steps.

    Steps run strictly in the order they were added. The first step that skips
    or fails ends the run; nothing after it is invoked.
    """

    def __init__(self, name: str, subtitle: str, host: HostConfig) -> None:
        self.name = name
        self.subtitle = subtitle
        self.host = host
        self._steps: list[Step] = []
        self._started = False
        self.result: TaskResult | None = None

    @property
    def steps(self) -> tuple[Step, ...]:
        return tuple(self._steps)

    def add_step(self, step: Step) -> None:
        if self._started:
            raise TaskAlreadyStartedError(f"Task {self.name!r} is already executing")
        self._steps.append(step)

    def unresolved_reads(self, preset: tuple[str, ...] = ()) -> list[tuple[str, str]]:
        """Return (step, slot) pairs read before any earlier step writes them."""

        written = set(preset)
        missing: list[tuple[str, str]] = []
        for step in self._steps:
            missing.extend((step_name(step), k) for k in declared_reads(step) if k not in written)
            written.update(declared_writes(step))
        return missing

    def execute(self, env: ExecutionEnvironment) -> TaskResult:
        if self._started:
            raise TaskAlreadyStartedError(f"Task {self.name!r} has already been executed")
        self._started = True

        ctx = TaskContext(env=env, host=self.host, task_name=self.name)
        started = time.monotonic()
        logger.info(
            "Task started",
            extra={"task": self.name, "subtitle": self.subtitle, "steps": len(self._steps)},
        )

        outcome, invoked = run_steps(self._steps, ctx)

        if outcome.kind is OutcomeKind.FAIL:
            status = TaskStatus.FAILED
        elif outcome.kind is OutcomeKind.SKIP:
            status = TaskStatus.SKIPPED
        else:
            status = TaskStatus.SUCCEEDED

        self.result = TaskResult(
            name=self.name,
            subtitle=self.subtitle,
            status=status,
            steps_run=invoked,
            error=outcome.error,
            reason=outcome.reason,
        )

        log = logger.warning if status is TaskStatus.FAILED else logger.info
        log(
            "Task finished",
            extra={
                "task": self.name,
                "subtitle": self.subtitle,
                "status": status.value,
                "steps_run": invoked,
                "elapsed_seconds": round(time.monotonic() - started, 3),
                "error": str(outcome.error) if outcome.error is not None else None,
            },
        )
        return self.result
