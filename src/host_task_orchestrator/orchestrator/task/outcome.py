from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from host_task_orchestrator.orchestrator.errors import TaskError


class OutcomeKind(str, Enum):
    CONTINUE = "continue"
    SKIP = "skip"
    FAIL = "fail"


@dataclass(frozen=True, slots=True)
class StepOutcome:
    """Result of a single step.

    Skip is not an error: it stops the remaining steps of the task and the task
    is reported as skipped. Fail always carries a catalog error.
    """

    kind: OutcomeKind
    error: TaskError | None = None
    reason: str = ""

    @classmethod
    def proceed(cls) -> StepOutcome:
        return _CONTINUE

    @classmethod
    def skip(cls, reason: str = "") -> StepOutcome:
        return cls(kind=OutcomeKind.SKIP, reason=reason)

    @classmethod
    def fail(cls, error: TaskError) -> StepOutcome:
        return cls(kind=OutcomeKind.FAIL, error=error, reason=error.message)

    @property
    def is_continue(self) -> bool:
        return self.kind is OutcomeKind.CONTINUE


_CONTINUE = StepOutcome(kind=OutcomeKind.CONTINUE)


class TaskStatus(str, Enum):
    SUCCEEDED = "succeeded"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class TaskResult:
    """Terminal outcome of a task, suitable for exit codes and reporting."""

    name: str
    subtitle: str
    status: TaskStatus
    steps_run: int
    error: TaskError | None = None
    reason: str = ""

    @property
    def ok(self) -> bool:
        return self.status is not TaskStatus.FAILED

    def to_json(self) -> dict[str, object]:
        out: dict[str, object] = {
            "name": self.name,
            "subtitle": self.subtitle,
            "status": self.status.value,
            "steps_run": self.steps_run,
        }
        if self.error is not None:
            out["error"] = self.error.to_json()
        if self.reason:
            out["reason"] = self.reason
        return out
