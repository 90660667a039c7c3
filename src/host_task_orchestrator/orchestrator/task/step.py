"""Step protocol, inline lambda steps and composite (locked) steps."""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Callable, Hashable, Sequence
from dataclasses import dataclass, field
from typing import Protocol

from host_task_orchestrator.orchestrator.errors import TaskError
from host_task_orchestrator.orchestrator.task.context import Ref, TaskContext
from host_task_orchestrator.orchestrator.task.outcome import StepOutcome

logger = logging.getLogger(__name__)


class Step(Protocol):
    """One unit of pipeline work.

    A step returns an outcome. Raising a `TaskError` is equivalent to returning
    `StepOutcome.fail(error)`; any other exception propagates to the caller.
    """

    def execute(self, ctx: TaskContext) -> StepOutcome: ...


def step_name(step: Step) -> str:
    name = getattr(step, "name", None)
    return name if isinstance(name, str) and name else type(step).__name__


def declared_reads(step: Step) -> tuple[str, ...]:
    """Slots a step reads: explicit `reads`, or every `Ref` among its fields."""

    explicit = getattr(step, "reads", None)
    if explicit is not None:
        return tuple(explicit)
    if not dataclasses.is_dataclass(step):
        return ()

    keys: list[str] = []
    for f in dataclasses.fields(step):
        value = getattr(step, f.name)
        candidates = value if isinstance(value, (list, tuple)) else (value,)
        keys.extend(v.key for v in candidates if isinstance(v, Ref))
    return tuple(keys)


def declared_writes(step: Step) -> tuple[str, ...]:
    explicit = getattr(step, "writes", None)
    if explicit is not None:
        return tuple(explicit)
    out = getattr(step, "out", None)
    return (out,) if isinstance(out, str) and out else ()


def run_steps(steps: Sequence[Step], ctx: TaskContext) -> tuple[StepOutcome, int]:
    """Run steps in order until one does not continue.

    Returns the deciding outcome and the number of steps that were invoked.
    """

    invoked = 0
    for step in steps:
        invoked += 1
        try:
            outcome = step.execute(ctx)
        except TaskError as e:
            outcome = StepOutcome.fail(e)

        if not outcome.is_continue:
            logger.debug(
                "Step stopped the pipeline",
                extra={
                    "task": ctx.task_name,
                    "step": step_name(step),
                    "outcome": outcome.kind.value,
                    "reason": outcome.reason,
                },
            )
            return outcome, invoked
    return StepOutcome.proceed(), invoked


LambdaFn = Callable[[TaskContext], StepOutcome | None]


@dataclass(frozen=True, slots=True)
class Lambda:
    """Inline logic without remote side effects.

    The function may return None (continue), or an explicit outcome.
    """

    fn: LambdaFn
    name: str = "lambda"
    reads: tuple[str, ...] = ()
    writes: tuple[str, ...] = ()

    def execute(self, ctx: TaskContext) -> StepOutcome:
        outcome = self.fn(ctx)
        return StepOutcome.proceed() if outcome is None else outcome


@dataclass(slots=True)
class CompositeStep:
    """A named sub-pipeline executed under one shared store transaction.

    The outer task only sees the single outcome of the sub-pipeline. The lock
    is released whether the sub-pipeline continues, skips, fails or raises.
    """

    name: str
    steps: list[Step] = field(default_factory=list)
    scope: Hashable | None = None

    def add_step(self, step: Step) -> None:
        self.steps.append(step)

    @property
    def reads(self) -> tuple[str, ...]:
        written: set[str] = set()
        external: list[str] = []
        for step in self.steps:
            external.extend(k for k in declared_reads(step) if k not in written)
            written.update(declared_writes(step))
        return tuple(external)

    @property
    def writes(self) -> tuple[str, ...]:
        return tuple(k for step in self.steps for k in declared_writes(step))

    def execute(self, ctx: TaskContext) -> StepOutcome:
        logger.debug(
            "Entering composite step",
            extra={"task": ctx.task_name, "step": self.name, "scope": repr(self.scope)},
        )
        outcome, _ = ctx.storage.tx(lambda _store: run_steps(self.steps, ctx), scope=self.scope)
        return outcome
