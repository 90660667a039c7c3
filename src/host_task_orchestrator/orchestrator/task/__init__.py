"""Task/step execution engine.

- `Task`: a host-bound, ordered pipeline of steps
- `StepOutcome`: continue / skip / fail(error)
- `Lambda` and `CompositeStep`: inline logic and locked sub-pipelines
- `MemStorage`: the shared store whose transactions serialise composite steps
- command steps (`commands`): one remote operation each
"""

from host_task_orchestrator.orchestrator.task.context import (
    ExecutionEnvironment,
    Ref,
    TaskContext,
)
from host_task_orchestrator.orchestrator.task.memstorage import MemStorage, SafeMap
from host_task_orchestrator.orchestrator.task.outcome import (
    OutcomeKind,
    StepOutcome,
    TaskResult,
    TaskStatus,
)
from host_task_orchestrator.orchestrator.task.step import CompositeStep, Lambda, Step, run_steps
from host_task_orchestrator.orchestrator.task.task import Task

__all__ = [
    "CompositeStep",
    "ExecutionEnvironment",
    "Lambda",
    "MemStorage",
    "OutcomeKind",
    "Ref",
    "SafeMap",
    "Step",
    "StepOutcome",
    "Task",
    "TaskContext",
    "TaskResult",
    "TaskStatus",
    "run_steps",
]
