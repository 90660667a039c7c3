"""Shell scripts installed into containers and invoked with positional arguments."""

from host_task_orchestrator.orchestrator.scripts.format import FORMAT
from host_task_orchestrator.orchestrator.scripts.target import TARGET

SCRIPT_FORMAT: str = FORMAT
SCRIPT_TARGET: str = TARGET

__all__ = ["SCRIPT_FORMAT", "SCRIPT_TARGET"]
