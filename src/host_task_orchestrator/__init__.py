"""Host Task Orchestrator.

Turns a declarative description of "what must happen on host H" (format a
device into a chunkfile pool, register an iSCSI target, ...) into an ordered
task of remote commands, with typed errors and locking of shared host state.
"""

__version__ = "0.1.0"

from host_task_orchestrator.orchestrator.config import OrchestratorSettings

__all__ = ["__version__", "OrchestratorSettings"]
