"""Console entrypoint.

The CLI is implemented in `host_task_orchestrator.orchestrator.main`.
"""

from __future__ import annotations

from host_task_orchestrator.orchestrator.main import main

__all__ = ["main"]


if __name__ == "__main__":
    raise SystemExit(main())
