"""Orchestrator components.

- Settings loaded from .env
- Structured logging
- Host inventory and project layout
- The task/step engine and the shared store
- Workflow builders and the CLI
"""
