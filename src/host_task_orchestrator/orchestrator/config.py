"""Configuration for the host task orchestrator.

Configuration is loaded from:
- environment variables
- and a local `.env` file (if present)
"""

from __future__ import annotations

from pathlib import Path

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from host_task_orchestrator.orchestrator.topology import DEFAULT_PROJECT_ROOT, ProjectLayout


class OrchestratorSettings(BaseSettings):
    """Settings for the orchestrator.

    Environment variables:
    - LOG_LEVEL                              (optional)
    - ORCHESTRATOR_HOSTS_FILE                (optional)
    - ORCHESTRATOR_CONTAINER_ENGINE          (optional)
    - ORCHESTRATOR_PROJECT_ROOT              (optional)
    - ORCHESTRATOR_FSTAB_PATH                (optional)
    - ORCHESTRATOR_SSH_CONNECT_TIMEOUT_SECONDS (optional)
    - ORCHESTRATOR_COMMAND_TIMEOUT_SECONDS   (optional)

    Notes:
        Pydantic-settings supports overriding the env file in tests via:
        `OrchestratorSettings(_env_file=path_to_env)`.
    """

    log_level: str = Field(
        default="INFO",
        validation_alias="LOG_LEVEL",
        description="Root logging level",
    )

    hosts_file: Path = Field(
        default=Path("hosts.json"),
        validation_alias="ORCHESTRATOR_HOSTS_FILE",
        description="JSON host inventory",
    )

    container_engine: str = Field(
        default="docker",
        validation_alias="ORCHESTRATOR_CONTAINER_ENGINE",
        description="Container engine CLI on the target hosts (docker, podman, ...)",
    )

    project_root: str = Field(
        default=DEFAULT_PROJECT_ROOT,
        validation_alias="ORCHESTRATOR_PROJECT_ROOT",
        description="Project root inside the service containers",
    )

    fstab_path: str = Field(
        default="/etc/fstab",
        validation_alias="ORCHESTRATOR_FSTAB_PATH",
        description="Path of the filesystem table on the target hosts",
    )

    ssh_connect_timeout_seconds: float = Field(
        default=10,
        gt=0,
        validation_alias="ORCHESTRATOR_SSH_CONNECT_TIMEOUT_SECONDS",
        description="Timeout for opening an SSH connection to a host",
    )

    command_timeout_seconds: float | None = Field(
        default=None,
        validation_alias="ORCHESTRATOR_COMMAND_TIMEOUT_SECONDS",
        description="Per-command timeout enforced by the remote executor (unset means none)",
    )

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )

    @model_validator(mode="after")
    def _validate(self) -> OrchestratorSettings:
        if not self.container_engine.strip():
            raise ValueError("ORCHESTRATOR_CONTAINER_ENGINE must not be empty")
        if self.command_timeout_seconds is not None and self.command_timeout_seconds <= 0:
            raise ValueError("ORCHESTRATOR_COMMAND_TIMEOUT_SECONDS must be positive")
        return self

    @property
    def layout(self) -> ProjectLayout:
        """Filesystem layout derived from the project root."""

        return ProjectLayout.from_root(self.project_root)
