"""Host inventory.

The inventory is a JSON file holding a list of hosts:

    [
      {"host": "node1", "hostname": "10.0.0.1", "user": "curve",
       "ssh_port": 22, "private_key_file": "~/.ssh/id_rsa"}
    ]

`host` is the identifier used on the command line and in workflow requests;
`hostname` is the address the remote executor connects to.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from host_task_orchestrator.orchestrator.errors import (
    ERR_HOST_NOT_FOUND,
    ERR_INVALID_HOSTS_FILE,
)

logger = logging.getLogger(__name__)


class HostConfig(BaseModel):
    """Connection parameters for a single host."""

    model_config = ConfigDict(frozen=True)

    host: str
    hostname: str
    user: str = Field(default="root")
    ssh_port: int = Field(default=22, ge=1, le=65535)
    private_key_file: str | None = Field(default=None)
    become_user: str | None = Field(
        default=None,
        description="Run remote commands through `sudo -u` as this user",
    )

    @field_validator("host", "hostname")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value.strip()

    @property
    def is_local(self) -> bool:
        return self.hostname in {"localhost", "127.0.0.1", "::1"}


class HostInventory:
    """In-memory view of the hosts file."""

    def __init__(self, hosts: list[HostConfig]) -> None:
        self._hosts = {h.host: h for h in hosts}

    @classmethod
    def load(cls, path: Path) -> HostInventory:
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise ERR_INVALID_HOSTS_FILE.format(path=path, reason=e) from e

        if not isinstance(raw, list):
            raise ERR_INVALID_HOSTS_FILE.format(path=path, reason="expected a list of hosts")

        try:
            hosts = [HostConfig.model_validate(item) for item in raw]
        except ValidationError as e:
            raise ERR_INVALID_HOSTS_FILE.format(path=path, reason=e.errors()[0]["msg"]) from e

        logger.debug("Host inventory loaded", extra={"path": str(path), "hosts": len(hosts)})
        return cls(hosts)

    def get(self, host: str) -> HostConfig:
        config = self._hosts.get(host.strip())
        if config is None:
            raise ERR_HOST_NOT_FOUND.format(host=host)
        return config

    def names(self) -> list[str]:
        return sorted(self._hosts)
