"""Error catalog.

Every failure the task engine reports is an instance of one catalog entry.
Entries are stable (code + description) so callers can branch on the kind,
while the rendered message is enriched with contextual fields at the point of
failure:

    raise ERR_NOT_A_BLOCK_DEVICE.format(host="node1", device="/dev/sdb")

The kind never changes when fields are substituted.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class ErrorCode:
    """A stable error kind with a fixed message template."""

    code: int
    description: str

    def format(self, **fields: object) -> TaskError:
        """Instantiate this kind with contextual fields (host, device, ...)."""

        return TaskError(kind=self, fields=tuple((k, str(v)) for k, v in fields.items()))


@dataclass(frozen=True, slots=True)
class TaskError(Exception):
    """An immutable error instance: catalog kind plus substituted fields."""

    kind: ErrorCode
    fields: tuple[tuple[str, str], ...] = ()

    @property
    def code(self) -> int:
        return self.kind.code

    @property
    def context(self) -> dict[str, str]:
        return dict(self.fields)

    @property
    def message(self) -> str:
        if not self.fields:
            return self.kind.description
        clue = " ".join(f"{k}={v}" for k, v in self.fields)
        return f"{self.kind.description} ({clue})"

    def __str__(self) -> str:
        return f"[{self.kind.code:06d}] {self.message}"

    def to_json(self) -> dict[str, object]:
        return {
            "code": self.kind.code,
            "description": self.kind.description,
            "fields": self.context,
        }


# Configuration / inventory
ERR_HOST_NOT_FOUND = ErrorCode(100001, "host not found in inventory")
ERR_INVALID_HOSTS_FILE = ErrorCode(100002, "invalid hosts file")
ERR_INVALID_DISK_SPEC = ErrorCode(100003, "invalid disk spec, expected DEVICE:MOUNT_POINT:PERCENT")

# Block devices
ERR_GET_DEVICE_UUID_FAILED = ErrorCode(410001, "get device uuid failed or uuid is invalid")
ERR_NOT_A_BLOCK_DEVICE = ErrorCode(410002, "device is not a block device")

# Host shell operations
ERR_REMOTE_COMMAND_FAILED = ErrorCode(620000, "remote command failed")
ERR_UMOUNT_FILESYSTEM_FAILED = ErrorCode(620001, "umount filesystem failed")
ERR_CREATE_DIRECTORY_FAILED = ErrorCode(620002, "create directory failed")
ERR_CREATE_FILESYSTEM_FAILED = ErrorCode(620003, "create filesystem failed")
ERR_MOUNT_FILESYSTEM_FAILED = ErrorCode(620004, "mount filesystem failed")
ERR_COPY_FILE_FAILED = ErrorCode(620005, "copy file failed")
ERR_EDIT_FILE_FAILED = ErrorCode(620006, "edit file failed")

# Container runtime
ERR_PULL_IMAGE_FAILED = ErrorCode(630001, "pull image failed")
ERR_LIST_CONTAINERS_FAILED = ErrorCode(630002, "list containers failed")
ERR_CREATE_CONTAINER_FAILED = ErrorCode(630003, "create container failed")
ERR_START_CONTAINER_FAILED = ErrorCode(630004, "start container failed")
ERR_INSTALL_FILE_FAILED = ErrorCode(630005, "install file into container failed")
ERR_CONTAINER_EXEC_FAILED = ErrorCode(630006, "execute command in container failed")

# Volumes and targets
ERR_CREATE_VOLUME_FAILED = ErrorCode(640001, "create volume failed")
ERR_TARGET_DAEMON_NOT_RUNNING = ErrorCode(640002, "target daemon is not running")
ERR_ADD_TARGET_FAILED = ErrorCode(640003, "add target failed")


ALL_ERROR_CODES: tuple[ErrorCode, ...] = tuple(
    sorted(
        (value for name, value in globals().items() if name.startswith("ERR_")),
        key=lambda entry: entry.code,
    )
)


def error_code_by_number(code: int) -> ErrorCode | None:
    for entry in ALL_ERROR_CODES:
        if entry.code == code:
            return entry
    return None
