"""CLI entrypoint for the host task orchestrator.

Each command builds one or more tasks and runs them one after another. The
exit code is 0 when every task succeeded or was skipped, 1 when any task
failed, and 2 for configuration or usage errors.
"""

from __future__ import annotations

import argparse
import logging
import sys
from collections.abc import Sequence

from pydantic import ValidationError

from host_task_orchestrator import __version__
from host_task_orchestrator.orchestrator.config import OrchestratorSettings
from host_task_orchestrator.orchestrator.errors import ALL_ERROR_CODES, TaskError
from host_task_orchestrator.orchestrator.fleet import Fleet, build_environment
from host_task_orchestrator.orchestrator.logging import configure_logging
from host_task_orchestrator.orchestrator.task.context import ExecutionEnvironment
from host_task_orchestrator.orchestrator.task.outcome import TaskResult, TaskStatus
from host_task_orchestrator.orchestrator.task.task import Task
from host_task_orchestrator.orchestrator.workflows.format import (
    build_format_requests,
    new_format_chunkfile_pool_task,
)
from host_task_orchestrator.orchestrator.workflows.target import (
    TargetRequest,
    new_add_target_task,
)

logger = logging.getLogger(__name__)

_STATUS_LABELS: dict[TaskStatus, str] = {
    TaskStatus.SUCCEEDED: "OK",
    TaskStatus.SKIPPED: "SKIP",
    TaskStatus.FAILED: "FAIL",
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="hostorch",
        description="Run ordered administrative tasks against a fleet of hosts",
    )
    parser.add_argument(
        "--version", action="version", version=f"host-task-orchestrator {__version__}"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    fmt = subparsers.add_parser(
        "format",
        help="Format devices into chunkfile pools (one task per host and disk)",
    )
    fmt.add_argument(
        "--host",
        dest="hosts",
        action="append",
        required=True,
        help="Host from the inventory; repeat for several hosts",
    )
    fmt.add_argument(
        "--disk",
        dest="disks",
        action="append",
        required=True,
        help="DEVICE:MOUNT_POINT:PERCENT, e.g. '/dev/sdb:/data/chunkserver0:90'; repeatable",
    )
    fmt.add_argument("--image", required=True, help="Container image used to format")
    fmt.add_argument(
        "--no-device-lock",
        action="store_true",
        help="Do not hold a per-device lock while formatting (existence check is unprotected)",
    )

    add_target = subparsers.add_parser("add-target", help="Register an iSCSI target for a volume")
    add_target.add_argument("--host", required=True, help="Host running the target daemon")
    add_target.add_argument("--user", required=True, help="Volume owner")
    add_target.add_argument("--volume", required=True, help="Volume name")
    add_target.add_argument("--size", type=int, required=True, help="Volume size in GB")
    add_target.add_argument(
        "--create",
        action="store_true",
        help="Create the volume first (an existing volume is not an error)",
    )

    subparsers.add_parser("errors", help="List the error catalog")

    return parser


def format_result(result: TaskResult) -> str:
    line = f"[{_STATUS_LABELS[result.status]}] {result.name}: {result.subtitle}"
    if result.error is not None:
        return f"{line}: {result.error}"
    if result.status is TaskStatus.SKIPPED and result.reason:
        return f"{line} ({result.reason})"
    return line


def run_tasks(tasks: Sequence[Task], env: ExecutionEnvironment) -> int:
    """Run tasks in order; a failed task does not stop the following ones."""

    failed = 0
    for task in tasks:
        result = task.execute(env)
        print(format_result(result))
        if result.status is TaskStatus.FAILED:
            failed += 1
    return 1 if failed else 0


def run_command(args: argparse.Namespace, fleet: Fleet, env: ExecutionEnvironment) -> int:
    if args.command == "format":
        requests = build_format_requests(
            hosts=args.hosts, disks=args.disks, container_image=args.image
        )
        tasks = [
            new_format_chunkfile_pool_task(fleet, r, lock_device=not args.no_device_lock)
            for r in requests
        ]
        return run_tasks(tasks, env)

    if args.command == "add-target":
        request = TargetRequest(
            host=args.host,
            user=args.user,
            volume=args.volume,
            size_gb=args.size,
            create=args.create,
        )
        return run_tasks([new_add_target_task(fleet, request)], env)

    logger.error("Unknown command", extra={"command": args.command})
    return 2


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "errors":
        for entry in ALL_ERROR_CODES:
            print(f"{entry.code:06d}  {entry.description}")
        return 0

    try:
        settings = OrchestratorSettings()
    except ValidationError as e:
        # Logging isn't configured yet; keep it simple and actionable.
        print("Configuration error (check your .env):", file=sys.stderr)
        print(e, file=sys.stderr)
        return 2

    configure_logging(settings.log_level)

    try:
        fleet = Fleet.from_settings(settings)
        env = build_environment(settings)
        try:
            return run_command(args, fleet, env)
        finally:
            env.executor.close()

    except TaskError as e:
        logger.error(str(e), extra={"error_code": e.code})
        print(f"Error: {e}", file=sys.stderr)
        return 2

    except ValidationError as e:
        print("Invalid arguments:", file=sys.stderr)
        print(e, file=sys.stderr)
        return 2

    except Exception:
        logger.exception("Command failed")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
