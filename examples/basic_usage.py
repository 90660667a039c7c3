#!/usr/bin/env python3
"""Programmatic format example.

This demonstrates using the orchestrator components directly:

* load settings (and the host inventory) from `.env`
* build a format-chunkfile-pool task, optionally creating a volume first
* run it and print the task report

Several tasks can share one `ExecutionEnvironment`; its store serialises the
fstab edits of tasks that target the same host.
"""

from __future__ import annotations

import argparse
import json
from collections.abc import Sequence

from host_task_orchestrator.orchestrator.config import OrchestratorSettings
from host_task_orchestrator.orchestrator.errors import TaskError
from host_task_orchestrator.orchestrator.fleet import Fleet, build_environment
from host_task_orchestrator.orchestrator.logging import configure_logging
from host_task_orchestrator.orchestrator.workflows.format import (
    FormatRequest,
    VolumeRequest,
    new_format_chunkfile_pool_task,
    parse_disk_spec,
)


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Format one disk (programmatic example).")
    parser.add_argument("--host", required=True, help="Host from the inventory")
    parser.add_argument("--disk", required=True, help='e.g. "/dev/sdb:/data/chunkserver0:90"')
    parser.add_argument("--image", required=True, help="Container image used to format")
    parser.add_argument("--volume", default="", help='Create "user/name" first (optional)')
    parser.add_argument("--size", type=int, default=10, help="Volume size in GB")
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)

    settings = OrchestratorSettings()
    configure_logging(settings.log_level)

    volume = None
    if args.volume:
        user, _, name = args.volume.partition("/")
        volume = VolumeRequest(user=user, name=name, size_gb=args.size)

    try:
        fleet = Fleet.from_settings(settings)
        device, mount_point, percent = parse_disk_spec(args.disk)
        task = new_format_chunkfile_pool_task(
            fleet,
            FormatRequest(
                host=args.host,
                device=device,
                mount_point=mount_point,
                format_percent=percent,
                container_image=args.image,
                volume=volume,
            ),
        )
    except TaskError as exc:
        print(str(exc))
        return 2

    env = build_environment(settings)
    try:
        result = task.execute(env)
    finally:
        env.executor.close()

    print(json.dumps(result.to_json(), indent=2))
    return 0 if result.ok else 1


if __name__ == "__main__":
    raise SystemExit(main())
