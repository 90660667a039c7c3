"""Smoke tests for the scripts under examples/."""

from __future__ import annotations

import importlib.util
import json
from pathlib import Path
from types import ModuleType

import pytest

from host_task_orchestrator.orchestrator.task.context import ExecutionEnvironment
from host_task_orchestrator.orchestrator.task.memstorage import MemStorage

EXAMPLE = Path(__file__).resolve().parents[2] / "examples" / "basic_usage.py"


@pytest.fixture
def basic_usage() -> ModuleType:
    spec = importlib.util.spec_from_file_location("basic_usage", EXAMPLE)
    assert spec is not None and spec.loader is not None
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def test_basic_usage_parses_arguments(basic_usage: ModuleType) -> None:
    args = basic_usage._parse_args(
        ["--host", "node1", "--disk", "/dev/sdb:/data/chunkserver0:90", "--image", "img"]
    )

    assert args.host == "node1"
    assert args.volume == ""
    assert args.size == 10


def test_basic_usage_formats_one_disk(
    basic_usage: ModuleType,
    fake_host,
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("LOG_LEVEL", "WARNING")
    for name in ("ORCHESTRATOR_HOSTS_FILE", "ORCHESTRATOR_CONTAINER_ENGINE", "ORCHESTRATOR_PROJECT_ROOT"):
        monkeypatch.delenv(name, raising=False)
    (tmp_path / "hosts.json").write_text(
        json.dumps([{"host": "node1", "hostname": "10.0.0.1"}]), encoding="utf-8"
    )
    fake_host.devices["/dev/sdb"] = "82511eb8-e4e3-4a50-a736-d584fbf533fa"
    monkeypatch.setattr(
        basic_usage,
        "build_environment",
        lambda settings: ExecutionEnvironment(executor=fake_host, storage=MemStorage()),
    )

    code = basic_usage.main(
        ["--host", "node1", "--disk", "/dev/sdb:/data/chunkserver0:90", "--image", "img"]
    )

    assert code == 0
    assert json.loads(capsys.readouterr().out)["status"] == "succeeded"
    assert fake_host.closed
