from __future__ import annotations

import subprocess
from typing import Any, Dict, List

from common.dependencies import ComposeDependencies


class _FakeRunner:
    def __init__(self, returncode: int = 0, raise_exc: Exception | None = None) -> None:
        self.calls: List[Dict[str, Any]] = []
        self.returncode = returncode
        self.raise_exc = raise_exc

    def __call__(self, argv, **kwargs):
        self.calls.append({"argv": argv, **kwargs})
        if self.raise_exc is not None:
            raise self.raise_exc
        return subprocess.CompletedProcess(argv, self.returncode, stdout="", stderr="boom")


def test_start_runs_compose_up_with_env():
    runner = _FakeRunner()
    deps = ComposeDependencies("stack.yml", runner=runner)

    deps.start(["wallet-db", "agent"], {"AGENT_WALLET_SEED": "seed"})

    (call,) = runner.calls
    assert call["argv"] == ["docker", "compose", "-f", "stack.yml", "up", "-d", "wallet-db", "agent"]
    assert call["env"]["AGENT_WALLET_SEED"] == "seed"
    assert call["check"] is False


def test_stop_runs_compose_stop():
    runner = _FakeRunner()
    ComposeDependencies("stack.yml", runner=runner).stop(["agent"])
    assert runner.calls[0]["argv"] == ["docker", "compose", "-f", "stack.yml", "stop", "agent"]


def test_failures_are_logged_not_raised(caplog):
    ComposeDependencies(runner=_FakeRunner(returncode=1)).start(["agent"], {})
    ComposeDependencies(runner=_FakeRunner(raise_exc=FileNotFoundError("docker"))).stop(["agent"])
    assert "exited with 1" in caplog.text
    assert "Could not run" in caplog.text


def test_empty_service_list_is_noop():
    runner = _FakeRunner()
    deps = ComposeDependencies(runner=runner)
    deps.start([], {})
    deps.stop([])
    assert runner.calls == []
