from __future__ import annotations

import logging
import os
import subprocess
from typing import Callable, Mapping, Optional, Protocol, Sequence


logger = logging.getLogger(__name__)


class Dependencies(Protocol):
    """Container lifecycle collaborator used by the orchestrator."""

    def start(self, services: Sequence[str], env: Mapping[str, str]) -> None: ...

    def stop(self, services: Sequence[str]) -> None: ...


class ComposeDependencies:
    """
    Start and stop services through `docker compose`.

    - `start` is fire-and-forget: a non-zero exit is logged, and the readiness
      probe decides whether the agent actually came up.
    - `stop` failures are logged as well; they happen during cleanup, where the
      original failure is what gets reported.
    """

    def __init__(
        self,
        compose_file: str = "docker-compose.yml",
        *,
        command: Sequence[str] = ("docker", "compose"),
        runner: Callable[..., subprocess.CompletedProcess] = subprocess.run,
    ) -> None:
        self._compose_file = compose_file
        self._command = list(command)
        self._runner = runner

    def _base(self) -> list[str]:
        return [*self._command, "-f", self._compose_file]

    def start(self, services: Sequence[str], env: Mapping[str, str]) -> None:
        if not services:
            return
        argv = [*self._base(), "up", "-d", *services]
        logger.info("Starting services: %s", ", ".join(services))
        self._run(argv, env={**os.environ, **env})

    def stop(self, services: Sequence[str]) -> None:
        if not services:
            return
        argv = [*self._base(), "stop", *services]
        logger.info("Stopping services: %s", ", ".join(services))
        self._run(argv)

    def _run(self, argv: list[str], env: Optional[Mapping[str, str]] = None) -> None:
        try:
            proc = self._runner(argv, env=env, check=False, capture_output=True, text=True)
        except OSError as exc:
            logger.warning("Could not run %s: %s", " ".join(argv), exc)
            return
        if proc.returncode != 0:
            logger.warning(
                "%s exited with %s: %s", " ".join(argv), proc.returncode, (proc.stderr or "").strip()[:500]
            )


__all__ = ["ComposeDependencies", "Dependencies"]
