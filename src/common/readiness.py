from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Optional

import httpx

from .errors import ProvisioningCancelled, ProvisioningError


logger = logging.getLogger(__name__)

HEALTH_PATH = "/api/doc"


class ReadinessTimeout(ProvisioningError):
    """The agent never answered its health endpoint within the timeout."""

    step = "readiness"


class ReadinessProber:
    """
    Fixed-interval poller for a service's health endpoint.

    - Probes `{endpoint}/api/doc` every `poll_interval` seconds and returns on the
      first HTTP 200.
    - Elapsed time is measured from the start of the loop, never reset per probe.
      The budget is checked before every probe, and neither a wait nor a probe
      (its httpx timeout is `min(poll_interval, remaining)`) runs past it, so a
      timeout is raised at or after `timeout_seconds` and before
      `timeout_seconds + poll_interval`.
    - Setting `cancel` (e.g. from a signal handler) interrupts the wait and raises
      `ProvisioningCancelled`.

    `clock` and `sleep` are injectable for tests; by default sleeping waits on the
    cancel event so a signal wakes the loop immediately.
    """

    def __init__(
        self,
        *,
        poll_interval: float = 1.0,
        client: Optional[httpx.Client] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Optional[Callable[[float], None]] = None,
        cancel: Optional[threading.Event] = None,
    ) -> None:
        if poll_interval <= 0:
            raise ValueError("poll_interval must be > 0")
        self._interval = poll_interval
        self._owns_client = client is None
        # a single probe must not outlast the poll interval
        self._client = client or httpx.Client(timeout=poll_interval)
        self._clock = clock
        self._sleep = sleep
        self.cancel = cancel or threading.Event()

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "ReadinessProber":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def probe(self, endpoint: str, timeout: Optional[float] = None) -> bool:
        url = f"{endpoint.rstrip('/')}{HEALTH_PATH}"
        limit = httpx.Timeout(timeout if timeout is not None else self._interval)
        try:
            resp = self._client.get(url, timeout=limit)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            logger.debug("Probe of %s failed: %s", url, exc)
            return False
        return resp.status_code == 200

    def wait_until_ready(self, endpoint: str, timeout_seconds: float) -> None:
        start = self._clock()
        attempts = 0
        while True:
            if self.cancel.is_set():
                raise ProvisioningCancelled("Interrupted while waiting for the agent")
            remaining = timeout_seconds - (self._clock() - start)
            if remaining <= 0:
                raise ReadinessTimeout(
                    f"Agent at {endpoint} not ready after {self._clock() - start:.1f}s "
                    f"({attempts} probes, timeout {timeout_seconds:g}s)"
                )
            attempts += 1
            # a probe never runs past the deadline
            if self.probe(endpoint, min(self._interval, remaining)):
                logger.info("Agent at %s is ready after %d probe(s)", endpoint, attempts)
                return
            remaining = timeout_seconds - (self._clock() - start)
            if remaining > 0:
                self._wait(min(self._interval, remaining))

    def _wait(self, seconds: float) -> None:
        if self._sleep is not None:
            self._sleep(seconds)
        else:
            self.cancel.wait(seconds)


__all__ = ["ReadinessProber", "ReadinessTimeout", "HEALTH_PATH"]
