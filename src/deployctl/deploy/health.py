"""Post-rollout health verification."""

import time
from dataclasses import dataclass
from typing import Callable

import httpx

from deployctl.deploy.models import HealthState, HealthStatus


@dataclass(frozen=True)
class Backoff:
    """Delay policy between probe attempts."""

    mode: str = "fixed"  # fixed or exponential
    interval: float = 3.0
    max_interval: float = 30.0

    def delay(self, attempt: int) -> float:
        """Seconds to wait after the given (1-based) failed attempt."""
        if self.mode == "exponential":
            return min(self.interval * (2 ** (attempt - 1)), self.max_interval)
        return min(self.interval, self.max_interval)


class HealthVerifier:
    """Issue HEAD probes against a service endpoint."""

    def __init__(
        self,
        transport: httpx.BaseTransport | None = None,
        verify_tls: bool = True,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._transport = transport
        self._verify_tls = verify_tls
        self._sleep = sleep
        self._clock = clock

    def probe(self, url: str, timeout: float) -> HealthStatus:
        """Issue one header-only request. No retries.

        Args:
            url: Endpoint to probe
            timeout: Connect/read timeout in seconds

        Returns:
            HealthStatus for this single attempt
        """
        started = self._clock()
        try:
            with httpx.Client(
                transport=self._transport,
                timeout=timeout,
                verify=self._verify_tls,
                follow_redirects=False,
            ) as client:
                response = client.head(url)
        except httpx.TransportError as e:
            return HealthStatus(
                state=HealthState.UNREACHABLE,
                url=url,
                error=str(e) or e.__class__.__name__,
                elapsed=self._clock() - started,
            )

        elapsed = self._clock() - started
        if response.is_success:
            return HealthStatus(state=HealthState.HEALTHY, url=url, status_code=response.status_code, elapsed=elapsed)
        return HealthStatus(
            state=HealthState.UNEXPECTED_STATUS,
            url=url,
            status_code=response.status_code,
            elapsed=elapsed,
        )

    def verify(
        self,
        url: str,
        timeout: float = 5.0,
        max_attempts: int = 1,
        backoff: Backoff | None = None,
        deadline: float | None = None,
    ) -> HealthStatus:
        """Probe until healthy, out of attempts, or past the deadline.

        Args:
            url: Endpoint to probe
            timeout: Per-attempt timeout in seconds
            max_attempts: Maximum number of probes
            backoff: Delay policy between attempts
            deadline: Total wall-clock budget in seconds

        Returns:
            The last HealthStatus observed, with ``attempts`` filled in
        """
        backoff = backoff or Backoff(interval=0.0)
        max_attempts = max(1, max_attempts)
        started = self._clock()

        attempt = 1
        status = self.probe(url, self._attempt_timeout(timeout, started, deadline))
        while not status.healthy and attempt < max_attempts:
            wait = backoff.delay(attempt)
            if deadline is not None:
                wait = min(wait, self._remaining(started, deadline))
            if wait > 0:
                self._sleep(wait)
            if deadline is not None and self._remaining(started, deadline) <= 0:
                break

            attempt += 1
            status = self.probe(url, self._attempt_timeout(timeout, started, deadline))

        status.attempts = attempt
        status.elapsed = self._clock() - started
        return status

    def _remaining(self, started: float, deadline: float) -> float:
        return deadline - (self._clock() - started)

    def _attempt_timeout(self, timeout: float, started: float, deadline: float | None) -> float:
        """Per-attempt timeout, shortened so the attempt ends by the deadline."""
        if deadline is None:
            return timeout
        return max(0.001, min(timeout, self._remaining(started, deadline)))
