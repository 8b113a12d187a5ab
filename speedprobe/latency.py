"""
HTTP echo latency measurement.

Flow::

    1. GET /api/ping?_=<cache-bust>
    2. Time the full round trip on the monotonic clock.
    3. Sleep the inter-sample delay (not after the last attempt).
    4. Repeat for the configured number of attempts.

Failed attempts are logged and skipped; the stage only fails when not a
single echo came back.
"""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable, List, Optional

from .cancel import CancelToken, run_bounded
from .constants import DEFAULT_PING_ATTEMPTS, DEFAULT_PING_INTERVAL_MS, DEFAULT_TIMEOUT
from .errors import LEG_ERRORS, MeasurementError, Stage, describe_error, failure_reason
from .progress import NullObserver, ProgressObserver
from .stats import LatencyEstimate

logger = logging.getLogger(__name__)


class LatencySampler:
    """Repeated echo round trips against one transfer endpoint."""

    def __init__(
        self,
        transport,  # noqa: ANN001 (TransferClient or anything with ``echo()``)
        *,
        timeout: float = DEFAULT_TIMEOUT,
        observer: Optional[ProgressObserver] = None,
        cancel: Optional[CancelToken] = None,
        clock: Callable[[], float] = time.perf_counter,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.transport = transport
        self.timeout = timeout
        self.observer = observer or NullObserver()
        self.cancel = cancel
        self._clock = clock
        self._sleep = sleep

    async def measure(
        self,
        attempts: int = DEFAULT_PING_ATTEMPTS,
        inter_sample_delay_ms: int = DEFAULT_PING_INTERVAL_MS,
    ) -> LatencyEstimate:
        if attempts < 1:
            raise ValueError("attempts must be >= 1")
        if inter_sample_delay_ms < 0:
            raise ValueError("inter_sample_delay_ms must be >= 0")

        samples: List[float] = []
        last_error: Optional[BaseException] = None

        for i in range(attempts):
            if self.cancel is not None:
                self.cancel.raise_if_cancelled(Stage.LATENCY)

            value_ms: Optional[float] = None
            start = self._clock()
            try:
                await run_bounded(
                    self.transport.echo(),
                    stage=Stage.LATENCY,
                    timeout=self.timeout,
                    cancel=self.cancel,
                )
                value_ms = (self._clock() - start) * 1000
                samples.append(value_ms)
            except LEG_ERRORS as exc:
                last_error = exc
                logger.warning("Ping attempt %d/%d failed: %s", i + 1, attempts, describe_error(exc))

            self.observer.on_progress(Stage.LATENCY, i + 1, attempts, value_ms)

            if i < attempts - 1 and inter_sample_delay_ms:
                await run_bounded(
                    self._sleep(inter_sample_delay_ms / 1000),
                    stage=Stage.LATENCY,
                    cancel=self.cancel,
                )

        if not samples:
            raise MeasurementError(
                Stage.LATENCY,
                failure_reason(attempts, last_error),
                f"All {attempts} ping attempts failed",
            )

        estimate = LatencyEstimate.from_samples(samples, failed_attempts=attempts - len(samples))
        logger.debug(
            "Latency %.1f ms, jitter %.1f ms (%d/%d attempts ok)",
            estimate.mean_ms, estimate.jitter_ms, len(samples), attempts,
        )
        return estimate
