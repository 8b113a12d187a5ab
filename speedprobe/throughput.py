"""
Download and upload throughput measurement.

Both directions run a short, fixed sequence of differently-sized legs over a
single connection rather than one long transfer: the small legs absorb TCP
slow-start and connection setup, the larger ones dominate the aggregate.
The stage rate is ``total_bits / total_seconds`` across every leg that
completed; a failed leg is logged and skipped.

Download legs are timed on the client while the body streams in.  Upload
legs are timed according to :class:`UploadTiming`: either the duration the
server reports (network only) or the client's own wall clock (network plus
server processing).  A deployment picks one; the two are never mixed.
"""
from __future__ import annotations

import enum
import logging
import math
import os
import time
from typing import Awaitable, Callable, Iterable, List, Optional, Sequence

from .cancel import CancelToken, run_bounded
from .constants import DEFAULT_TIMEOUT, DOWNLOAD_LEG_SIZES, UPLOAD_LEG_SIZES
from .errors import (
    LEG_ERRORS,
    MeasurementError,
    Stage,
    TransferError,
    describe_error,
    failure_reason,
)
from .progress import NullObserver, ProgressObserver
from .stats import LegSample, ThroughputEstimate, format_rate

logger = logging.getLogger(__name__)


class UploadTiming(str, enum.Enum):
    """Whose clock times an upload leg."""

    SERVER = "server"
    CLIENT = "client"


def _default_legs(direction: Stage) -> Sequence[int]:
    return DOWNLOAD_LEG_SIZES if direction is Stage.DOWNLOAD else UPLOAD_LEG_SIZES


def _validate_legs(leg_sizes: Iterable[int]) -> List[int]:
    sizes = [int(s) for s in leg_sizes]
    if not sizes:
        raise ValueError("at least one leg size is required")
    if any(s <= 0 for s in sizes):
        raise ValueError(f"leg sizes must be positive, got {sizes}")
    return sizes


class ThroughputSampler:
    """Staged single-connection throughput sampler for either direction."""

    def __init__(
        self,
        transport,  # noqa: ANN001 (TransferClient or anything with download()/upload())
        *,
        timeout: float = DEFAULT_TIMEOUT,
        upload_timing: UploadTiming = UploadTiming.SERVER,
        observer: Optional[ProgressObserver] = None,
        cancel: Optional[CancelToken] = None,
        clock: Callable[[], float] = time.perf_counter,
        payload_factory: Callable[[int], bytes] = os.urandom,
    ) -> None:
        self.transport = transport
        self.timeout = timeout
        self.upload_timing = UploadTiming(upload_timing)
        self.observer = observer or NullObserver()
        self.cancel = cancel
        self._clock = clock
        self._payload = payload_factory

    # -- Public API -----------------------------------------------------------

    async def measure(
        self,
        direction: Stage,
        leg_sizes: Optional[Iterable[int]] = None,
    ) -> ThroughputEstimate:
        direction = Stage(direction)
        if direction is Stage.LATENCY:
            raise ValueError("throughput direction must be download or upload")

        sizes = _validate_legs(leg_sizes if leg_sizes is not None else _default_legs(direction))
        run_leg: Callable[[int], Awaitable[LegSample]] = (
            self._download_leg if direction is Stage.DOWNLOAD else self._upload_leg
        )

        legs: List[LegSample] = []
        failed = 0
        last_error: Optional[BaseException] = None

        for i, size in enumerate(sizes):
            if self.cancel is not None:
                self.cancel.raise_if_cancelled(direction)

            try:
                leg = await run_bounded(
                    run_leg(size),
                    stage=direction,
                    timeout=self.timeout,
                    cancel=self.cancel,
                )
            except LEG_ERRORS as exc:
                failed += 1
                last_error = exc
                logger.warning(
                    "%s leg %d/%d (%d bytes) failed: %s",
                    direction.value.capitalize(), i + 1, len(sizes), size, describe_error(exc),
                )
                continue

            legs.append(leg)
            logger.debug(
                "%s leg %d/%d: %d bytes in %.3f s (%s)",
                direction.value.capitalize(), i + 1, len(sizes),
                leg.bytes, leg.seconds, format_rate(leg.bits_per_second),
            )
            if direction is Stage.UPLOAD:
                self.observer.on_progress(Stage.UPLOAD, i + 1, len(sizes), leg.bits_per_second)

        if not legs:
            raise MeasurementError(
                direction,
                failure_reason(len(sizes), last_error),
                f"All {len(sizes)} {direction.value} legs failed",
            )

        return ThroughputEstimate.from_legs(legs, failed_legs=failed)

    async def download(self, leg_sizes: Optional[Iterable[int]] = None) -> ThroughputEstimate:
        return await self.measure(Stage.DOWNLOAD, leg_sizes)

    async def upload(self, leg_sizes: Optional[Iterable[int]] = None) -> ThroughputEstimate:
        return await self.measure(Stage.UPLOAD, leg_sizes)

    # -- Legs -----------------------------------------------------------------

    async def _download_leg(self, size: int) -> LegSample:
        received = 0
        start = self._clock()
        stream = self.transport.download(size)
        try:
            async for chunk in stream:
                if self.cancel is not None:
                    self.cancel.raise_if_cancelled(Stage.DOWNLOAD)
                received += len(chunk)
                elapsed = self._clock() - start
                live = received * 8 / elapsed if elapsed > 0 else 0.0
                self.observer.on_progress(Stage.DOWNLOAD, received, size, live)
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()

        elapsed = self._clock() - start

        # A leg that finished after cancellation still does not count.
        if self.cancel is not None:
            self.cancel.raise_if_cancelled(Stage.DOWNLOAD)
        if received != size:
            raise TransferError(f"Download truncated: got {received} of {size} bytes")

        return LegSample(size=size, bytes=size, seconds=elapsed)

    async def _upload_leg(self, size: int) -> LegSample:
        payload = self._payload(size)
        start_ms = time.time() * 1000
        start = self._clock()
        receipt = await self.transport.upload(payload, start_ms)
        elapsed = self._clock() - start

        if self.cancel is not None:
            self.cancel.raise_if_cancelled(Stage.UPLOAD)

        if self.upload_timing is UploadTiming.CLIENT:
            return LegSample(size=size, bytes=size, seconds=elapsed)

        if receipt.received <= 0 or not math.isfinite(receipt.duration_ms) or receipt.duration_ms <= 0:
            raise TransferError(
                f"Unusable upload receipt: received={receipt.received}, "
                f"duration={receipt.duration_ms} ms"
            )
        return LegSample(size=size, bytes=receipt.received, seconds=receipt.duration_ms / 1000)
