"""
Measurement orchestration: latency, then download, then upload.

Stages never overlap; running download and upload at the same time would
have them compete for the same link and skew both numbers.  The caller
either gets a complete :class:`MeasurementResult` or the first
``MeasurementError`` -- never a half-filled result.
"""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, Optional

from .cancel import CancelToken
from .constants import (
    DEFAULT_PING_ATTEMPTS,
    DEFAULT_PING_INTERVAL_MS,
    DEFAULT_TIMEOUT,
    DOWNLOAD_LEG_SIZES,
    UPLOAD_LEG_SIZES,
)
from .endpoint import Endpoint, TransferClient
from .errors import MeasurementError, Stage
from .latency import LatencySampler
from .progress import NullObserver, ProgressObserver
from .stats import LatencyEstimate, ThroughputEstimate, format_rate
from .throughput import ThroughputSampler, UploadTiming

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Result
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class MeasurementResult:
    """Outcome of one complete measurement run."""

    download_bps: float
    upload_bps: float
    latency_ms: float
    jitter_ms: float
    server_label: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    latency: Optional[LatencyEstimate] = field(default=None, compare=False)
    download: Optional[ThroughputEstimate] = field(default=None, compare=False)
    upload: Optional[ThroughputEstimate] = field(default=None, compare=False)

    @property
    def download_mbps(self) -> float:
        return self.download_bps / 1_000_000

    @property
    def upload_mbps(self) -> float:
        return self.upload_bps / 1_000_000

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "downloadBps": round(self.download_bps, 2),
            "uploadBps": round(self.upload_bps, 2),
            "latencyMs": self.latency_ms,
            "jitterMs": self.jitter_ms,
            "serverLabel": self.server_label,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.latency is not None:
            result["latency"] = self.latency.to_dict()
        if self.download is not None:
            result["download"] = self.download.to_dict()
        if self.upload is not None:
            result["upload"] = self.upload.to_dict()
        return result


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------

class RunState(str, enum.Enum):
    IDLE = "idle"
    LATENCY = "latency"
    DOWNLOADING = "downloading"
    UPLOADING = "uploading"
    COMPLETE = "complete"
    ERRORED = "errored"


class MeasurementOrchestrator:
    """
    Runs one measurement against one transfer endpoint.

    Each instance is single-use: it walks ``IDLE -> LATENCY -> DOWNLOADING
    -> UPLOADING -> COMPLETE`` (or ``ERRORED``) exactly once.  All
    accumulators live in the samplers created for the run, so two
    orchestrators can measure concurrently without sharing anything.
    """

    def __init__(
        self,
        transport,  # noqa: ANN001 (TransferClient)
        server_label: str = "",
        *,
        ping_attempts: int = DEFAULT_PING_ATTEMPTS,
        ping_interval_ms: int = DEFAULT_PING_INTERVAL_MS,
        download_legs: Iterable[int] = DOWNLOAD_LEG_SIZES,
        upload_legs: Iterable[int] = UPLOAD_LEG_SIZES,
        timeout: float = DEFAULT_TIMEOUT,
        upload_timing: UploadTiming = UploadTiming.SERVER,
        observer: Optional[ProgressObserver] = None,
        cancel: Optional[CancelToken] = None,
        clock: Optional[Callable[[], float]] = None,
        sleep: Optional[Callable] = None,
    ) -> None:
        self.transport = transport
        self.server_label = server_label
        self.ping_attempts = ping_attempts
        self.ping_interval_ms = ping_interval_ms
        self.download_legs = tuple(download_legs)
        self.upload_legs = tuple(upload_legs)
        self.timeout = timeout
        self.upload_timing = UploadTiming(upload_timing)
        self.observer = observer or NullObserver()
        self.cancel = cancel or CancelToken()
        self.state = RunState.IDLE
        self.error: Optional[MeasurementError] = None

        self._clock = clock
        self._sleep = sleep

    # -- Public API -----------------------------------------------------------

    async def run(self) -> MeasurementResult:
        if self.state is not RunState.IDLE:
            raise RuntimeError(
                f"MeasurementOrchestrator already used (state={self.state.value}); "
                "create a new one for each run"
            )

        try:
            self._enter(RunState.LATENCY, Stage.LATENCY)
            latency = await LatencySampler(
                self.transport,
                timeout=self.timeout,
                observer=self.observer,
                cancel=self.cancel,
                **self._overrides(sleep=self._sleep),
            ).measure(self.ping_attempts, self.ping_interval_ms)

            sampler = ThroughputSampler(
                self.transport,
                timeout=self.timeout,
                upload_timing=self.upload_timing,
                observer=self.observer,
                cancel=self.cancel,
                **self._overrides(),
            )

            self._enter(RunState.DOWNLOADING, Stage.DOWNLOAD)
            download = await sampler.measure(Stage.DOWNLOAD, self.download_legs)

            self._enter(RunState.UPLOADING, Stage.UPLOAD)
            upload = await sampler.measure(Stage.UPLOAD, self.upload_legs)

        except MeasurementError as exc:
            self.state = RunState.ERRORED
            self.error = exc
            logger.info("Measurement aborted in %s stage: %s", exc.stage.value, exc.reason.value)
            raise

        self.state = RunState.COMPLETE
        result = MeasurementResult(
            download_bps=download.bits_per_second,
            upload_bps=upload.bits_per_second,
            latency_ms=latency.mean_ms,
            jitter_ms=latency.jitter_ms,
            server_label=self.server_label,
            latency=latency,
            download=download,
            upload=upload,
        )
        logger.info(
            "Measurement complete: ping %.1f ms, jitter %.1f ms, down %s, up %s",
            result.latency_ms, result.jitter_ms,
            format_rate(result.download_bps), format_rate(result.upload_bps),
        )
        return result

    def cancel_run(self) -> None:
        """Ask the in-flight run to stop at the next leg or I/O boundary."""
        self.cancel.cancel()

    # -- Internals ------------------------------------------------------------

    def _enter(self, state: RunState, stage: Stage) -> None:
        logger.debug("State %s -> %s", self.state.value, state.value)
        self.state = state
        self.observer.on_stage(stage)

    def _overrides(self, **extra: Any) -> Dict[str, Any]:
        """Injected clock / sleep for the samplers (tests use fakes)."""
        kwargs = {"clock": self._clock, **extra}
        return {k: v for k, v in kwargs.items() if v is not None}


async def measure(
    endpoint: Endpoint,
    **options: Any,
) -> MeasurementResult:
    """Open a transfer client for *endpoint* and run one fresh measurement."""
    async with TransferClient(endpoint) as client:
        orchestrator = MeasurementOrchestrator(client, endpoint.label, **options)
        return await orchestrator.run()
